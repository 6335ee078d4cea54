"""Identifiers that address an entity inside the worker."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

NS_MESSAGE_MAX_LEN = 4194308
NS_PAYLOAD_MAX_LEN = 4194304

_HANDLER_FIELDS = {
    "router": "router_id",
    "transport": "transport_id",
    "producer": "producer_id",
    "consumer": "consumer_id",
    "dataProducer": "data_producer_id",
    "dataConsumer": "data_consumer_id",
    "rtpObserver": "rtp_observer_id",
    "webRtcServer": "web_rtc_server_id",
}


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class InternalData:
    """Ids of the entities a request or notification refers to."""

    router_id: str = ""
    transport_id: str = ""
    producer_id: str = ""
    consumer_id: str = ""
    data_producer_id: str = ""
    data_consumer_id: str = ""
    rtp_observer_id: str = ""
    web_rtc_server_id: str = ""

    def handler_id(self, method: str) -> str:
        """Return the id of the entity that handles ``method``."""
        field_name = _HANDLER_FIELDS.get(method.split(".", 1)[0])
        if field_name is None:
            return "undefined"
        return getattr(self, field_name)

    def to_dict(self) -> dict[str, str]:
        """Return the non-empty ids keyed by their wire names."""
        return {
            _camel_case(field.name): value
            for field in dataclasses.fields(self)
            if (value := getattr(self, field.name))
        }