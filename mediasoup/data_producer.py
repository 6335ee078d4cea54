"""Endpoint that injects data messages into a router."""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .event_emitter import EventEmitter
from .internal import InternalData
from .logger import new_logger


class DataProducerType(str, enum.Enum):
    """How a data producer delivers its messages."""

    SCTP = "sctp"
    DIRECT = "direct"


@dataclass
class DataProducerStat:
    """Statistics of a data producer."""

    type: str = ""
    timestamp: int = 0
    label: str = ""
    protocol: str = ""
    messages_received: int = 0
    bytes_received: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataProducerStat:
        """Build from the worker's stats entry (keys matched case-insensitively)."""
        lowered = {str(key).lower(): value for key, value in data.items()}
        return cls(
            type=lowered.get("type", ""),
            timestamp=lowered.get("timestamp", 0),
            label=lowered.get("label", ""),
            protocol=lowered.get("protocol", ""),
            messages_received=lowered.get("messagesreceived", 0),
            bytes_received=lowered.get("bytesreceived", 0),
        )


class RequestChannel(Protocol):
    def request(self, method: str, internal: InternalData | None = None, data: Any = None) -> Any: ...

    def unsubscribe(self, target_id: str) -> None: ...


class PayloadNotifier(Protocol):
    def notify(self, event: str, internal: InternalData, data: Any, payload: bytes) -> None: ...

    def unsubscribe(self, target_id: str) -> None: ...


# SCTP payload protocol identifiers used by WebRTC.
PPID_STRING = "51"
PPID_BINARY = "53"
PPID_STRING_EMPTY = "56"
PPID_BINARY_EMPTY = "57"


class DataProducer(EventEmitter):
    """Injects data messages into a router, over SCTP or directly.

    Emits ``transportclose`` and ``@close``; its observer emits ``close``.
    """

    def __init__(
        self,
        internal: InternalData,
        channel: RequestChannel,
        payload_channel: PayloadNotifier,
        producer_type: DataProducerType,
        sctp_stream_parameters: Any = None,
        label: str = "",
        protocol: str = "",
        app_data: Any = None,
    ) -> None:
        super().__init__()
        self._logger = new_logger("DataProducer")
        self._logger.debug("constructor() [internal:%s]", internal)
        self._internal = internal
        self._channel = channel
        self._payload_channel = payload_channel
        self._type = DataProducerType(producer_type)
        self._sctp_stream_parameters = sctp_stream_parameters
        self._label = label
        self._protocol = protocol
        self._app_data = app_data
        self._closed = False
        self._closed_lock = threading.Lock()
        self._observer = EventEmitter()
        self.on_close: Callable[[], Any] | None = None
        self.on_transport_close: Callable[[], Any] | None = None

    @property
    def id(self) -> str:
        return self._internal.data_producer_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def type(self) -> DataProducerType:
        return self._type

    @property
    def sctp_stream_parameters(self) -> Any:
        return self._sctp_stream_parameters

    @property
    def label(self) -> str:
        return self._label

    @property
    def protocol(self) -> str:
        return self._protocol

    @property
    def app_data(self) -> Any:
        return self._app_data

    @property
    def observer(self) -> EventEmitter:
        return self._observer

    def close(self) -> None:
        """Close the data producer; a worker error is raised after closing."""
        if not self._mark_closed():
            return
        self._logger.debug("close()")

        self._channel.unsubscribe(self.id)
        self._payload_channel.unsubscribe(self.id)

        failure: Exception | None = None
        try:
            self._channel.request(
                "transport.closeDataProducer", self._internal, {"dataProducerId": self.id}
            )
        except Exception as exc:
            self._logger.error("dataProducer close failed: %s", exc)
            failure = exc

        self.emit("@close")
        self.remove_all_listeners()
        self._notify_closed()

        if failure is not None:
            raise failure

    def transport_closed(self) -> None:
        """Mark the data producer closed because its transport was closed."""
        if not self._mark_closed():
            return
        self._logger.debug("transportClosed()")

        self.safe_emit("transportclose")
        self.remove_all_listeners()

        if self.on_transport_close is not None:
            self.on_transport_close()

        self._notify_closed()

    def dump(self) -> Any:
        """Return the worker's dump of this data producer."""
        self._logger.debug("dump()")
        return self._channel.request("dataProducer.dump", self._internal)

    def get_stats(self) -> list[DataProducerStat]:
        """Return the statistics of this data producer."""
        self._logger.debug("getStats()")
        stats = self._channel.request("dataProducer.getStats", self._internal) or []
        return [DataProducerStat.from_dict(entry) for entry in stats]

    def send(self, data: bytes) -> None:
        """Send binary data; an empty message goes out as one zero byte."""
        ppid, payload = PPID_BINARY, bytes(data)
        if not payload:
            ppid, payload = PPID_BINARY_EMPTY, b"\x00"
        self._payload_channel.notify("dataProducer.send", self._internal, ppid, payload)

    def send_text(self, message: str) -> None:
        """Send a text message; an empty one goes out as a single space."""
        ppid, payload = PPID_STRING, message.encode("utf-8")
        if not payload:
            ppid, payload = PPID_STRING_EMPTY, b" "
        self._payload_channel.notify("dataProducer.send", self._internal, ppid, payload)

    def _mark_closed(self) -> bool:
        with self._closed_lock:
            if self._closed:
                return False
            self._closed = True
            return True

    def _notify_closed(self) -> None:
        self._observer.safe_emit("close")
        self._observer.remove_all_listeners()
        if self.on_close is not None:
            self.on_close()