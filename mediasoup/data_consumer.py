"""Endpoint that receives data messages from a router."""

from __future__ import annotations

import dataclasses
import enum
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .event_emitter import EventEmitter
from .internal import InternalData
from .logger import new_logger


class DataConsumerType(str, enum.Enum):
    """How a data consumer receives its messages."""

    SCTP = "sctp"
    DIRECT = "direct"


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _lookup(data: Any, name: str, default: Any = None) -> Any:
    """Case-insensitive key lookup in a response object."""
    if not isinstance(data, dict):
        return default
    wanted = name.lower()
    for key, value in data.items():
        if str(key).lower() == wanted:
            return value
    return default


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"not a number: {value!r}")
    return int(value)


@dataclass
class DataConsumerStat:
    """Statistics of a data consumer."""

    type: str = ""
    timestamp: int = 0
    label: str = ""
    protocol: str = ""
    messages_sent: int = 0
    bytes_sent: int = 0
    buffered_amount: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataConsumerStat:
        """Build from the worker's stats entry."""
        values = {}
        for stat_field in dataclasses.fields(cls):
            value = _lookup(data, _camel_case(stat_field.name))
            if value is not None:
                values[stat_field.name] = value
        return cls(**values)


class RequestChannel(Protocol):
    def request(self, method: str, internal: InternalData | None = None, data: Any = None) -> Any: ...

    def subscribe(self, target_id: str, handler: Callable[[str, Any], None]) -> None: ...

    def unsubscribe(self, target_id: str) -> None: ...


class PayloadRequestChannel(Protocol):
    def request(self, method: str, internal: InternalData, data: Any, payload: bytes) -> Any: ...

    def subscribe(self, target_id: str, handler: Callable[[str, Any, bytes], None]) -> None: ...

    def unsubscribe(self, target_id: str) -> None: ...


# SCTP payload protocol identifiers used by WebRTC.
PPID_STRING = "51"
PPID_BINARY = "53"
PPID_STRING_EMPTY = "56"
PPID_BINARY_EMPTY = "57"


class DataConsumer(EventEmitter):
    """Receives data messages from a router, over SCTP or directly.

    Emits ``transportclose``, ``dataproducerclose``, ``message``
    (payload, ppid), ``sctpsendbufferfull``, ``bufferedamountlow``
    (buffered amount), ``@close`` and ``@dataproducerclose``. Its observer
    emits ``close``.
    """

    def __init__(
        self,
        internal: InternalData,
        channel: RequestChannel,
        payload_channel: PayloadRequestChannel,
        data_producer_id: str,
        consumer_type: DataConsumerType,
        sctp_stream_parameters: Any = None,
        label: str = "",
        protocol: str = "",
        app_data: Any = None,
    ) -> None:
        super().__init__()
        self._logger = new_logger("DataConsumer")
        self._logger.debug("constructor() [internal:%s]", internal)
        self._internal = internal
        self._channel = channel
        self._payload_channel = payload_channel
        self._data_producer_id = data_producer_id
        self._type = DataConsumerType(consumer_type)
        self._sctp_stream_parameters = sctp_stream_parameters
        self._label = label
        self._protocol = protocol
        self._app_data = app_data
        self._closed = False
        self._closed_lock = threading.Lock()
        self._observer = EventEmitter()

        self.on_close: Callable[[], Any] | None = None
        self.on_data_producer_close: Callable[[], Any] | None = None
        self.on_transport_close: Callable[[], Any] | None = None
        self.on_sctp_send_buffer_full: Callable[[], Any] | None = None
        self.on_buffered_amount_low: Callable[[int], Any] | None = None
        self.on_message: Callable[[bytes, int], Any] | None = None

        self._channel.subscribe(self.id, self._on_channel_event)
        self._payload_channel.subscribe(self.id, self._on_payload_event)

    @property
    def id(self) -> str:
        return self._internal.data_consumer_id

    @property
    def data_producer_id(self) -> str:
        return self._data_producer_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def type(self) -> DataConsumerType:
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
        """Close the data consumer; a worker error is raised after closing."""
        if not self._mark_closed():
            return
        self._logger.debug("close()")
        self._unsubscribe()

        failure: Exception | None = None
        try:
            self._channel.request(
                "transport.closeDataConsumer", self._internal, {"dataConsumerId": self.id}
            )
        except Exception as exc:
            self._logger.error("dataConsumer close failed: %s", exc)
            failure = exc

        self.emit("@close")
        self.remove_all_listeners()
        self._notify_closed()

        if failure is not None:
            raise failure

    def transport_closed(self) -> None:
        """Mark the data consumer closed because its transport was closed."""
        if not self._mark_closed():
            return
        self._logger.debug("transportClosed()")
        self._unsubscribe()

        self.safe_emit("transportclose")
        self.remove_all_listeners()
        if self.on_transport_close is not None:
            self.on_transport_close()
        self._notify_closed()

    def dump(self) -> Any:
        """Return the worker's dump of this data consumer."""
        self._logger.debug("dump()")
        return self._channel.request("dataConsumer.dump", self._internal)

    def get_stats(self) -> list[DataConsumerStat]:
        """Return the statistics of this data consumer."""
        self._logger.debug("getStats()")
        stats = self._channel.request("dataConsumer.getStats", self._internal) or []
        return [DataConsumerStat.from_dict(entry) for entry in stats]

    def set_buffered_amount_low_threshold(self, threshold: int) -> None:
        """Set the threshold under which "bufferedamountlow" is emitted."""
        self._logger.debug("setBufferedAmountLowThreshold() [threshold:%s]", threshold)
        self._channel.request(
            "dataConsumer.setBufferedAmountLowThreshold",
            self._internal,
            {"threshold": threshold},
        )

    def send(self, data: bytes) -> None:
        """Send binary data; an empty message goes out as one zero byte."""
        ppid, payload = PPID_BINARY, bytes(data)
        if not payload:
            ppid, payload = PPID_BINARY_EMPTY, b"\x00"
        self._payload_channel.request("dataConsumer.send", self._internal, ppid, payload)

    def send_text(self, message: str) -> None:
        """Send a text message; an empty one goes out as a single space."""
        ppid, payload = PPID_STRING, message.encode("utf-8")
        if not payload:
            ppid, payload = PPID_STRING_EMPTY, b" "
        self._payload_channel.request("dataConsumer.send", self._internal, ppid, payload)

    def get_buffered_amount(self) -> int:
        """Return the number of bytes buffered in the worker."""
        self._logger.debug("getBufferedAmount()")
        result = self._channel.request("dataConsumer.getBufferedAmount", self._internal)
        return int(_lookup(result, "bufferAmount", 0) or 0)

    def _mark_closed(self) -> bool:
        with self._closed_lock:
            if self._closed:
                return False
            self._closed = True
            return True

    def _unsubscribe(self) -> None:
        self._channel.unsubscribe(self.id)
        self._payload_channel.unsubscribe(self.id)

    def _notify_closed(self) -> None:
        self._observer.safe_emit("close")
        self._observer.remove_all_listeners()
        if self.on_close is not None:
            self.on_close()

    def _on_channel_event(self, event: str, data: Any) -> None:
        if event == "dataproducerclose":
            self._handle_data_producer_close()
        elif event == "sctpsendbufferfull":
            self.safe_emit("sctpsendbufferfull")
            if self.on_sctp_send_buffer_full is not None:
                self.on_sctp_send_buffer_full()
        elif event == "bufferedamountlow":
            if not isinstance(data, dict):
                self._logger.error("failed to unmarshal bufferedamountlow: %r", data)
                return
            try:
                amount = _as_int(_lookup(data, "bufferAmount", 0))
            except ValueError as exc:
                self._logger.error("failed to unmarshal bufferedamountlow: %s", exc)
                return
            self.safe_emit("bufferedamountlow", amount)
            if self.on_buffered_amount_low is not None:
                self.on_buffered_amount_low(amount)
        else:
            self._logger.error("ignoring unknown event in channel listener: %s", event)

    def _handle_data_producer_close(self) -> None:
        if not self._mark_closed():
            return
        self._unsubscribe()
        self.emit("@dataproducerclose")
        self.safe_emit("dataproducerclose")
        self.remove_all_listeners()
        if self.on_data_producer_close is not None:
            self.on_data_producer_close()
        self._notify_closed()

    def _on_payload_event(self, event: str, data: Any, payload: bytes) -> None:
        if event == "message":
            if self._closed:
                return
            if not isinstance(data, dict):
                self._logger.error("failed to unmarshal message: %r", data)
                return
            try:
                ppid = _as_int(_lookup(data, "ppid", 0))
            except ValueError as exc:
                self._logger.error("failed to unmarshal message: %s", exc)
                return
            self.safe_emit("message", payload, ppid)
            if self.on_message is not None:
                self.on_message(payload, ppid)
        else:
            self._logger.error("ignoring unknown event in payload channel listener: %s", event)