"""Consumer: media forwarded from a router to an endpoint."""

from __future__ import annotations

import dataclasses
import enum
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .event_emitter import EventEmitter
from .internal import InternalData
from .logger import new_logger


class ConsumerTraceEventType(str, enum.Enum):
    """Types that can be enabled for the "trace" event."""

    RTP = "rtp"
    KEYFRAME = "keyframe"
    NACK = "nack"
    PLI = "pli"
    FIR = "fir"


class ConsumerType(str, enum.Enum):
    """Kind of RTP forwarding done by a consumer."""

    SIMPLE = "simple"
    SIMULCAST = "simulcast"
    SVC = "svc"
    PIPE = "pipe"


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class ConsumerScore:
    """Scores of the consumer's RTP stream and of the producer's streams."""

    score: int = 0
    producer_score: int = 0
    producer_scores: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerScore:
        return cls(
            score=int(data.get("score", 0)),
            producer_score=int(data.get("producerScore", 0)),
            producer_scores=[int(value) for value in data.get("producerScores") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "producerScore": self.producer_score,
            "producerScores": list(self.producer_scores),
        }


@dataclass
class ConsumerLayers:
    """Spatial and temporal layer indexes (from 0 to N)."""

    spatial_layer: int = 0
    temporal_layer: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerLayers:
        return cls(
            spatial_layer=int(data.get("spatialLayer", 0)),
            temporal_layer=int(data.get("temporalLayer", 0)),
        )

    def to_dict(self) -> dict[str, int]:
        return {"spatialLayer": self.spatial_layer, "temporalLayer": self.temporal_layer}


@dataclass
class ConsumerTraceEventData:
    """Data of a "trace" event."""

    type: str = ""
    timestamp: int = 0
    direction: str = ""
    info: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerTraceEventData:
        return cls(
            type=str(data.get("type", "")),
            timestamp=int(data.get("timestamp", 0)),
            direction=str(data.get("direction", "")),
            info=dict(data.get("info") or {}),
        )


@dataclass
class ConsumerStat:
    """Statistics of an RTP stream of the consumer or of its producer."""

    type: str = ""
    timestamp: int = 0
    ssrc: int = 0
    rtx_ssrc: int = 0
    rid: str = ""
    kind: str = ""
    mime_type: str = ""
    packets_lost: int = 0
    fraction_lost: int = 0
    packets_discarded: int = 0
    packets_retransmitted: int = 0
    packets_repaired: int = 0
    nack_count: int = 0
    nack_packet_count: int = 0
    pli_count: int = 0
    fir_count: int = 0
    score: int = 0
    packet_count: int = 0
    byte_count: int = 0
    bitrate: int = 0
    round_trip_time: float = 0.0
    rtx_packets_discarded: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerStat:
        values = {}
        for stat_field in dataclasses.fields(cls):
            key = _camel_case(stat_field.name)
            if key in data and data[key] is not None:
                values[stat_field.name] = data[key]
        return cls(**values)


class RequestChannel(Protocol):
    def request(self, method: str, internal: InternalData | None = None, data: Any = None) -> Any: ...

    def subscribe(self, target_id: str, handler: Callable[[str, Any], None]) -> None: ...

    def unsubscribe(self, target_id: str) -> None: ...


class PayloadSubscriber(Protocol):
    def subscribe(self, target_id: str, handler: Callable[[str, Any, bytes], None]) -> None: ...

    def unsubscribe(self, target_id: str) -> None: ...


def _lookup(data: Any, name: str, default: Any = None) -> Any:
    """Case-insensitive key lookup in a response object."""
    if not isinstance(data, dict):
        return default
    wanted = name.lower()
    for key, value in data.items():
        if str(key).lower() == wanted:
            return value
    return default


class Consumer(EventEmitter):
    """An audio or video source forwarded from a router to an endpoint.

    Emits ``transportclose``, ``producerclose``, ``producerpause``,
    ``producerresume``, ``score``, ``layerschange``, ``rtp``, ``trace``,
    ``@close`` and ``@producerclose``. Its observer emits ``close``,
    ``pause``, ``resume``, ``score``, ``layerschange`` and ``trace``.
    """

    def __init__(
        self,
        internal: InternalData,
        channel: RequestChannel,
        payload_channel: PayloadSubscriber,
        producer_id: str,
        kind: str,
        consumer_type: ConsumerType,
        rtp_parameters: Any = None,
        app_data: Any = None,
        paused: bool = False,
        producer_paused: bool = False,
        score: ConsumerScore | None = None,
        preferred_layers: ConsumerLayers | None = None,
    ) -> None:
        super().__init__()
        self._logger = new_logger("Consumer")
        self._logger.debug("constructor() [internal:%s]", internal)
        self._internal = internal
        self._channel = channel
        self._payload_channel = payload_channel
        self._producer_id = producer_id
        self._kind = kind
        self._type = ConsumerType(consumer_type)
        self._rtp_parameters = rtp_parameters
        self._app_data = app_data
        self._paused = paused
        self._producer_paused = producer_paused
        self._priority = 1
        self._score = score if score is not None else ConsumerScore(10, 10, [])
        self._preferred_layers = preferred_layers
        self._current_layers: ConsumerLayers | None = None
        self._closed = False
        self._closed_lock = threading.Lock()
        self._observer = EventEmitter()

        self.on_close: Callable[[], Any] | None = None
        self.on_producer_close: Callable[[], Any] | None = None
        self.on_transport_close: Callable[[], Any] | None = None
        self.on_pause: Callable[[], Any] | None = None
        self.on_resume: Callable[[], Any] | None = None
        self.on_producer_pause: Callable[[], Any] | None = None
        self.on_producer_resume: Callable[[], Any] | None = None
        self.on_score: Callable[[ConsumerScore], Any] | None = None
        self.on_layers_change: Callable[[ConsumerLayers | None], Any] | None = None
        self.on_trace: Callable[[ConsumerTraceEventData], Any] | None = None
        self.on_rtp: Callable[[bytes], Any] | None = None

        self._channel.subscribe(self.id, self._on_channel_event)
        self._payload_channel.subscribe(self.id, self._on_payload_event)

    @property
    def id(self) -> str:
        return self._internal.consumer_id

    @property
    def producer_id(self) -> str:
        return self._producer_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def rtp_parameters(self) -> Any:
        return self._rtp_parameters

    @property
    def type(self) -> ConsumerType:
        return self._type

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def producer_paused(self) -> bool:
        return self._producer_paused

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def score(self) -> ConsumerScore:
        return self._score

    @property
    def preferred_layers(self) -> ConsumerLayers | None:
        return self._preferred_layers

    @property
    def current_layers(self) -> ConsumerLayers | None:
        return self._current_layers

    @property
    def app_data(self) -> Any:
        return self._app_data

    @property
    def observer(self) -> EventEmitter:
        return self._observer

    def close(self) -> None:
        """Close the consumer; a worker error is raised after closing."""
        if not self._mark_closed():
            return
        self._logger.debug("close()")
        self._unsubscribe()

        failure: Exception | None = None
        try:
            self._channel.request(
                "transport.closeConsumer", self._internal, {"consumerId": self.id}
            )
        except Exception as exc:
            self._logger.error("consumer close failed: %s", exc)
            failure = exc

        self.emit("@close")
        self.remove_all_listeners()
        self._notify_closed()

        if failure is not None:
            raise failure

    def transport_closed(self) -> None:
        """Mark the consumer closed because its transport was closed."""
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
        """Return the worker's dump of this consumer."""
        self._logger.debug("dump()")
        return self._channel.request("consumer.dump", self._internal)

    def get_stats(self) -> list[ConsumerStat]:
        """Return the statistics of the consumer and of its producer stream."""
        self._logger.debug("getStats()")
        stats = self._channel.request("consumer.getStats", self._internal) or []
        return [ConsumerStat.from_dict(entry) for entry in stats]

    def pause(self) -> None:
        """Pause the consumer."""
        self._logger.debug("pause()")
        was_paused = self._paused or self._producer_paused
        self._channel.request("consumer.pause", self._internal)
        self._paused = True
        if not was_paused:
            self._observer.safe_emit("pause")
            if self.on_pause is not None:
                self.on_pause()

    def resume(self) -> None:
        """Resume the consumer."""
        self._logger.debug("resume()")
        was_paused = self._paused or self._producer_paused
        self._channel.request("consumer.resume", self._internal)
        self._paused = False
        if was_paused and not self._producer_paused:
            self._observer.safe_emit("resume")
            if self.on_resume is not None:
                self.on_resume()

    def set_preferred_layers(self, layers: ConsumerLayers) -> None:
        """Set the preferred video layers; the worker's choice is kept."""
        self._logger.debug("setPreferredLayers()")
        result = self._channel.request(
            "consumer.setPreferredLayers", self._internal, layers.to_dict()
        )
        self._preferred_layers = ConsumerLayers.from_dict(result) if isinstance(result, dict) else None

    def set_priority(self, priority: int) -> None:
        """Set the priority of the consumer."""
        self._logger.debug("setPriority()")
        result = self._channel.request(
            "consumer.setPriority", self._internal, {"priority": priority}
        )
        self._priority = int(_lookup(result, "priority", 0))

    def unset_priority(self) -> None:
        """Restore the default priority of 1."""
        self._logger.debug("unsetPriority()")
        self.set_priority(1)

    def request_key_frame(self) -> None:
        """Ask the producer for a key frame."""
        self._logger.debug("requestKeyFrame()")
        self._channel.request("consumer.requestKeyFrame", self._internal)

    def enable_trace_event(self, *args: ConsumerTraceEventType | str) -> None:
        """Enable the "trace" event for the given types (none disables it)."""
        self._logger.debug("enableTraceEvent()")
        types = [t.value if isinstance(t, enum.Enum) else str(t) for t in args]
        self._channel.request("consumer.enableTraceEvent", self._internal, {"types": types})

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
        if event == "producerclose":
            self._handle_producer_close()
        elif event == "producerpause":
            self._handle_producer_pause()
        elif event == "producerresume":
            self._handle_producer_resume()
        elif event == "score":
            if not isinstance(data, dict):
                self._logger.error("failed to unmarshal score: %r", data)
                return
            try:
                score = ConsumerScore.from_dict(data)
            except (TypeError, ValueError) as exc:
                self._logger.error("failed to unmarshal score: %s", exc)
                return
            self._score = score
            self.safe_emit("score", score)
            self._observer.safe_emit("score", score)
            if self.on_score is not None:
                self.on_score(score)
        elif event == "layerschange":
            if data is not None and not isinstance(data, dict):
                self._logger.error("failed to unmarshal layers: %r", data)
                return
            try:
                layers = ConsumerLayers.from_dict(data) if data is not None else None
            except (TypeError, ValueError) as exc:
                self._logger.error("failed to unmarshal layers: %s", exc)
                return
            self._current_layers = layers
            self.safe_emit("layerschange", layers)
            self._observer.safe_emit("layerschange", layers)
            if self.on_layers_change is not None:
                self.on_layers_change(layers)
        elif event == "trace":
            if not isinstance(data, dict):
                self._logger.error("failed to unmarshal trace: %r", data)
                return
            try:
                trace = ConsumerTraceEventData.from_dict(data)
            except (TypeError, ValueError) as exc:
                self._logger.error("failed to unmarshal trace: %s", exc)
                return
            self.safe_emit("trace", trace)
            self._observer.safe_emit("trace", trace)
            if self.on_trace is not None:
                self.on_trace(trace)
        else:
            self._logger.error("ignoring unknown event in channel listener: %s", event)

    def _handle_producer_close(self) -> None:
        if not self._mark_closed():
            return
        self._unsubscribe()
        self.emit("@producerclose")
        self.safe_emit("producerclose")
        self.remove_all_listeners()
        if self.on_producer_close is not None:
            self.on_producer_close()
        self._notify_closed()

    def _handle_producer_pause(self) -> None:
        if self._producer_paused:
            return
        was_paused = self._paused or self._producer_paused
        self._producer_paused = True
        self.safe_emit("producerpause")
        if self.on_producer_pause is not None:
            self.on_producer_pause()
        if not was_paused:
            self._observer.safe_emit("pause")
            if self.on_pause is not None:
                self.on_pause()

    def _handle_producer_resume(self) -> None:
        if not self._producer_paused:
            return
        was_paused = self._paused or self._producer_paused
        self._producer_paused = False
        self.safe_emit("producerresume")
        if self.on_producer_resume is not None:
            self.on_producer_resume()
        if was_paused and not self._paused:
            self._observer.safe_emit("resume")
            if self.on_resume is not None:
                self.on_resume()

    def _on_payload_event(self, event: str, data: Any, payload: bytes) -> None:
        if event == "rtp":
            if self._closed:
                return
            self.safe_emit("rtp", payload)
            if self.on_rtp is not None:
                self.on_rtp(payload)
        else:
            self._logger.error("ignoring unknown event in payload channel listener: %s", event)