"""Request/response and notification channel to the worker process."""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
import threading
from collections.abc import Callable
from typing import Any

from .errors import InvalidStateError, MediasoupError, MediasoupTypeError
from .internal import NS_MESSAGE_MAX_LEN, InternalData
from .logger import new_logger
from .netcodec import Codec

ChannelSubscriber = Callable[[str, Any], None]

DEFAULT_TIMEOUT = 3.0
_MAX_REQUEST_ID = 4294967295

# Method names understood by workers that do not address handlers by id.
_OLD_CLOSE_METHODS = {
    "worker.closeWebRtcServer": "webRtcServer.close",
    "worker.closeRouter": "router.close",
    "router.closeTransport": "transport.close",
    "router.closeRtpObserver": "rtpObserver.close",
    "transport.closeProducer": "producer.close",
    "transport.closeConsumer": "consumer.close",
    "transport.closeDataProducer": "dataProducer.close",
    "transport.closeDataConsumer": "dataConsumer.close",
}


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _encode(value: Any) -> str:
    return json.dumps(value, default=_json_default, separators=(",", ":"), ensure_ascii=False)


def _target_id_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return f"{value:.0f}"
    return str(value)


class _Pending:
    """A request waiting for its response."""

    __slots__ = ("method", "done", "data", "error")

    def __init__(self, method: str) -> None:
        self.method = method
        self.done = threading.Event()
        self.data: Any = None
        self.error: BaseException | None = None

    def resolve(self, data: Any) -> None:
        self.data = data
        self.done.set()

    def reject(self, error: BaseException) -> None:
        self.error = error
        self.done.set()


class Channel:
    """Sends JSON requests to the worker and dispatches what it sends back."""

    def __init__(
        self,
        codec: Codec,
        pid: int = 0,
        use_handler_id: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._logger = new_logger("Channel")
        self._logger.debug("constructor() [use_handler_id:%s]", use_handler_id)
        self._codec = codec
        self._pid = pid
        self._use_handler_id = use_handler_id
        self._timeout = timeout
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._closed = False
        self._next_id = 0
        self._pending: dict[int, _Pending] = {}
        self._subscribers: dict[str, ChannelSubscriber] = {}
        self._reader: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        """Whether the channel has been closed."""
        return self._closed

    @property
    def pid(self) -> int:
        """Process id of the worker at the other end."""
        return self._pid

    def start(self) -> None:
        """Start reading messages from the worker in a background thread."""
        self._reader = threading.Thread(
            target=self._run_read_loop, name="mediasoup-channel-read", daemon=True
        )
        self._reader.start()

    def close(self) -> None:
        """Close the channel; waiting requests fail with InvalidStateError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.items())
            self._pending.clear()
        self._logger.debug("close()")
        for request_id, sent in pending:
            sent.reject(
                InvalidStateError(f"Channel closed, id: {request_id}, method: {sent.method}")
            )
        self._codec.close()

    def request(self, method: str, internal: InternalData | None = None, data: Any = None) -> Any:
        """Send a request and return the decoded data of the worker's response."""
        if self._closed:
            raise InvalidStateError("Channel closed")
        internal = internal or InternalData()
        request_id = self._allocate_id()

        if not self._use_handler_id:
            method = _OLD_CLOSE_METHODS.get(method, method)

        self._logger.debug("request() [method:%s, id:%s]", method, request_id)

        raw_data = _encode(data)
        if self._use_handler_id:
            text = f"{request_id}:{method}:{internal.handler_id(method)}:{raw_data}"
        else:
            text = _encode(
                {
                    "id": request_id,
                    "method": method,
                    "internal": internal.to_dict(),
                    "data": data,
                }
            )
        request = text.encode("utf-8")
        if len(request) > NS_MESSAGE_MAX_LEN:
            raise MediasoupError("Channel request too big")

        sent = _Pending(method)
        with self._lock:
            if self._closed:
                raise InvalidStateError(f"Channel closed, id: {request_id}, method: {method}")
            self._pending[request_id] = sent
        try:
            with self._write_lock:
                self._codec.write_payload(request)
            if not sent.done.wait(self._timeout):
                raise TimeoutError(f"Channel response timeout, id: {request_id}, method: {method}")
        finally:
            with self._lock:
                self._pending.pop(request_id, None)

        if sent.error is not None:
            raise sent.error
        return sent.data

    def subscribe(self, target_id: str, handler: ChannelSubscriber) -> None:
        """Route notifications for ``target_id`` to ``handler(event, data)``."""
        with self._lock:
            self._subscribers[target_id] = handler

    def unsubscribe(self, target_id: str) -> None:
        """Stop routing notifications for ``target_id``."""
        with self._lock:
            self._subscribers.pop(target_id, None)

    def process_payload(self, payload: bytes) -> None:
        """Handle one message read from the worker."""
        if not payload:
            self._logger.error("unexpected empty payload [pid:%s]", self._pid)
            return
        kind, rest = payload[:1], bytes(payload[1:])
        text = rest.decode("utf-8", errors="replace")
        if kind == b"{":
            self._process_message(bytes(payload))
        elif kind == b"D":
            self._logger.debug("%s [pid:%s]", text, self._pid)
        elif kind == b"W":
            self._logger.warning("%s [pid:%s]", text, self._pid)
        elif kind == b"E":
            self._logger.error("%s [pid:%s]", text, self._pid)
        elif kind == b"X":
            print(text)
        else:
            self._logger.error("unexpected data: %s [pid:%s]", text, self._pid)

    def _allocate_id(self) -> int:
        with self._lock:
            self._next_id += 1
            request_id = self._next_id
            if self._next_id == _MAX_REQUEST_ID:
                self._next_id = 1
        return request_id

    def _run_read_loop(self) -> None:
        try:
            while True:
                try:
                    payload = self._codec.read_payload()
                except Exception as exc:
                    if not self._closed:
                        self._logger.error("read failed: %s", exc)
                    break
                self.process_payload(payload)
        finally:
            try:
                self.close()
            except Exception as exc:
                self._logger.error("close failed: %s", exc)

    def _process_message(self, payload: bytes) -> None:
        try:
            msg = json.loads(payload)
        except ValueError as exc:
            self._logger.error("received response, failed to unmarshal to json: %s", exc)
            return
        if not isinstance(msg, dict):
            self._logger.error("received message is not a response nor a notification")
            return

        request_id = msg.get("id")
        target_id = msg.get("targetId")
        event = msg.get("event")

        if isinstance(request_id, int) and not isinstance(request_id, bool) and request_id > 0:
            self._process_response(request_id, msg)
        elif target_id is not None and isinstance(event, str) and event:
            self._process_notification(_target_id_text(target_id), event, msg.get("data"))
        else:
            self._logger.error("received message is not a response nor a notification")

    def _process_response(self, request_id: int, msg: dict[str, Any]) -> None:
        with self._lock:
            sent = self._pending.get(request_id)
        if sent is None:
            self._logger.error("received response does not match any sent request [id:%s]", request_id)
            return

        error = msg.get("error")
        if msg.get("accepted"):
            self._logger.debug("request succeeded [method:%s, id:%s]", sent.method, request_id)
            sent.resolve(msg.get("data"))
        elif isinstance(error, str) and error:
            reason = str(msg.get("reason") or "")
            self._logger.error(
                "request failed [method:%s, id:%s]: %s", sent.method, request_id, reason
            )
            if error == "TypeError":
                sent.reject(MediasoupTypeError(reason))
            else:
                sent.reject(MediasoupError(reason))
        else:
            self._logger.error(
                "received response is not accepted nor rejected [method:%s, id:%s]",
                sent.method,
                request_id,
            )

    def _process_notification(self, target_id: str, event: str, data: Any) -> None:
        with self._lock:
            handler = self._subscribers.get(target_id)
        if handler is None:
            self._logger.debug(
                "received an unhandled notification [targetId:%s, event:%s]", target_id, event
            )
            return
        handler(event, data)
        self._logger.debug("received a notification [targetId:%s, event:%s]", target_id, event)