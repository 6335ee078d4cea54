# mediasoup

A Python library for the control side of a mediasoup media worker. It
provides the message channel that talks to the worker over a pair of byte
streams, the event emitter that the other objects build on, the `Consumer`,
`DataProducer` and `DataConsumer` objects, and helpers for H264
`profile-level-id` negotiation.

Python 3.10 or later is required. The package uses only the standard library.

## Installation

```
pip install .
```

## Modules

- `mediasoup.errors`: `MediasoupError` is the base class. `MediasoupTypeError`
  also derives from `TypeError`. `UnsupportedError` and `InvalidStateError`
  put their class name before the message, for example
  `"InvalidStateError:Channel closed"`.
- `mediasoup.internal`: `InternalData` is a frozen dataclass that holds the ids
  of a router, transport, producer, consumer, data producer, data consumer,
  RTP observer and WebRTC server. `handler_id(method)` returns the id that
  matches the prefix of a method name such as `"consumer.dump"`, or
  `"undefined"` when no prefix matches. `to_dict()` returns the non-empty ids
  under camel-case keys. The module also defines the size limits
  `NS_MESSAGE_MAX_LEN` and `NS_PAYLOAD_MAX_LEN`.
- `mediasoup.logger`: `new_logger(scope)` returns the `logging` logger named
  `mediasoup.<scope>`. The logger is set to debug level when the scope matches
  the `DEBUG` environment variable and to info level otherwise. `DEBUG` holds
  comma-separated glob patterns. A pattern that starts with `-` excludes the
  scopes it matches, and the last matching pattern decides.
  `should_debug(scope, debug)` applies this rule to a given string. Output
  goes to stderr. It is coloured when `DEBUG_COLORS` is set to a true value
  such as `1` or `true`.
- `mediasoup.event_emitter`: `EventEmitter` provides `on`, `once`, `off`,
  `emit`, `safe_emit`, `remove_all_listeners` and `listener_count`.
  - A listener receives as many positional arguments as it declares. Extra
    arguments are dropped, and missing required arguments are passed as `None`.
  - A `bytes` argument is decoded from JSON when the listener's parameter is
    annotated with another type. If that type is a dataclass, the decoded
    object is used to build an instance of it.
  - `emit` lets a listener's exception propagate. `safe_emit` logs the
    exception and goes on to the next listener.
- `mediasoup.h264`: `ProfileLevelId`, `parse_profile_level_id`,
  `parse_sdp_profile_level_id`, `is_same_profile`,
  `generate_profile_level_id_for_answer`, `RtpParameter`, the `PROFILE_*` and
  `LEVEL_*` constants, and the bit-pattern helpers `BitPattern`,
  `ProfilePattern` and `byte_mask_string`. `str()` of a `ProfileLevelId`
  returns its three hex bytes, or `""` when the id is invalid.
  `generate_profile_level_id_for_answer` raises `ValueError` when an id is
  invalid or the two profiles differ.
- `mediasoup.netcodec`: the abstract `Codec` and two implementations, each
  working over a writer and a reader binary stream:
  - `NetLVCodec` prefixes each payload with a 32-bit length in native byte
    order, and does not send empty payloads.
  - `NetStringCodec` frames each payload as `<length>:<payload>,`.

  Both raise `EOFError` when a stream ends in the middle of a payload.
  `NetStringCodec` raises `ValueError` for a malformed frame.
- `mediasoup.channel`: `Channel(codec, pid=0, use_handler_id=False,
  timeout=3.0)`.
  - `start()` reads messages in a background thread.
  - `request(method, internal, data)` sends a JSON request and returns the
    `data` of the worker's response.
  - `subscribe(target_id, handler)` and `unsubscribe(target_id)` route
    notifications to `handler(event, data)`.
  - `process_payload(payload)` handles one incoming message: JSON responses
    and notifications, and lines prefixed with `D`, `W`, `E` or `X`. `D`, `W`
    and `E` lines are logged at debug, warning and error level. `X` lines are
    printed to stdout.

  A request fails with `InvalidStateError` if the channel is closed,
  `TimeoutError` if no response arrives in time, `MediasoupTypeError` if the
  worker reports a `TypeError`, and `MediasoupError` for any other rejection
  or for a request that is too big.
- `mediasoup.consumer`: `Consumer`, with `ConsumerType`,
  `ConsumerTraceEventType`, `ConsumerScore`, `ConsumerLayers`,
  `ConsumerTraceEventData` and `ConsumerStat`.
  - Methods: `close`, `transport_closed`, `dump`, `get_stats`, `pause`,
    `resume`, `set_preferred_layers`, `set_priority`, `unset_priority`,
    `request_key_frame` and `enable_trace_event`.
  - It handles the worker notifications `producerclose`, `producerpause`,
    `producerresume`, `score`, `layerschange` and `trace`, and `rtp` payloads.
    Each is re-emitted as an event, and also reaches the matching `on_*`
    callback attribute when one is set.
- `mediasoup.data_producer`: `DataProducer` and `DataProducerType`.
  - `send(data)` sends binary data with PPID 53, or a single zero byte with
    PPID 57 when the data is empty.
  - `send_text(message)` sends UTF-8 text with PPID 51, or a single space with
    PPID 56 when the text is empty.
  - Other methods: `close`, `transport_closed`, `dump` and `get_stats`.
- `mediasoup.data_consumer`: `DataConsumer` and `DataConsumerType`.
  - `send` and `send_text` use the same PPID rules as `DataProducer`.
  - Other methods: `close`, `transport_closed`, `dump`, `get_stats`,
    `set_buffered_amount_low_threshold` and `get_buffered_amount`.
  - It handles the notifications `dataproducerclose`, `sctpsendbufferfull` and
    `bufferedamountlow`, and `message` payloads.

The media and data objects hold no connection of their own. They are given a
request channel, such as `Channel`, and a payload channel. Each is used only
through the few methods the object calls on it: `request`, `subscribe`,
`unsubscribe` and, for `DataProducer`, `notify`.

## Examples

### Events

```python
from mediasoup.event_emitter import EventEmitter

emitter = EventEmitter()
emitter.on("score", lambda score: print("score", score))
emitter.once("close", lambda: print("closed"))

emitter.emit("score", 10)
emitter.emit("close")
emitter.emit("close")  # the once-listener has already been removed
```

### H264 profile negotiation

```python
from mediasoup import h264

plid = h264.parse_profile_level_id("42e01f")
print(plid.profile, plid.level, str(plid))   # 1 31 42e01f

answer = h264.generate_profile_level_id_for_answer(
    h264.RtpParameter(profile_level_id="42e01f", level_asymmetry_allowed=1),
    h264.RtpParameter(profile_level_id="42e015", level_asymmetry_allowed=1),
)
print(answer)  # 42e01f
```

### Framing

```python
import io
from mediasoup.netcodec import NetStringCodec

out = io.BytesIO()
NetStringCodec(out, io.BytesIO()).write_payload(b"hello")
print(out.getvalue())  # b'5:hello,'
```

### Notifications

```python
import io
from mediasoup.channel import Channel
from mediasoup.netcodec import NetLVCodec

channel = Channel(NetLVCodec(io.BytesIO(), io.BytesIO()))
channel.subscribe("consumer-1", lambda event, data: print(event, data))
channel.process_payload(b'{"targetId":"consumer-1","event":"score","data":{"score":9}}')
# prints: score {'score': 9}
```

## What the package does not do

- It does not start, supervise or stop a worker process. You supply the byte
  streams that a `Channel` codec reads from and writes to.
- It has no workers, routers, transports, producers or RTP observers. It does
  not create consumers, data producers or data consumers for you.
- It has no payload channel. The objects that send binary payloads must be
  given one from outside the package.
- It has no command-line program.

## Running the tests

```
pip install ".[test]"
pytest
```