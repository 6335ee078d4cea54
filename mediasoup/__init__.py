"""Control side of a mediasoup media worker: channel, events, consumers and H264 helpers."""

__version__ = "0.1.0"

__all__ = [
    "channel",
    "consumer",
    "data_consumer",
    "data_producer",
    "errors",
    "event_emitter",
    "h264",
    "internal",
    "logger",
    "netcodec",
]