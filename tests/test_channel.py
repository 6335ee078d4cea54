import json
import queue
import threading
import time

import pytest

from mediasoup.channel import Channel
from mediasoup.errors import InvalidStateError, MediasoupError, MediasoupTypeError
from mediasoup.internal import NS_MESSAGE_MAX_LEN, InternalData
from mediasoup.netcodec import Codec


class FakeCodec(Codec):
    def __init__(self, responder=None, fail_writes=False):
        self.written = []
        self.incoming = queue.Queue()
        self.responder = responder
        self.fail_writes = fail_writes
        self.close_count = 0

    def write_payload(self, payload):
        if self.fail_writes:
            raise OSError("broken pipe")
        self.written.append(payload)
        if self.responder is not None:
            reply = self.responder(payload)
            if reply is not None:
                self.incoming.put(json.dumps(reply).encode())

    def read_payload(self):
        item = self.incoming.get()
        if item is None:
            raise EOFError("closed")
        return item

    def close(self):
        self.close_count += 1
        self.incoming.put(None)


def json_responder(**fields):
    def respond(payload):
        request = json.loads(payload)
        return {"id": request["id"], **fields}

    return respond


@pytest.fixture
def make_channel():
    channels = []

    def factory(responder=None, **kwargs):
        codec = FakeCodec(responder, fail_writes=kwargs.pop("fail_writes", False))
        channel = Channel(codec, **kwargs)
        channel.start()
        channels.append(channel)
        return channel, codec

    yield factory
    for channel in channels:
        channel.close()


def test_request_returns_response_data(make_channel):
    channel, codec = make_channel(json_responder(accepted=True, data={"routerIds": ["r1"]}))
    result = channel.request("worker.dump")
    assert result == {"routerIds": ["r1"]}
    sent = json.loads(codec.written[0])
    assert sent["method"] == "worker.dump"
    assert sent["data"] is None
    assert sent["internal"] == {}


def test_request_json_format_carries_internal_and_data(make_channel):
    channel, codec = make_channel(json_responder(accepted=True))
    internal = InternalData(router_id="r1", transport_id="t1")
    assert channel.request("transport.dump", internal, {"foo": "bar"}) is None
    sent = json.loads(codec.written[0])
    assert sent["internal"] == {"routerId": "r1", "transportId": "t1"}
    assert sent["data"] == {"foo": "bar"}


def test_old_close_methods_are_renamed(make_channel):
    channel, codec = make_channel(json_responder(accepted=True))
    channel.request("worker.closeRouter", InternalData(router_id="r1"))
    assert json.loads(codec.written[0])["method"] == "router.close"


def test_handler_id_format(make_channel):
    def respond(payload):
        return {"id": int(payload.split(b":", 1)[0]), "accepted": True, "data": {"ok": True}}

    channel, codec = make_channel(respond, use_handler_id=True)
    result = channel.request("consumer.dump", InternalData(consumer_id="c1"))
    assert result == {"ok": True}
    assert codec.written[0] == b"1:consumer.dump:c1:null"


def test_handler_id_format_keeps_close_method_name(make_channel):
    def respond(payload):
        return {"id": int(payload.split(b":", 1)[0]), "accepted": True}

    channel, codec = make_channel(respond, use_handler_id=True)
    channel.request("worker.closeRouter", InternalData(), {"routerId": "r1"})
    parts = codec.written[0].split(b":", 3)
    assert parts[1] == b"worker.closeRouter"
    assert parts[2] == b"undefined"
    assert json.loads(parts[3]) == {"routerId": "r1"}


def test_request_ids_increase(make_channel):
    channel, codec = make_channel(json_responder(accepted=True))
    channel.request("worker.dump")
    channel.request("worker.dump")
    ids = [json.loads(p)["id"] for p in codec.written]
    assert ids[1] == ids[0] + 1


def test_type_error_response(make_channel):
    channel, _ = make_channel(json_responder(error="TypeError", reason="wrong priority"))
    with pytest.raises(MediasoupTypeError, match="wrong priority"):
        channel.request("consumer.setPriority", InternalData(consumer_id="c1"), {"priority": 0})


def test_other_error_response(make_channel):
    channel, _ = make_channel(json_responder(error="Error", reason="not found"))
    with pytest.raises(MediasoupError) as info:
        channel.request("consumer.dump")
    assert str(info.value) == "not found"
    assert not isinstance(info.value, TypeError)


def test_request_on_closed_channel(make_channel):
    channel, _ = make_channel(json_responder(accepted=True))
    channel.close()
    with pytest.raises(InvalidStateError, match="Channel closed"):
        channel.request("worker.dump")


def test_request_too_big(make_channel):
    channel, codec = make_channel(json_responder(accepted=True))
    with pytest.raises(MediasoupError, match="Channel request too big"):
        channel.request("worker.dump", InternalData(), "a" * NS_MESSAGE_MAX_LEN)
    assert codec.written == []


def test_request_timeout(make_channel):
    channel, _ = make_channel(None, timeout=0.1)
    with pytest.raises(TimeoutError, match="Channel response timeout"):
        channel.request("worker.dump")


def test_close_while_waiting_rejects(make_channel):
    channel, _ = make_channel(None)
    timer = threading.Timer(0.05, channel.close)
    timer.start()
    with pytest.raises(InvalidStateError, match="Channel closed"):
        channel.request("worker.dump")
    timer.join()
    assert channel.closed


def test_write_failure_propagates(make_channel):
    channel, _ = make_channel(None, fail_writes=True)
    with pytest.raises(OSError, match="broken pipe"):
        channel.request("worker.dump")


def test_close_is_idempotent_and_closes_codec(make_channel):
    channel, codec = make_channel()
    channel.close()
    channel.close()
    assert channel.closed
    assert codec.close_count == 1


def test_notification_routed_to_subscriber():
    channel = Channel(FakeCodec())
    received = []
    channel.subscribe("t1", lambda event, data: received.append((event, data)))
    channel.process_payload(b'{"targetId":"t1","event":"score","data":{"score":9}}')
    assert received == [("score", {"score": 9})]


def test_numeric_target_id_is_formatted():
    channel = Channel(FakeCodec())
    received = []
    channel.subscribe("5", lambda event, data: received.append(event))
    channel.process_payload(b'{"targetId":5,"event":"a"}')
    channel.process_payload(b'{"targetId":5.0,"event":"b"}')
    assert received == ["a", "b"]


def test_notification_without_data_gives_none():
    channel = Channel(FakeCodec())
    received = []
    channel.subscribe("t1", lambda event, data: received.append(data))
    channel.process_payload(b'{"targetId":"t1","event":"silence"}')
    assert received == [None]


def test_unsubscribe_stops_notifications():
    channel = Channel(FakeCodec())
    received = []
    channel.subscribe("t1", lambda event, data: received.append(event))
    channel.unsubscribe("t1")
    channel.process_payload(b'{"targetId":"t1","event":"score"}')
    assert received == []


def test_unmatched_response_and_garbage_are_ignored():
    channel = Channel(FakeCodec())
    received = []
    channel.subscribe("t1", lambda event, data: received.append(event))
    channel.process_payload(b'{"id":99,"accepted":true}')
    channel.process_payload(b"{not json")
    channel.process_payload(b"")
    channel.process_payload(b"Dsome debug line")
    channel.process_payload(b'{"targetId":"t1","event":""}')
    assert received == []
    assert not channel.closed


def test_x_payload_is_printed(capsys):
    channel = Channel(FakeCodec())
    channel.process_payload(b"Xhello worker")
    assert capsys.readouterr().out == "hello worker\n"


def test_read_loop_dispatches_and_closes_on_eof():
    codec = FakeCodec()
    channel = Channel(codec)
    got = threading.Event()
    channel.subscribe("t1", lambda event, data: got.set())
    channel.start()
    codec.incoming.put(b'{"targetId":"t1","event":"volumes","data":[]}')
    assert got.wait(2)
    codec.incoming.put(None)
    deadline = time.monotonic() + 2
    while not channel.closed and time.monotonic() < deadline:
        time.sleep(0.01)
    assert channel.closed