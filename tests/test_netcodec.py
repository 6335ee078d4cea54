import io
import sys
import threading

import pytest

from mediasoup.netcodec import NetLVCodec, NetStringCodec


class _FailingClose(io.BytesIO):
    def close(self):
        super().close()
        raise OSError("close failed")


def _lv_frames(*payloads):
    writer = io.BytesIO()
    codec = NetLVCodec(writer, io.BytesIO())
    for payload in payloads:
        codec.write_payload(payload)
    return writer.getvalue()


def _netstring_frames(*payloads):
    writer = io.BytesIO()
    codec = NetStringCodec(writer, io.BytesIO())
    for payload in payloads:
        codec.write_payload(payload)
    return writer.getvalue()


def test_netlv_wire_format_native_length_prefix():
    assert _lv_frames(b"hello") == len(b"hello").to_bytes(4, sys.byteorder) + b"hello"


def test_netlv_empty_payload_writes_nothing():
    assert _lv_frames(b"") == b""


def test_netlv_round_trip_several_payloads():
    payloads = [b"{}", b"D debug line", bytes(range(256))]
    codec = NetLVCodec(io.BytesIO(), io.BytesIO(_lv_frames(*payloads)))
    assert [codec.read_payload() for _ in payloads] == payloads


def test_netlv_end_of_stream_raises_eof():
    codec = NetLVCodec(io.BytesIO(), io.BytesIO(b""))
    with pytest.raises(EOFError):
        codec.read_payload()


def test_netlv_truncated_payload_raises_eof():
    frame = _lv_frames(b"hello")
    codec = NetLVCodec(io.BytesIO(), io.BytesIO(frame[:-2]))
    with pytest.raises(EOFError):
        codec.read_payload()


def test_netlv_concurrent_writes_stay_whole():
    writer = io.BytesIO()
    codec = NetLVCodec(writer, io.BytesIO())
    payloads = [f"message-{i}".encode() * 50 for i in range(20)]
    threads = [threading.Thread(target=codec.write_payload, args=(p,)) for p in payloads]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    reader_codec = NetLVCodec(io.BytesIO(), io.BytesIO(writer.getvalue()))
    received = [reader_codec.read_payload() for _ in payloads]
    assert sorted(received) == sorted(payloads)


def test_netlv_close_closes_both_streams():
    writer, reader = io.BytesIO(), io.BytesIO()
    NetLVCodec(writer, reader).close()
    assert writer.closed and reader.closed


def test_netlv_close_reports_writer_error_and_still_closes_reader():
    writer, reader = _FailingClose(), io.BytesIO()
    with pytest.raises(OSError, match="close failed"):
        NetLVCodec(writer, reader).close()
    assert reader.closed


def test_netstring_wire_format():
    assert _netstring_frames(b"hello") == b"5:hello,"


def test_netstring_empty_payload_round_trip():
    frame = _netstring_frames(b"")
    assert frame == b"0:,"
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(frame))
    assert codec.read_payload() == b""


def test_netstring_round_trip_several_payloads():
    payloads = [b'{"id":1}', b"a:b,c", bytes(range(256))]
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(_netstring_frames(*payloads)))
    assert [codec.read_payload() for _ in payloads] == payloads


def test_netstring_invalid_end_raises():
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(b"5:hello;"))
    with pytest.raises(ValueError, match="invalid payload end"):
        codec.read_payload()


def test_netstring_non_numeric_length_raises():
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(b"five:hello,"))
    with pytest.raises(ValueError):
        codec.read_payload()


def test_netstring_missing_separator_raises_eof():
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(b"12345"))
    with pytest.raises(EOFError):
        codec.read_payload()


def test_netstring_truncated_payload_raises_eof():
    codec = NetStringCodec(io.BytesIO(), io.BytesIO(b"10:short,"))
    with pytest.raises(EOFError):
        codec.read_payload()


def test_netstring_close_closes_both_streams():
    writer, reader = io.BytesIO(), io.BytesIO()
    with NetStringCodec(writer, reader):
        pass
    assert writer.closed and reader.closed


def test_netstring_close_reports_reader_error():
    writer, reader = io.BytesIO(), _FailingClose()
    with pytest.raises(OSError, match="close failed"):
        NetStringCodec(writer, reader).close()
    assert writer.closed