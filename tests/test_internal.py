import dataclasses

import pytest

from mediasoup.internal import InternalData

FULL = InternalData(
    router_id="r",
    transport_id="t",
    producer_id="p",
    consumer_id="c",
    data_producer_id="dp",
    data_consumer_id="dc",
    rtp_observer_id="o",
    web_rtc_server_id="w",
)


@pytest.mark.parametrize(
    "method, expected",
    [
        ("router.createWebRtcTransport", "r"),
        ("transport.produce", "t"),
        ("producer.pause", "p"),
        ("consumer.setPriority", "c"),
        ("dataProducer.dump", "dp"),
        ("dataConsumer.getStats", "dc"),
        ("rtpObserver.addProducer", "o"),
        ("webRtcServer.dump", "w"),
    ],
)
def test_handler_id_selects_by_method_prefix(method, expected):
    assert FULL.handler_id(method) == expected


def test_handler_id_unknown_prefix_is_undefined():
    assert FULL.handler_id("worker.createRouter") == "undefined"


def test_handler_id_without_dot_uses_whole_method():
    assert FULL.handler_id("router") == "r"


def test_handler_id_for_unset_field_is_empty():
    assert InternalData(router_id="r").handler_id("consumer.dump") == ""


def test_to_dict_omits_empty_ids():
    assert InternalData(router_id="r1", consumer_id="c1").to_dict() == {
        "routerId": "r1",
        "consumerId": "c1",
    }


def test_to_dict_of_empty_is_empty():
    assert InternalData().to_dict() == {}


def test_to_dict_uses_wire_names_for_every_field():
    result = FULL.to_dict()
    assert set(result) == {
        "routerId",
        "transportId",
        "producerId",
        "consumerId",
        "dataProducerId",
        "dataConsumerId",
        "rtpObserverId",
        "webRtcServerId",
    }
    assert result["webRtcServerId"] == "w"
    assert result["dataConsumerId"] == "dc"


def test_internal_data_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        FULL.router_id = "other"  # type: ignore[misc]
    assert FULL.router_id == "r"