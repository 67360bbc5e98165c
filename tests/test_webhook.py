import pytest

from stockflow.v1.src.ebay.webhook import (
    challenge_response,
    derive_event_id,
    handle_webhook_event,
    is_webhook_authorized,
)
from stockflow.v1.src.errors import MissingDeliveryIdError

from conftest import fresh_connection

ORDERS_PATH = "/sell/fulfillment/v1/order"


def test_challenge_response_digest():
    assert (
        challenge_response("abc", "secret", "https://host/path")
        == "efb75381fa54b27c32ad371558318698166a0bd2508fc7c4bda9bf5e22d8341a"
    )
    assert (
        challenge_response("abd", "secret", "https://host/path")
        == "8a87083aaae0949fc53d1f976ce4f7712a623902acbd461dac82888f10423c10"
    )


@pytest.mark.parametrize(
    "headers, query, expected",
    [
        ({"authorization": "Bearer s3cret"}, {}, True),
        ({"x-ebay-webhook-token": "s3cret"}, {}, True),
        ({}, {"token": "s3cret"}, True),
        ({"authorization": "Bearer wrong"}, {"token": "wrong"}, False),
        ({}, {}, False),
    ],
)
def test_webhook_authorization(headers, query, expected):
    assert is_webhook_authorized(headers, query, "s3cret") is expected


def test_open_endpoint_without_secret():
    assert is_webhook_authorized({}, {}, None) is True


def test_event_id_prefers_delivery_headers():
    headers = {"x-ebay-message-id": "msg-1", "x-ebay-delivery-id": "del-1"}
    assert derive_event_id(headers, {"notificationId": "n-1"}) == "del-1"
    assert derive_event_id({"x-ebay-event-id": "ev-1"}, {}) == "ev-1"


def test_event_id_from_body():
    assert derive_event_id({}, {"notificationId": "n-1", "eventId": "e-1"}) == "n-1"
    assert derive_event_id({}, {"messageId": "m-1"}) == "m-1"


def test_event_id_falls_back_to_body_hash():
    event_id = derive_event_id({}, {"topic": "ORDER"})

    prefix, epoch_ms, body_hash = event_id.split("_")
    assert prefix == "anon"
    assert epoch_ms.isdigit()
    assert len(body_hash) == 32
    assert derive_event_id({}, {"topic": "ORDER"}).endswith(body_hash)


def test_strict_mode_requires_delivery_header():
    with pytest.raises(MissingDeliveryIdError):
        derive_event_id({}, {"notificationId": "n-1"}, require_delivery_id=True)

    assert derive_event_id({"x-ebay-delivery-id": "del-1"}, {}, require_delivery_id=True) == "del-1"


async def test_duplicate_delivery_syncs_once(fake_db, ebay):
    fake_db.add_raw_connection("u1", "c1", **fresh_connection(selectedListingIds=["111"]))
    ebay.on("GET", ORDERS_PATH, lambda request: {"orders": []})
    headers = {"x-ebay-delivery-id": "del-1", "x-ebay-topic": "ORDER_CREATED"}

    first = await handle_webhook_event("del-1", headers, {"hello": "world"})
    second = await handle_webhook_event("del-1", headers, {"hello": "world"})

    assert first["ok"] is True
    assert first["eventId"] == "del-1"
    assert first["sync"]["attempted"] == 1
    assert second == {"ok": True, "duplicate": True}

    assert fake_db.webhook_event_creates == 1
    assert len(ebay.calls_to(ORDERS_PATH)) == 1

    stored = fake_db.webhook_events["del-1"]
    assert stored["headers"] == {"topic": "ORDER_CREATED", "deliveryId": "del-1"}
    assert stored["payload"] == {"hello": "world"}
    assert stored["processedAt"]
    assert stored["syncResult"]["syncedConnections"] == 1


async def test_event_recorded_concurrently_is_a_duplicate(fake_db, ebay):
    async def lost_race(event):
        return False

    fake_db.create_webhook_event = lost_race

    result = await handle_webhook_event("del-1", {}, {})

    assert result == {"ok": True, "duplicate": True}
    assert ebay.calls == []
