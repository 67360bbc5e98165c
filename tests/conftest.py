import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import copy
import json

import httpx
import pytest

from stockflow import config
from stockflow.v1.src import db_firebase
from stockflow.v1.src.db_firebase import to_connection
from stockflow.v1.src.ebay import client as ebay_client
from stockflow.v1.src.utils import now_timestamp


class FakeFirebaseDB:
    """In-memory stand-in for FirebaseDB with the same coroutine interface."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.connections: dict[str, dict[str, dict]] = {}
        self.orders: dict[str, dict[str, dict]] = {}
        self.inventory: dict[str, dict[str, dict]] = {}
        self.webhook_events: dict[str, dict] = {}
        self.webhook_event_creates = 0
        self.order_writes = 0
        self._next_id = 0

    # helpers for tests
    def add_user(self, uid: str, **data):
        self.users[uid] = data

    def add_raw_connection(self, uid: str, connection_id: str | None = None, **data) -> str:
        if connection_id is None:
            self._next_id += 1
            connection_id = f"conn-{self._next_id}"
        self.connections.setdefault(uid, {})[connection_id] = data
        return connection_id

    async def get_user(self, uid):
        return copy.deepcopy(self.users.get(uid))

    async def get_connection(self, uid, connection_id=None):
        docs = self.connections.get(uid, {})
        if connection_id:
            if connection_id not in docs:
                return None
            return to_connection(uid, connection_id, docs[connection_id])
        if not docs:
            return None
        first_id = next(iter(docs))
        return to_connection(uid, first_id, docs[first_id])

    async def list_connections(self, uid):
        return [to_connection(uid, cid, data) for cid, data in self.connections.get(uid, {}).items()]

    async def scan_connections(self, limit):
        found = [
            to_connection(uid, cid, data)
            for uid, docs in self.connections.items()
            for cid, data in docs.items()
        ]
        return found[:limit]

    async def add_connection(self, uid, data):
        return self.add_raw_connection(uid, **copy.deepcopy(data))

    async def update_connection(self, uid, connection_id, data):
        self.connections[uid][connection_id].update(copy.deepcopy(data))

    async def delete_connection(self, uid, connection_id):
        return self.connections.get(uid, {}).pop(connection_id, None) is not None

    async def update_connection_token(self, uid, connection_id, token_data, previous_refresh_token):
        now = now_timestamp()
        update = {
            "accessToken": token_data.access_token,
            "refreshToken": token_data.refresh_token or previous_refresh_token,
            "expiresAt": now + token_data.expires_in,
            "refreshExpiresAt": now + token_data.refresh_token_expires_in,
        }
        self.connections[uid][connection_id].update(update)
        return update

    async def save_selection(self, uid, connection_id, selection):
        self.connections[uid][connection_id].update(copy.deepcopy(selection.model_dump()))

    async def set_last_auto_order_sync(self, uid, connection_id, date):
        self.connections[uid][connection_id]["lastAutoOrderSyncAt"] = date

    async def upsert_order(self, uid, order):
        self.order_writes += 1
        stored = self.orders.setdefault(uid, {}).setdefault(order["orderId"], {})
        stored.update(copy.deepcopy(order))

    async def list_orders(self, uid, limit=200):
        orders = [{"id": oid, **data} for oid, data in self.orders.get(uid, {}).items()]
        orders.sort(key=lambda o: o.get("creationDate") or "", reverse=True)
        return orders[:limit]

    async def set_inventory_quantity(self, uid, doc_id, quantity, status):
        self.inventory.setdefault(uid, {}).setdefault(doc_id, {}).update(
            {"quantity": quantity, "status": status}
        )

    async def get_webhook_event(self, event_id):
        return copy.deepcopy(self.webhook_events.get(event_id))

    async def create_webhook_event(self, event):
        if event.eventId in self.webhook_events:
            return False
        self.webhook_event_creates += 1
        self.webhook_events[event.eventId] = event.model_dump(
            exclude={"eventId", "processedAt", "syncResult"}
        )
        return True

    async def merge_webhook_event(self, event_id, data):
        self.webhook_events.setdefault(event_id, {}).update(copy.deepcopy(data))


class EbayMock:
    """Routes outbound httpx calls to per-path handlers and records them."""

    def __init__(self):
        self.routes = []
        self.calls: list[httpx.Request] = []

    def on(self, method: str, path: str, handler, prefix: bool = False):
        self.routes.append((method, path, prefix, handler))

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [call for call in self.calls if call.url.path == path]

    def find_handler(self, request: httpx.Request):
        for method, path, prefix, handler in self.routes:
            if method != request.method:
                continue
            if request.url.path == path or (prefix and request.url.path.startswith(path)):
                return handler
        return None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.find_handler(request)
        if handler is None:
            return httpx.Response(404, json={"errors": [{"message": "not mocked"}]})
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeFirebaseDB()
    monkeypatch.setattr(db_firebase, "db", fake)
    return fake


@pytest.fixture
def ebay(monkeypatch):
    mock = EbayMock()
    monkeypatch.setattr(ebay_client, "http_transport", httpx.MockTransport(mock))
    return mock


@pytest.fixture(autouse=True)
def ebay_app_config(monkeypatch):
    monkeypatch.setattr(config, "EBAY_CLIENT_ID", "client-id")
    monkeypatch.setattr(config, "EBAY_CLIENT_SECRET", "client-secret")
    monkeypatch.setattr(config, "EBAY_RUNAME", "Test-RuName")
    monkeypatch.setattr(config, "EBAY_SANDBOX", "true")
    monkeypatch.setattr(config, "EBAY_WEBHOOK_SECRET", None)
    monkeypatch.setattr(config, "EBAY_WEBHOOK_VERIFICATION_TOKEN", None)
    monkeypatch.setattr(config, "EBAY_WEBHOOK_REQUIRE_DELIVERY_ID", False)
    monkeypatch.setattr(config, "CRON_SECRET", "cron-secret")
    monkeypatch.setattr(config, "status_config", {"status": "ok", "api": {}})


def fresh_connection(**overrides) -> dict:
    data = {
        "accessToken": "access-token",
        "refreshToken": "refresh-token",
        "expiresAt": now_timestamp() + 3600,
        "environment": "sandbox",
        "selectedListingIds": [],
    }
    data.update(overrides)
    return data


def json_body(request: httpx.Request) -> dict:
    return json.loads(request.content or b"{}")
