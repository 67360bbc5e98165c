from urllib.parse import parse_qs

import httpx

from stockflow import config
from stockflow.v1.src.ebay.tokens import (
    SyncSession,
    build_authorize_url,
    exchange_code_for_token,
    get_valid_token,
)
from stockflow.v1.src.utils import now_timestamp

from conftest import fresh_connection

TOKEN_PATH = "/identity/v1/oauth2/token"


def token_form(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


async def test_fresh_token_is_returned_without_refresh(fake_db, ebay):
    cid = fake_db.add_raw_connection("u1", **fresh_connection())

    conn = await get_valid_token("u1", cid)

    assert conn.accessToken == "access-token"
    assert conn.connectionId == cid
    assert conn.isSandbox is True
    assert ebay.calls_to(TOKEN_PATH) == []


async def test_connection_without_environment_is_production(fake_db, ebay):
    data = fresh_connection(expiresAt=now_timestamp() - 10)
    del data["environment"]
    cid = fake_db.add_raw_connection("u1", **data)
    ebay.on("POST", TOKEN_PATH, lambda request: {"access_token": "new-token"})

    conn = await get_valid_token("u1", cid)

    assert conn.isSandbox is False
    assert ebay.calls_to(TOKEN_PATH)[0].url.host == "api.ebay.com"


async def test_expiring_token_is_refreshed_and_persisted(fake_db, ebay):
    cid = fake_db.add_raw_connection("u1", **fresh_connection(expiresAt=now_timestamp() + 60))
    ebay.on("POST", TOKEN_PATH, lambda request: {"access_token": "new-token", "expires_in": 7200})

    conn = await get_valid_token("u1", cid)

    assert conn.accessToken == "new-token"
    stored = fake_db.connections["u1"][cid]
    assert stored["accessToken"] == "new-token"
    assert stored["refreshToken"] == "refresh-token"
    assert stored["expiresAt"] >= now_timestamp() + 7000

    request = ebay.calls_to(TOKEN_PATH)[0]
    assert request.headers["Authorization"].startswith("Basic ")
    assert token_form(request) == {"grant_type": "refresh_token", "refresh_token": "refresh-token"}


async def test_failed_refresh_returns_stale_token(fake_db, ebay):
    cid = fake_db.add_raw_connection("u1", **fresh_connection(expiresAt=now_timestamp() - 10))
    ebay.on(
        "POST",
        TOKEN_PATH,
        lambda request: httpx.Response(400, json={"error": "invalid_grant"}),
    )

    conn = await get_valid_token("u1", cid)

    assert conn.accessToken == "access-token"
    assert fake_db.connections["u1"][cid]["accessToken"] == "access-token"


async def test_expired_token_without_refresh_token_is_returned_as_is(fake_db, ebay):
    cid = fake_db.add_raw_connection(
        "u1", **fresh_connection(expiresAt=now_timestamp() - 10, refreshToken=None)
    )

    conn = await get_valid_token("u1", cid)

    assert conn.accessToken == "access-token"
    assert ebay.calls == []


async def test_missing_access_token_or_connection_gives_none(fake_db, ebay):
    cid = fake_db.add_raw_connection("u1", **fresh_connection(accessToken=""))

    assert await get_valid_token("u1", cid) is None
    assert await get_valid_token("nobody") is None


async def test_missing_client_credentials_gives_none(fake_db, ebay, monkeypatch):
    monkeypatch.setattr(config, "EBAY_CLIENT_SECRET", None)
    cid = fake_db.add_raw_connection("u1", **fresh_connection(expiresAt=now_timestamp() - 10))

    assert await get_valid_token("u1", cid) is None
    assert ebay.calls == []


async def test_millisecond_expiry_is_normalized(fake_db, ebay):
    cid = fake_db.add_raw_connection(
        "u1", **fresh_connection(expiresAt=(now_timestamp() + 3600) * 1000)
    )

    conn = await get_valid_token("u1", cid)

    assert conn.accessToken == "access-token"
    assert ebay.calls_to(TOKEN_PATH) == []


async def test_session_refreshes_once_per_request(fake_db, ebay):
    cid = fake_db.add_raw_connection("u1", **fresh_connection(expiresAt=now_timestamp() - 10))
    ebay.on("POST", TOKEN_PATH, lambda request: {"access_token": "new-token"})
    session = SyncSession()

    first = await get_valid_token("u1", cid, session=session)
    second = await get_valid_token("u1", cid, session=session)
    by_default = await get_valid_token("u1", session=session)

    assert first.accessToken == second.accessToken == "new-token"
    assert by_default.connectionId == cid
    assert len(ebay.calls_to(TOKEN_PATH)) == 1


def test_authorize_url_for_additional_account():
    url = build_authorize_url(add_new=True)

    assert url.startswith("https://auth.sandbox.ebay.com/oauth2/authorize?")
    assert "state=ebay_add" in url
    assert "prompt=login" in url
    assert "redirect_uri=Test-RuName" in url


def test_authorize_url_first_account():
    url = build_authorize_url()

    assert "state=ebay&" in url or url.endswith("state=ebay")
    assert "prompt" not in url


async def test_exchange_code_creates_then_updates_connection(fake_db, ebay):
    ebay.on(
        "POST",
        TOKEN_PATH,
        lambda request: {"access_token": "a1", "refresh_token": "r1", "expires_in": 7200},
    )

    environment = await exchange_code_for_token("u1", "auth-code")
    await exchange_code_for_token("u1", "auth-code")

    assert environment == "sandbox"
    assert len(fake_db.connections["u1"]) == 1
    stored = next(iter(fake_db.connections["u1"].values()))
    assert stored["accessToken"] == "a1"
    assert stored["refreshToken"] == "r1"
    assert token_form(ebay.calls_to(TOKEN_PATH)[0])["code"] == "auth-code"


async def test_exchange_code_with_add_new_creates_second_connection(fake_db, ebay):
    fake_db.add_raw_connection("u1", **fresh_connection())
    ebay.on("POST", TOKEN_PATH, lambda request: {"access_token": "a2", "refresh_token": "r2"})

    await exchange_code_for_token("u1", "auth-code", add_new=True)

    assert len(fake_db.connections["u1"]) == 2
