# Local Imports
from stockflow import config
from ..constants import (
    EBAY_AUTH_URL,
    EBAY_SANDBOX_AUTH_URL,
    EBAY_SCOPES,
    TOKEN_REFRESH_BUFFER,
    DEFAULT_ACCESS_TOKEN_LIFETIME,
    DEFAULT_REFRESH_TOKEN_LIFETIME,
)
from ..db_firebase import get_db
from ..errors import MarketplaceApiError, TokenRefreshError, ebay_error_message
from ..models import EbayConnection, EbayTokenData, RefreshEbayTokenData
from ..utils import now_timestamp
from .client import get_ebay_api_base_url, get_http_client, safe_json

# External Imports
from urllib.parse import urlencode

import traceback
import base64
import httpx


class SyncSession:
    """
    Per-request cache shared by everything one request triggers: resolved
    tokens and the connections already synced.
    """

    def __init__(self) -> None:
        self.tokens: dict[tuple[str, str | None], EbayConnection | None] = {}
        self.synced: set[tuple[str, str]] = set()

    def mark_synced(self, uid: str, connection_id: str):
        self.synced.add((uid, connection_id))

    def was_synced(self, uid: str, connection_id: str) -> bool:
        return (uid, connection_id) in self.synced


# --------------------------------------------------- #
# eBay Token Refresh                                  #
# --------------------------------------------------- #


def token_endpoint(is_sandbox: bool) -> str:
    return f"{get_ebay_api_base_url(is_sandbox)}/identity/v1/oauth2/token"


def basic_auth_header(client_id: str, client_secret: str) -> str:
    credentials = f"{client_id}:{client_secret}"
    return "Basic " + base64.b64encode(credentials.encode("utf-8")).decode("utf-8")


def parse_token_response(body: dict, refresh_token: str | None = None) -> EbayTokenData:
    expires_in = body.get("expires_in")
    refresh_expires_in = body.get("refresh_token_expires_in")
    return EbayTokenData(
        access_token=body["access_token"],
        expires_in=expires_in if isinstance(expires_in, int) else DEFAULT_ACCESS_TOKEN_LIFETIME,
        refresh_token=body.get("refresh_token") or refresh_token,
        refresh_token_expires_in=(
            refresh_expires_in if isinstance(refresh_expires_in, int) else DEFAULT_REFRESH_TOKEN_LIFETIME
        ),
    )


async def request_ebay_token(is_sandbox: bool, form: dict) -> tuple[int, dict]:
    async with get_http_client() as client:
        response = await client.post(
            token_endpoint(is_sandbox),
            headers={
                "Authorization": basic_auth_header(config.EBAY_CLIENT_ID, config.EBAY_CLIENT_SECRET),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data=form,
        )
    return response.status_code, safe_json(response, {}) or {}


async def refresh_ebay_access_token(refresh_token: str, is_sandbox: bool) -> RefreshEbayTokenData:
    try:
        status_code, body = await request_ebay_token(
            is_sandbox, {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        if not (200 <= status_code < 300) or not body.get("access_token"):
            raise TokenRefreshError(f"eBay token refresh failed ({status_code})", detail=body)

        return RefreshEbayTokenData(data=parse_token_response(body, refresh_token), error=None)

    except (TokenRefreshError, httpx.HTTPError) as error:
        detail = getattr(error, "detail", None)
        print("[ebay refresh token]", str(error), detail if detail else "")
        return RefreshEbayTokenData(data=None, error=f"refresh_ebay_access_token(): {str(error)}")


async def get_valid_token(
    uid: str, connection_id: str | None = None, session: SyncSession | None = None
) -> EbayConnection | None:
    """
    Return a usable access token for the user's connection, refreshing it when it
    expires within the next five minutes.

    A failed refresh returns the stored (possibly stale) token instead of failing.
    """
    cache_key = (uid, connection_id)
    if session is not None and cache_key in session.tokens:
        return session.tokens[cache_key]

    conn = await resolve_token(uid, connection_id)

    if session is not None:
        session.tokens[cache_key] = conn
        if conn is not None:
            session.tokens[(uid, conn.connectionId)] = conn
    return conn


async def resolve_token(uid: str, connection_id: str | None) -> EbayConnection | None:
    db = get_db()

    # Step 1: Find the connection document
    connection = await db.get_connection(uid, connection_id)
    if connection is None or not connection.accessToken:
        return None

    # Documents without an environment are production connections
    is_sandbox = connection.environment == "sandbox"
    current = EbayConnection(
        connectionId=connection.connectionId,
        accessToken=connection.accessToken,
        isSandbox=is_sandbox,
    )

    # Step 2: Token still valid beyond the buffer, nothing to do
    if (connection.expiresAt or 0) > now_timestamp() + TOKEN_REFRESH_BUFFER:
        return current

    # Step 3: Nothing to refresh with, hand back what we have
    if not connection.refreshToken:
        return current

    if not config.EBAY_CLIENT_ID or not config.EBAY_CLIENT_SECRET:
        print("[ebay refresh token] EBAY_CLIENT_ID / EBAY_CLIENT_SECRET are not configured")
        return None

    # Step 4: Refresh and persist
    token_data = await refresh_ebay_access_token(connection.refreshToken, is_sandbox)
    if token_data.data is None:
        return current

    try:
        await db.update_connection_token(
            uid, connection.connectionId, token_data.data, connection.refreshToken
        )
    except RuntimeError:
        print(traceback.format_exc())

    return EbayConnection(
        connectionId=connection.connectionId,
        accessToken=token_data.data.access_token,
        isSandbox=is_sandbox,
    )


# --------------------------------------------------- #
# eBay consent flow                                   #
# --------------------------------------------------- #


def build_authorize_url(add_new: bool = False) -> str:
    params = {
        "client_id": config.EBAY_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": config.EBAY_RUNAME,
        "scope": " ".join(EBAY_SCOPES),
        "state": "ebay_add" if add_new else "ebay",
    }
    # Force the login screen so a different eBay account can be connected
    if add_new:
        params["prompt"] = "login"

    auth_host = EBAY_SANDBOX_AUTH_URL if config.is_sandbox_app() else EBAY_AUTH_URL
    return f"{auth_host}?{urlencode(params)}"


async def exchange_code_for_token(uid: str, code: str, add_new: bool = False) -> str:
    """
    Trade an authorization code for tokens and store them on a connection.
    Returns the environment the connection was created in.
    """
    is_sandbox = config.is_sandbox_app()
    status_code, body = await request_ebay_token(
        is_sandbox,
        {"grant_type": "authorization_code", "code": code, "redirect_uri": config.EBAY_RUNAME},
    )

    if not (200 <= status_code < 300):
        print("[ebay exchange-token]", status_code, body)
        raise MarketplaceApiError(
            "Failed to exchange code with eBay",
            status_code=status_code,
            detail=ebay_error_message(body, body.get("error")),
        )

    if not body.get("access_token"):
        raise MarketplaceApiError("No access token in eBay response", status_code=status_code)

    token_data = parse_token_response(body)
    now = now_timestamp()
    environment = "sandbox" if is_sandbox else "production"
    doc_data = {
        "accessToken": token_data.access_token,
        "refreshToken": token_data.refresh_token,
        "connectedAt": now,
        "expiresAt": now + token_data.expires_in,
        "refreshExpiresAt": now + token_data.refresh_token_expires_in,
        "environment": environment,
    }

    db = get_db()
    existing = None if add_new else await db.get_connection(uid)
    if existing is None:
        await db.add_connection(uid, doc_data)
    else:
        await db.update_connection(uid, existing.connectionId, doc_data)

    return environment
