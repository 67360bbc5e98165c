# Local Imports
from ..constants import webhook_sync_max_pages, webhook_sync_max_connections
from ..db_firebase import get_db
from ..errors import MissingDeliveryIdError
from ..models import IWebhookEvent, IWebhookHeaders
from ..utils import now_iso
from .order_sync import run_auto_sync
from .tokens import SyncSession

# External Imports
from datetime import datetime, timezone
from typing import Mapping

import hashlib
import json


HEADER_EVENT_ID_KEYS = ("x-ebay-delivery-id", "x-ebay-message-id", "x-ebay-event-id")
BODY_EVENT_ID_KEYS = ("notificationId", "eventId", "messageId")


# --------------------------------------------------- #
# eBay Marketplace notifications                      #
# --------------------------------------------------- #


def challenge_response(challenge_code: str, verification_token: str, endpoint: str) -> str:
    """Digest eBay expects back when it validates the notification endpoint."""
    return hashlib.sha256(f"{challenge_code}{verification_token}{endpoint}".encode("utf-8")).hexdigest()


def is_webhook_authorized(headers: Mapping[str, str], query: Mapping[str, str], secret: str | None) -> bool:
    # No secret configured: the endpoint is open
    if not secret:
        return True

    if headers.get("authorization") == f"Bearer {secret}":
        return True

    if headers.get("x-ebay-webhook-token") == secret:
        return True

    return query.get("token") == secret


def derive_event_id(
    headers: Mapping[str, str], payload: dict, require_delivery_id: bool = False
) -> str:
    """
    Event id from the delivery headers, then from the body, then a timestamped
    hash of the body.
    """
    for key in HEADER_EVENT_ID_KEYS:
        if headers.get(key):
            return headers[key]

    if require_delivery_id:
        raise MissingDeliveryIdError("Missing x-ebay-delivery-id header")

    for key in BODY_EVENT_ID_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value

    body_hash = hashlib.sha256(
        json.dumps(payload, separators=(",", ":")).encode("utf-8")
    ).hexdigest()[:32]
    epoch_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"anon_{epoch_ms}_{body_hash}"


async def handle_webhook_event(event_id: str, headers: Mapping[str, str], payload: dict) -> dict:
    """
    Record the event and run a shallow sync of every selected connection. An
    event id that was already recorded does nothing.
    """
    db = get_db()

    if await db.get_webhook_event(event_id) is not None:
        return {"ok": True, "duplicate": True}

    event = IWebhookEvent(
        eventId=event_id,
        createdAt=now_iso(),
        headers=IWebhookHeaders(
            topic=headers.get("x-ebay-topic"),
            deliveryId=headers.get("x-ebay-delivery-id"),
        ),
        payload=payload,
    )
    # Lost a race with a concurrent delivery of the same event
    if not await db.create_webhook_event(event):
        return {"ok": True, "duplicate": True}

    result = await run_auto_sync(
        max_pages=webhook_sync_max_pages,
        max_connections=webhook_sync_max_connections,
        session=SyncSession(),
    )
    sync = result.model_dump()

    await db.merge_webhook_event(event_id, {"processedAt": now_iso(), "syncResult": sync})

    return {"ok": True, "eventId": event_id, "sync": sync}
