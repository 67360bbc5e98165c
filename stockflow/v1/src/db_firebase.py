# Local Imports
from stockflow.config import firebase_credentials
from .constants import (
    users_key,
    connections_key,
    orders_key,
    inventory_key,
    webhook_events_key,
)
from .models import EbayTokenData, IConnection, ISelection, IWebhookEvent, InventoryStatus
from .utils import to_unix_seconds, now_timestamp

# External Imports
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1 import AsyncDocumentReference, DocumentSnapshot
from google.cloud import firestore
from google.api_core.exceptions import Conflict
from dotenv import load_dotenv

import os

load_dotenv()


# Connect to Firebase
db = None


def get_db():
    global db
    if not db:
        db = FirebaseDB()
    return db


def handle_firestore_errors(func):
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            # Print the function name along with the error
            print(f"{func.__name__} | Firebase Error: {e}")
            raise RuntimeError("An error occurred while interacting with Firebase.")

    return wrapper


def snapshot_to_connection(uid: str, snapshot: DocumentSnapshot) -> IConnection:
    return to_connection(uid, snapshot.id, snapshot.to_dict() or {})


def to_connection(uid: str, connection_id: str, data: dict) -> IConnection:
    return IConnection(
        connectionId=connection_id,
        userId=uid,
        accessToken=data.get("accessToken") or None,
        refreshToken=data.get("refreshToken") or None,
        expiresAt=to_unix_seconds(data.get("expiresAt")),
        refreshExpiresAt=to_unix_seconds(data.get("refreshExpiresAt")),
        connectedAt=to_unix_seconds(data.get("connectedAt")) or None,
        environment=data.get("environment") if data.get("environment") in ("sandbox", "production") else None,
        selectedOfferIds=[x for x in data.get("selectedOfferIds") or [] if isinstance(x, str)],
        selectedListingIds=[x for x in data.get("selectedListingIds") or [] if isinstance(x, str)],
        selectedListings=[x for x in data.get("selectedListings") or [] if isinstance(x, dict)],
        lastAutoOrderSyncAt=data.get("lastAutoOrderSyncAt"),
    )


class FirebaseDB:
    # A flag to track initialization
    _initialized = False
    _firebase_credentials = None

    def __init__(self) -> None:
        if not FirebaseDB._initialized:
            FirebaseDB._firebase_credentials = firebase_credentials()
            FirebaseDB._initialized = True

        self.db = AsyncClient(
            project=os.getenv("FIREBASE_PROJECT_ID"),
            credentials=FirebaseDB._firebase_credentials,
        )

    def query_user_ref(self, uid: str) -> AsyncDocumentReference:
        return self.db.collection(users_key).document(uid)

    def connections_ref(self, uid: str):
        return self.query_user_ref(uid).collection(connections_key)

    # --------------------------------------------------- #
    # Users                                               #
    # --------------------------------------------------- #

    @handle_firestore_errors
    async def get_user(self, uid: str) -> dict | None:
        snapshot = await self.query_user_ref(uid).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    # --------------------------------------------------- #
    # eBay connections                                    #
    # --------------------------------------------------- #

    @handle_firestore_errors
    async def get_connection(self, uid: str, connection_id: str | None = None) -> IConnection | None:
        """
        Fetch a connection by id, or the user's first connection when no id is given.
        """
        if connection_id:
            snapshot = await self.connections_ref(uid).document(connection_id).get()
            if not snapshot.exists:
                return None
            return snapshot_to_connection(uid, snapshot)

        docs = await self.connections_ref(uid).limit(1).get()
        if not docs:
            return None
        return snapshot_to_connection(uid, docs[0])

    @handle_firestore_errors
    async def list_connections(self, uid: str) -> list[IConnection]:
        docs = await self.connections_ref(uid).get()
        return [snapshot_to_connection(uid, doc) for doc in docs]

    @handle_firestore_errors
    async def scan_connections(self, limit: int) -> list[IConnection]:
        """Connections across all users (collection group query)."""
        docs = await self.db.collection_group(connections_key).limit(limit).get()

        connections = []
        for doc in docs:
            user_ref = doc.reference.parent.parent
            if user_ref is None:
                continue
            connections.append(snapshot_to_connection(user_ref.id, doc))
        return connections

    @handle_firestore_errors
    async def add_connection(self, uid: str, data: dict) -> str:
        _, doc_ref = await self.connections_ref(uid).add(data)
        return doc_ref.id

    @handle_firestore_errors
    async def update_connection(self, uid: str, connection_id: str, data: dict):
        await self.connections_ref(uid).document(connection_id).update(data)

    @handle_firestore_errors
    async def delete_connection(self, uid: str, connection_id: str) -> bool:
        ref = self.connections_ref(uid).document(connection_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            return False

        await ref.delete()
        return True

    @handle_firestore_errors
    async def update_connection_token(
        self, uid: str, connection_id: str, token_data: EbayTokenData, previous_refresh_token: str | None
    ) -> dict:
        """
        Store a refreshed access token along with the recomputed expiry timestamps.
        """
        now = now_timestamp()
        update = {
            "accessToken": token_data.access_token,
            "refreshToken": token_data.refresh_token or previous_refresh_token,
            "expiresAt": now + token_data.expires_in,
            "refreshExpiresAt": now + token_data.refresh_token_expires_in,
        }
        await self.connections_ref(uid).document(connection_id).update(update)
        return update

    @handle_firestore_errors
    async def save_selection(self, uid: str, connection_id: str, selection: ISelection):
        """Overwrite all three selection fields."""
        await self.connections_ref(uid).document(connection_id).update(selection.model_dump())

    @handle_firestore_errors
    async def set_last_auto_order_sync(self, uid: str, connection_id: str, date: str):
        await self.connections_ref(uid).document(connection_id).set(
            {"lastAutoOrderSyncAt": date}, merge=True
        )

    # --------------------------------------------------- #
    # Orders                                              #
    # --------------------------------------------------- #

    @handle_firestore_errors
    async def upsert_order(self, uid: str, order: dict):
        ref = self.query_user_ref(uid).collection(orders_key).document(order["orderId"])
        await ref.set(order, merge=True)

    @handle_firestore_errors
    async def list_orders(self, uid: str, limit: int = 200) -> list[dict]:
        query = (
            self.query_user_ref(uid)
            .collection(orders_key)
            .order_by("creationDate", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        docs = await query.get()
        return [{"id": doc.id, **(doc.to_dict() or {})} for doc in docs]

    # --------------------------------------------------- #
    # Inventory                                           #
    # --------------------------------------------------- #

    @handle_firestore_errors
    async def set_inventory_quantity(self, uid: str, doc_id: str, quantity: int, status: InventoryStatus):
        ref = self.query_user_ref(uid).collection(inventory_key).document(doc_id)
        await ref.set({"quantity": quantity, "status": status}, merge=True)

    # --------------------------------------------------- #
    # Webhook events                                      #
    # --------------------------------------------------- #

    @handle_firestore_errors
    async def get_webhook_event(self, event_id: str) -> dict | None:
        snapshot = await self.db.collection(webhook_events_key).document(event_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    @handle_firestore_errors
    async def create_webhook_event(self, event: IWebhookEvent) -> bool:
        """
        Write the raw event once. Returns False when a record with the same id
        already exists.
        """
        ref = self.db.collection(webhook_events_key).document(event.eventId)
        try:
            await ref.create(event.model_dump(exclude={"eventId", "processedAt", "syncResult"}))
        except Conflict:
            return False
        return True

    @handle_firestore_errors
    async def merge_webhook_event(self, event_id: str, data: dict):
        await self.db.collection(webhook_events_key).document(event_id).set(data, merge=True)
