# Local Imports
from ..db_firebase import get_db
from ..errors import NotConnectedError, StockFlowError
from .client import get_offer, update_offer_quantity
from .tokens import get_valid_token, SyncSession
from .trading import get_active_quantities, set_listing_quantity

# External Imports
import traceback
import httpx
import re


# --------------------------------------------------- #
# eBay -> StockFlow quantities                        #
# --------------------------------------------------- #


def inventory_doc_id(connection_id: str, listing_key: str) -> str:
    return re.sub(r"\s", "_", f"ebay_{connection_id}_{listing_key}")


async def fetch_offer_quantities(access_token: str, is_sandbox: bool, offer_ids: list[str]) -> dict[str, int]:
    quantities = {}
    for offer_id in offer_ids:
        try:
            offer = await get_offer(access_token, is_sandbox, offer_id)
        except (StockFlowError, httpx.HTTPError):
            continue

        try:
            quantities[offer_id] = int(offer.get("availableQuantity") or 0)
        except (TypeError, ValueError):
            quantities[offer_id] = 0
    return quantities


async def refresh_connection_inventory(
    uid: str, connection_id: str, session: SyncSession | None = None
) -> dict:
    """
    Pull the current eBay quantities of the connection's selected listings into
    users/{uid}/inventory.
    """
    db = get_db()

    conn = await get_valid_token(uid, connection_id, session=session)
    if conn is None:
        return {"updated": 0, "error": "Token invalid"}

    connection = await db.get_connection(uid, connection_id)
    if connection is None or not connection.selectedListings:
        return {"updated": 0}

    selected = connection.selectedListings
    quantity_by_key: dict[str, int] = {}

    # Step 1: Inventory API offers
    offer_ids = [row["offerId"] for row in selected if row.get("offerId")]
    quantity_by_key.update(await fetch_offer_quantities(conn.accessToken, conn.isSandbox, offer_ids))

    # Step 2: Trading API listings
    if any(row.get("listingId") for row in selected):
        try:
            quantity_by_key.update(await get_active_quantities(conn.accessToken, conn.isSandbox))
        except Exception:
            print(traceback.format_exc())

    # Step 3: Write quantities
    updated = 0
    for row in selected:
        listing_key = row.get("id") or row.get("offerId") or row.get("listingId")
        if not listing_key:
            continue

        quantity = next(
            (
                quantity_by_key[key]
                for key in (listing_key, row.get("offerId"), row.get("listingId"))
                if key and key in quantity_by_key
            ),
            None,
        )
        if quantity is None:
            continue

        status = "In Stock" if quantity > 0 else "Out of Stock"
        await db.set_inventory_quantity(uid, inventory_doc_id(connection_id, listing_key), quantity, status)
        updated += 1

    return {"updated": updated}


async def refresh_all_inventory(max_connections: int = 20) -> dict:
    session = SyncSession()
    connections = await get_db().scan_connections(max_connections)

    total_updated = 0
    for connection in connections:
        result = await refresh_connection_inventory(
            connection.userId, connection.connectionId, session=session
        )
        total_updated += result["updated"]

    return {"connections": len(connections), "totalUpdated": total_updated}


# --------------------------------------------------- #
# StockFlow -> eBay quantities                        #
# --------------------------------------------------- #


async def push_inventory_quantity(
    uid: str,
    connection_id: str,
    offer_id: str | None,
    listing_id: str | None,
    new_quantity: float,
) -> int:
    """
    Set the available quantity on eBay, through the Inventory API when an offer id
    is known and through the Trading API otherwise.
    """
    quantity = max(0, int(new_quantity // 1))

    conn = await get_valid_token(uid, connection_id)
    if conn is None:
        raise NotConnectedError("eBay connection not found or token invalid")

    if offer_id:
        await update_offer_quantity(conn.accessToken, conn.isSandbox, offer_id, quantity)
    else:
        await set_listing_quantity(conn.accessToken, conn.isSandbox, listing_id, quantity)

    return quantity
