# Local Imports
from ..constants import (
    orders_page_size,
    max_order_pages,
    auto_sync_max_pages,
    auto_sync_max_connections,
)
from ..db_firebase import get_db
from ..errors import MarketplaceApiError
from ..models import SyncOrdersResult, AutoSyncResult
from ..utils import now_iso
from .client import order_search_url, search_orders
from .extract import extract_order, select_line_items
from .tokens import get_valid_token, SyncSession

# External Imports
from pydantic import ValidationError

import traceback


NO_CONNECTION_ERROR = "No eBay connection. Connect your eBay account in Integrations first."
NO_SELECTION_MESSAGE = "No selected listings for this eBay connection. Select listings first, then sync."


# --------------------------------------------------- #
# eBay Order Sync                                     #
# --------------------------------------------------- #


async def sync_orders(
    uid: str,
    connection_id: str | None = None,
    filter_not_started: bool = False,
    max_pages: int = max_order_pages,
    page_size: int = orders_page_size,
    session: SyncSession | None = None,
) -> SyncOrdersResult:
    """
    Copy the connection's eBay orders that contain at least one selected listing
    into users/{uid}/ebayOrders. Only the selected line items are stored.

    A failed page stops the sync; orders saved from earlier pages stay saved.
    """
    db = get_db()
    total_fetched, total_saved = 0, 0

    try:
        # Step 1: Resolve a token
        conn = await get_valid_token(uid, connection_id, session=session)
        if conn is None:
            return SyncOrdersResult(ok=False, error=NO_CONNECTION_ERROR)

        # Step 2: Load the selected listings
        connection = await db.get_connection(uid, conn.connectionId)
        if connection is None:
            return SyncOrdersResult(ok=False, error="No eBay connection")

        selected_ids = {listing_id for listing_id in connection.selectedListingIds if listing_id}
        if not selected_ids:
            return SyncOrdersResult(ok=True, message=NO_SELECTION_MESSAGE)

        next_url = order_search_url(conn.isSandbox, page_size, filter_not_started)
        page = 0
        while page < max_pages and next_url:
            page += 1

            # Step 3: Fetch a page of orders
            try:
                data = await search_orders(conn.accessToken, next_url)
            except MarketplaceApiError as error:
                return SyncOrdersResult(
                    ok=False,
                    totalFetched=total_fetched,
                    totalSaved=total_saved,
                    error=error.message,
                )

            orders = data.get("orders") or []
            total_fetched += len(orders)

            # Step 4: Keep orders containing selected listings
            for order in orders:
                if not isinstance(order, dict) or not order.get("orderId"):
                    continue

                selected_items = select_line_items(order, selected_ids)
                if not selected_items:
                    continue

                try:
                    synced = extract_order(order, conn.connectionId, selected_items, now_iso())
                except ValidationError as error:
                    print(f"[ebay order sync] skipping order {order.get('orderId')}: {error}")
                    continue

                # Step 5: Upsert
                await db.upsert_order(uid, synced.model_dump())
                total_saved += 1

            # Step 6: End of data
            next_url = data.get("next")
            if len(orders) < page_size:
                break

        # Step 7: Watermark
        await db.set_last_auto_order_sync(uid, conn.connectionId, now_iso())

        if session is not None:
            session.mark_synced(uid, conn.connectionId)

        return SyncOrdersResult(ok=True, totalFetched=total_fetched, totalSaved=total_saved)

    except Exception as error:
        print(traceback.format_exc())
        return SyncOrdersResult(
            ok=False,
            totalFetched=total_fetched,
            totalSaved=total_saved,
            error=str(error) or "Sync failed",
        )


async def run_auto_sync(
    max_pages: int = auto_sync_max_pages,
    max_connections: int = auto_sync_max_connections,
    session: SyncSession | None = None,
) -> AutoSyncResult:
    """
    Sync every connection (up to max_connections, across all users) that has a
    listing selection, one after the other, each bounded to max_pages.
    """
    if session is None:
        session = SyncSession()

    result = AutoSyncResult()
    connections = await get_db().scan_connections(max_connections)

    for connection in connections:
        result.scanned += 1
        if not connection.selectedListingIds:
            continue
        if session.was_synced(connection.userId, connection.connectionId):
            continue

        result.attempted += 1
        sync = await sync_orders(
            connection.userId,
            connection.connectionId,
            filter_not_started=False,
            max_pages=max_pages,
            page_size=orders_page_size,
            session=session,
        )

        result.totalFetched += sync.totalFetched
        result.totalSaved += sync.totalSaved
        if sync.ok:
            result.syncedConnections += 1
        else:
            result.errors.append(
                f"{connection.userId}/{connection.connectionId}: {sync.error or 'sync failed'}"
            )

    return result


async def list_orders(uid: str, limit: int = 200) -> list[dict]:
    return await get_db().list_orders(uid, limit)
