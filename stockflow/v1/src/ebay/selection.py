# Local Imports
from ..constants import max_offers_to_resolve
from ..db_firebase import get_db
from ..errors import NotConnectedError
from ..models import ISelection, ISelectedListing
from ..utils import unique_strings
from .client import get_offer_listing_id
from .tokens import get_valid_token, SyncSession

# External Imports
import asyncio


# --------------------------------------------------- #
# Selected listings                                   #
# --------------------------------------------------- #


async def get_selection(uid: str, connection_id: str | None = None) -> ISelection:
    connection = await get_db().get_connection(uid, connection_id)
    if connection is None:
        return ISelection()

    return ISelection(
        selectedOfferIds=connection.selectedOfferIds,
        selectedListingIds=connection.selectedListingIds,
        selectedListings=connection.selectedListings,
    )


def _clean(value) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def _text(row: dict, key: str) -> str | None:
    value = row.get(key)
    return value if isinstance(value, str) and value else None


def normalize_selected_listing(row) -> ISelectedListing | None:
    """
    The id is the explicit id, else the listing id, else the offer id. Rows
    without any of these are dropped.
    """
    if not isinstance(row, dict):
        return None

    listing_id = _clean(row.get("listingId"))
    offer_id = _clean(row.get("offerId"))
    listing_key = _clean(row.get("id")) or listing_id or offer_id
    if not listing_key:
        return None

    return ISelectedListing(
        id=listing_key,
        offerId=offer_id,
        listingId=listing_id,
        title=_text(row, "title"),
        sku=_text(row, "sku"),
        status=_text(row, "status"),
        source="trading" if row.get("source") == "trading" else "inventory",
    )


def dedupe_selected_listings(rows) -> list[dict]:
    # Later rows with the same id win
    selected: dict[str, dict] = {}
    for row in rows if isinstance(rows, list) else []:
        listing = normalize_selected_listing(row)
        if listing is not None:
            selected[listing.id] = listing.model_dump(exclude_none=True)
    return list(selected.values())


async def resolve_listing_ids(uid: str, connection_id: str, offer_ids: list[str], session=None) -> list[str]:
    """Look up the public listing id of up to 100 offers. Unresolved offers are skipped."""
    if not offer_ids:
        return []

    conn = await get_valid_token(uid, connection_id, session=session)
    if conn is None:
        return []

    results = await asyncio.gather(
        *(
            get_offer_listing_id(conn.accessToken, conn.isSandbox, offer_id)
            for offer_id in offer_ids[:max_offers_to_resolve]
        )
    )
    return [listing_id for listing_id in results if listing_id]


async def save_selection(
    uid: str,
    connection_id: str | None,
    offer_ids,
    listing_ids,
    selected_listings,
    session: SyncSession | None = None,
) -> ISelection:
    """
    Replace the connection's selection with the submitted one. Nothing from the
    previous selection survives.
    """
    db = get_db()
    connection = await db.get_connection(uid, connection_id)
    if connection is None:
        raise NotConnectedError("No eBay connection found")

    offer_ids = unique_strings(offer_ids)
    client_listing_ids = unique_strings(listing_ids)

    resolved = await resolve_listing_ids(uid, connection.connectionId, offer_ids, session=session)

    selection = ISelection(
        selectedOfferIds=offer_ids,
        selectedListingIds=unique_strings(client_listing_ids + resolved),
        selectedListings=dedupe_selected_listings(selected_listings),
    )
    await db.save_selection(uid, connection.connectionId, selection)
    return selection
