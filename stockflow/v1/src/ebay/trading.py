# Local Imports
from stockflow import config
from ..constants import (
    EBAY_TRADING_DOMAIN,
    EBAY_SANDBOX_TRADING_DOMAIN,
    max_trading_listings_per_page,
)
from ..errors import MarketplaceApiError

# External Imports
from ebaysdk.exception import ConnectionError
from ebaysdk.trading import Connection as Trading

import traceback
import asyncio


# --------------------------------------------------- #
# eBay Trading API (Seller Hub listings)              #
# --------------------------------------------------- #


def trading_api(oauth_token: str, is_sandbox: bool) -> Trading:
    return Trading(
        appid=config.EBAY_CLIENT_ID,
        devid=config.EBAY_DEV_ID,
        certid=config.EBAY_CLIENT_SECRET,
        iaf_token=oauth_token,
        domain=EBAY_SANDBOX_TRADING_DOMAIN if is_sandbox else EBAY_TRADING_DOMAIN,
        siteid="0",
        config_file=None,
    )


def to_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def fetch_active_quantities(oauth_token: str, is_sandbox: bool) -> dict[str, int]:
    """ItemID -> QuantityAvailable for the first page of active listings."""
    api = trading_api(oauth_token, is_sandbox)

    params = {
        "DetailLevel": "ReturnAll",
        "ActiveList": {
            "Include": True,
            "Pagination": {
                "EntriesPerPage": max_trading_listings_per_page,
                "PageNumber": 1,
            },
        },
    }

    try:
        response = api.execute("GetMyeBaySelling", params)
    except ConnectionError:
        print(traceback.format_exc())
        return {}

    response_dict = response.dict() or {}
    active_list = response_dict.get("ActiveList") or {}
    items = to_list((active_list.get("ItemArray") or {}).get("Item"))

    quantities = {}
    for item in items:
        item_id = str(item.get("ItemID") or "").strip()
        if not item_id:
            continue
        quantity = item.get("QuantityAvailable", item.get("Quantity", 0))
        try:
            quantities[item_id] = int(quantity)
        except (TypeError, ValueError):
            quantities[item_id] = 0

    return quantities


def revise_inventory_status(oauth_token: str, is_sandbox: bool, listing_id: str, quantity: int):
    api = trading_api(oauth_token, is_sandbox)

    try:
        response = api.execute(
            "ReviseInventoryStatus",
            {"InventoryStatus": {"ItemID": listing_id, "Quantity": quantity}},
        )
    except ConnectionError as error:
        print(traceback.format_exc())
        raise MarketplaceApiError("eBay Trading API rejected the update.", detail=str(error))

    ack = str((response.dict() or {}).get("Ack", "")).lower()
    if ack not in ("success", "warning"):
        print("[ebay ReviseInventoryStatus Ack]", ack)
        raise MarketplaceApiError("eBay could not update quantity for this Seller Hub listing.")


async def get_active_quantities(oauth_token: str, is_sandbox: bool) -> dict[str, int]:
    return await asyncio.to_thread(fetch_active_quantities, oauth_token, is_sandbox)


async def set_listing_quantity(oauth_token: str, is_sandbox: bool, listing_id: str, quantity: int):
    await asyncio.to_thread(revise_inventory_status, oauth_token, is_sandbox, listing_id, quantity)
