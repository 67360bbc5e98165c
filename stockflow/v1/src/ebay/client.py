# Local Imports
from ..constants import (
    EBAY_API_BASE_URL,
    EBAY_SANDBOX_API_BASE_URL,
    NOT_STARTED_FILTER,
    listings_page_size,
    sku_batch_size,
)
from ..errors import MarketplaceApiError, ebay_error_message

# External Imports
from urllib.parse import quote, urlencode

import asyncio
import httpx


# --------------------------------------------------- #
# eBay REST helpers                                   #
# --------------------------------------------------- #


# Optional httpx transport shared by every outbound eBay call
http_transport = None


def get_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=http_transport)


def get_ebay_api_base_url(is_sandbox: bool) -> str:
    return EBAY_SANDBOX_API_BASE_URL if is_sandbox else EBAY_API_BASE_URL


def ebay_headers(access_token: str, json_body: bool = True) -> dict:
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept-Language": "en-US",
        "Content-Language": "en-US",
    }
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


def safe_json(response: httpx.Response, default=None):
    try:
        return response.json()
    except ValueError:
        return default


def raise_for_ebay_error(response: httpx.Response, default: str):
    if response.is_success:
        return

    body = safe_json(response, {})
    print(f"[ebay api] {response.request.method} {response.request.url} -> {response.status_code}", body)
    raise MarketplaceApiError(
        ebay_error_message(body, default),
        status_code=response.status_code,
        detail=body.get("errors") if isinstance(body, dict) else None,
    )


async def ebay_get(access_token: str, url: str, default_error: str) -> dict:
    async with get_http_client() as client:
        response = await client.get(url, headers=ebay_headers(access_token))

    raise_for_ebay_error(response, default_error)
    return safe_json(response, {}) or {}


# --------------------------------------------------- #
# Inventory API                                       #
# --------------------------------------------------- #


def offer_url(is_sandbox: bool, offer_id: str) -> str:
    return f"{get_ebay_api_base_url(is_sandbox)}/sell/inventory/v1/offer/{quote(offer_id, safe='')}"


async def get_offer(access_token: str, is_sandbox: bool, offer_id: str) -> dict:
    return await ebay_get(access_token, offer_url(is_sandbox, offer_id), "Could not load offer from eBay")


async def get_offer_listing_id(access_token: str, is_sandbox: bool, offer_id: str) -> str | None:
    """Best effort: any failure resolves to None."""
    try:
        async with get_http_client() as client:
            response = await client.get(
                offer_url(is_sandbox, offer_id), headers=ebay_headers(access_token, json_body=False)
            )
    except httpx.HTTPError as error:
        print(f"[ebay offer] {offer_id}: {error}")
        return None

    if not response.is_success:
        return None

    data = safe_json(response) or {}
    listing = data.get("listing") or {}
    return listing.get("listingId") or None


async def update_offer_quantity(access_token: str, is_sandbox: bool, offer_id: str, quantity: int) -> dict:
    offer = await get_offer(access_token, is_sandbox, offer_id)
    offer["availableQuantity"] = quantity

    async with get_http_client() as client:
        response = await client.put(
            offer_url(is_sandbox, offer_id), headers=ebay_headers(access_token), json=offer
        )

    raise_for_ebay_error(
        response, "eBay rejected the quantity update. Check app has sell.inventory scope."
    )
    return offer


async def get_inventory_item_skus(access_token: str, is_sandbox: bool) -> list[str]:
    base = get_ebay_api_base_url(is_sandbox)
    skus, offset = [], 0

    while True:
        data = await ebay_get(
            access_token,
            f"{base}/sell/inventory/v1/inventory_item?limit={listings_page_size}&offset={offset}",
            "Failed to load eBay inventory",
        )
        items = data.get("inventoryItems") or []
        for item in items:
            sku = item if isinstance(item, str) else (item or {}).get("sku")
            if sku:
                skus.append(sku)

        if len(items) < listings_page_size:
            break
        offset += listings_page_size

    return skus


async def get_inventory_item(access_token: str, is_sandbox: bool, sku: str) -> dict:
    """The inventory item for a SKU, or {} when eBay has none."""
    url = f"{get_ebay_api_base_url(is_sandbox)}/sell/inventory/v1/inventory_item/{quote(sku, safe='')}"
    async with get_http_client() as client:
        response = await client.get(url, headers=ebay_headers(access_token))

    if not response.is_success:
        return {}
    return safe_json(response, {}) or {}


async def get_offers_for_sku(access_token: str, is_sandbox: bool, sku: str) -> list[dict]:
    url = f"{get_ebay_api_base_url(is_sandbox)}/sell/inventory/v1/offer?sku={quote(sku, safe='')}&limit=10"
    async with get_http_client() as client:
        response = await client.get(url, headers=ebay_headers(access_token))

    if not response.is_success:
        return []
    return (safe_json(response, {}) or {}).get("offers") or []


async def get_sku_offers(access_token: str, is_sandbox: bool, sku: str) -> list[dict]:
    """Offers for one SKU, labelled with the inventory item's product title."""
    offers, item = await asyncio.gather(
        get_offers_for_sku(access_token, is_sandbox, sku),
        get_inventory_item(access_token, is_sandbox, sku),
    )

    product = item.get("product") or {}
    title = product.get("title") or sku

    return [
        {
            "offerId": offer.get("offerId") or "",
            "sku": offer.get("sku") or sku,
            "title": title,
            "status": offer.get("status") or "UNKNOWN",
        }
        for offer in offers
    ]


async def list_offer_listings(access_token: str, is_sandbox: bool) -> list[dict]:
    skus = await get_inventory_item_skus(access_token, is_sandbox)

    listings = []
    for i in range(0, len(skus), sku_batch_size):
        batch = skus[i : i + sku_batch_size]
        results = await asyncio.gather(
            *(get_sku_offers(access_token, is_sandbox, sku) for sku in batch)
        )
        for offers in results:
            listings.extend(offer for offer in offers if offer["offerId"])

    return listings


# --------------------------------------------------- #
# Fulfillment API                                     #
# --------------------------------------------------- #


def order_search_url(is_sandbox: bool, page_size: int, filter_not_started: bool = False) -> str:
    params = {"limit": page_size}
    if filter_not_started:
        params["filter"] = NOT_STARTED_FILTER
    return f"{get_ebay_api_base_url(is_sandbox)}/sell/fulfillment/v1/order?{urlencode(params)}"


async def search_orders(access_token: str, url: str) -> dict:
    """One page of order search. The response carries `orders` and an optional `next` url."""
    return await ebay_get(access_token, url, "Failed to fetch eBay orders")


async def create_shipping_fulfillment(
    access_token: str, is_sandbox: bool, order_id: str, payload: dict
) -> str | None:
    url = (
        f"{get_ebay_api_base_url(is_sandbox)}/sell/fulfillment/v1/order/"
        f"{quote(order_id, safe='')}/shipping_fulfillment"
    )
    async with get_http_client() as client:
        response = await client.post(url, headers=ebay_headers(access_token), json=payload)

    raise_for_ebay_error(response, "eBay fulfillment request failed")
    data = safe_json(response, {}) or {}

    if data.get("fulfillmentId"):
        return data["fulfillmentId"]

    # eBay answers 201 with the new resource in the Location header
    location = response.headers.get("Location")
    return location.rstrip("/").split("/")[-1] if location else None
