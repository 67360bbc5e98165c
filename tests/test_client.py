import httpx
import pytest

from stockflow.v1.src.ebay.client import (
    create_shipping_fulfillment,
    list_offer_listings,
    order_search_url,
    search_orders,
)
from stockflow.v1.src.errors import MarketplaceApiError

ITEMS_PATH = "/sell/inventory/v1/inventory_item"


async def test_list_offer_listings_labels_offers(ebay):
    ebay.on(
        "GET",
        ITEMS_PATH,
        lambda request: {"inventoryItems": [{"sku": "S1"}, {"sku": "S2"}, {}]},
    )
    ebay.on(
        "GET",
        ITEMS_PATH + "/S1",
        lambda request: {"sku": "S1", "product": {"title": "Blue Shoe"}},
    )
    ebay.on(
        "GET",
        "/sell/inventory/v1/offer",
        lambda request: {
            "offers": [
                {"offerId": f"o-{request.url.params['sku']}", "status": "PUBLISHED"},
                {"status": "UNPUBLISHED"},
            ]
        },
    )

    listings = await list_offer_listings("token", True)

    assert listings == [
        {"offerId": "o-S1", "sku": "S1", "title": "Blue Shoe", "status": "PUBLISHED"},
        {"offerId": "o-S2", "sku": "S2", "title": "S2", "status": "PUBLISHED"},
    ]


async def test_search_orders_surfaces_ebay_message(ebay):
    ebay.on(
        "GET",
        "/sell/fulfillment/v1/order",
        lambda request: httpx.Response(403, json={"errors": [{"message": "Insufficient permissions"}]}),
    )

    with pytest.raises(MarketplaceApiError) as error:
        await search_orders("token", order_search_url(False, 50))

    assert error.value.message == "Insufficient permissions"
    assert error.value.upstream_status == 403
    assert ebay.calls[0].url.host == "api.ebay.com"


async def test_fulfillment_id_from_location_header(ebay):
    ebay.on(
        "POST",
        "/sell/fulfillment/v1/order/A/shipping_fulfillment",
        lambda request: httpx.Response(
            201,
            headers={"Location": "https://api.ebay.com/sell/fulfillment/v1/order/A/shipping_fulfillment/F-9"},
        ),
    )

    fulfillment_id = await create_shipping_fulfillment("token", False, "A", {"lineItems": []})

    assert fulfillment_id == "F-9"
