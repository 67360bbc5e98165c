# Local Imports
from ..models import IBuyer, ILineItem, ISyncedOrder


def to_str(value) -> str | None:
    return str(value) if value is not None else None


def extract_buyer(order: dict) -> IBuyer | None:
    buyer = order.get("buyer")
    if not isinstance(buyer, dict):
        return None

    return IBuyer(email=to_str(buyer.get("email")), fullName=to_str(buyer.get("fullName")))


def extract_line_item(line_item: dict) -> ILineItem:
    quantity = line_item.get("quantity")
    return ILineItem(
        lineItemId=to_str(line_item.get("lineItemId")),
        legacyItemId=to_str(line_item.get("legacyItemId")),
        sku=to_str(line_item.get("sku")),
        title=to_str(line_item.get("title")),
        quantity=quantity if isinstance(quantity, int) else None,
        lineItemFulfillmentStatus=to_str(line_item.get("lineItemFulfillmentStatus")),
    )


def select_line_items(order: dict, selected_ids: set[str]) -> list[dict]:
    """Line items whose listing (legacyItemId) is one of the selected listings."""
    return [
        line_item
        for line_item in order.get("lineItems") or []
        if isinstance(line_item, dict)
        and line_item.get("legacyItemId")
        and str(line_item["legacyItemId"]) in selected_ids
    ]


def extract_order(
    order: dict, connection_id: str, selected_items: list[dict], synced_at: str
) -> ISyncedOrder:
    total_line_items = len(order.get("lineItems") or [])
    return ISyncedOrder(
        orderId=str(order["orderId"]),
        connectionId=connection_id,
        creationDate=to_str(order.get("creationDate")),
        lastModifiedDate=to_str(order.get("lastModifiedDate")),
        orderFulfillmentStatus=to_str(order.get("orderFulfillmentStatus")),
        orderPaymentStatus=to_str(order.get("orderPaymentStatus")),
        buyer=extract_buyer(order),
        lineItems=[extract_line_item(line_item) for line_item in selected_items],
        totalLineItems=total_line_items,
        partialLineItems=len(selected_items) < total_line_items,
        syncedAt=synced_at,
    )
