# Local Imports
from stockflow import config
from ..src.auth import get_current_uid, resolve_target_uid, is_authorized_cron
from ..src.errors import (
    AuthenticationError,
    NotConnectedError,
    StockFlowError,
)
from ..src.handlers import read_json_body, ebay_disabled_response, server_error, clean_str
from ..src.models import (
    FulfillmentBody,
    FulfillmentLineItem,
    SyncInventoryBody,
    RefreshInventoryBody,
)
from ..src.ebay.client import list_offer_listings, create_shipping_fulfillment
from ..src.ebay.inventory import (
    refresh_connection_inventory,
    refresh_all_inventory,
    push_inventory_quantity,
)
from ..src.ebay.order_sync import sync_orders, run_auto_sync, list_orders, NO_CONNECTION_ERROR
from ..src.ebay.selection import get_selection, save_selection
from ..src.ebay.tokens import (
    build_authorize_url,
    exchange_code_for_token,
    get_valid_token,
    SyncSession,
)

# External Imports
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from fastapi import Request, APIRouter, Depends
from slowapi import Limiter
from pydantic import ValidationError

import re


# Initialize router and rate limiter
router = APIRouter()
limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


# --------------------------------------------------- #
# Connect                                             #
# --------------------------------------------------- #


@router.get("/authorize-url")
@limiter.limit("3/second")
async def authorize_url(request: Request, uid: str = Depends(get_current_uid)):
    if not config.EBAY_CLIENT_ID or not config.EBAY_RUNAME:
        return error_response(500, "eBay app not configured (missing App ID or RuName)")

    add_new = request.query_params.get("addNew") == "true"
    return {"url": build_authorize_url(add_new)}


@router.post("/exchange-token")
@limiter.limit("3/second")
async def exchange_token(request: Request, uid: str = Depends(get_current_uid)):
    body = await read_json_body(request)
    code = clean_str(body.get("code"))
    if not code:
        return error_response(400, "Missing code")

    if not (config.EBAY_CLIENT_ID and config.EBAY_CLIENT_SECRET and config.EBAY_RUNAME):
        return error_response(500, "eBay app not configured")

    try:
        environment = await exchange_code_for_token(uid, code, add_new=body.get("addNew") is True)
        return {"ok": True, "environment": environment}
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("exchange_token", error)


# --------------------------------------------------- #
# Listings & selection                                #
# --------------------------------------------------- #


@router.get("/listings")
@limiter.limit("3/second")
async def listings(request: Request, uid: str = Depends(get_current_uid)):
    if (disabled := ebay_disabled_response()) is not None:
        return disabled

    conn = await get_valid_token(uid, clean_str(request.query_params.get("connectionId")))
    if conn is None:
        raise NotConnectedError(NO_CONNECTION_ERROR)

    try:
        return {"listings": await list_offer_listings(conn.accessToken, conn.isSandbox)}
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("listings", error)


@router.get("/selected-listings")
@limiter.limit("5/second")
async def selected_listings(request: Request, uid: str = Depends(get_current_uid)):
    connection_id = clean_str(request.query_params.get("connectionId"))

    try:
        selection = await get_selection(uid, connection_id)
        return selection.model_dump()
    except Exception as error:
        raise server_error("selected_listings", error)


@router.post("/selected-listings")
@limiter.limit("5/second")
async def save_selected_listings(request: Request, uid: str = Depends(get_current_uid)):
    body = await read_json_body(request)

    try:
        selection = await save_selection(
            uid,
            clean_str(body.get("connectionId")),
            body.get("offerIds"),
            body.get("listingIds"),
            body.get("selectedListings"),
            session=SyncSession(),
        )
        return {"ok": True, **selection.model_dump()}
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("save_selected_listings", error)


# --------------------------------------------------- #
# Orders                                              #
# --------------------------------------------------- #


@router.get("/orders")
@limiter.limit("5/second")
async def get_orders(request: Request, caller_uid: str = Depends(get_current_uid)):
    uid = await resolve_target_uid(caller_uid, request.query_params.get("userId"))

    try:
        return {"orders": await list_orders(uid)}
    except Exception as error:
        raise server_error("get_orders", error)


@router.post("/orders")
@limiter.limit("3/second")
async def sync_orders_route(request: Request, caller_uid: str = Depends(get_current_uid)):
    if (disabled := ebay_disabled_response()) is not None:
        return disabled

    uid = await resolve_target_uid(caller_uid, request.query_params.get("userId"))

    result = await sync_orders(
        uid,
        clean_str(request.query_params.get("connectionId")),
        filter_not_started=request.query_params.get("filter") == "not_started",
        session=SyncSession(),
    )
    content = result.model_dump(exclude_none=True)

    if result.ok:
        return content
    if result.error == NO_CONNECTION_ERROR:
        return JSONResponse(status_code=400, content=content)
    return JSONResponse(status_code=502, content=content)


@router.post("/fulfillment")
@limiter.limit("3/second")
async def create_fulfillment(request: Request, caller_uid: str = Depends(get_current_uid)):
    try:
        body = FulfillmentBody(**await read_json_body(request))
    except ValidationError:
        body = FulfillmentBody()

    uid = await resolve_target_uid(caller_uid, body.userId)

    conn = await get_valid_token(uid)
    if conn is None:
        raise NotConnectedError("No eBay connection. Connect your eBay account first.")

    order_id = clean_str(body.orderId)
    line_items = []
    for line_item in body.lineItems:
        try:
            line_items.append(FulfillmentLineItem.model_validate(line_item, strict=True))
        except ValidationError:
            continue

    tracking_number = re.sub(r"\s", "", body.trackingNumber or "") or None
    carrier_code = clean_str(body.shippingCarrierCode)
    shipped_date = clean_str(body.shippedDate)

    if not order_id or not line_items:
        return error_response(400, "orderId and lineItems (with lineItemId and quantity) are required")
    if tracking_number and not carrier_code:
        return error_response(400, "shippingCarrierCode is required when trackingNumber is provided")
    if carrier_code and not tracking_number:
        return error_response(400, "trackingNumber is required when shippingCarrierCode is provided")

    payload = {"lineItems": [line_item.model_dump() for line_item in line_items]}
    if carrier_code:
        payload["shippingCarrierCode"] = carrier_code
    if tracking_number:
        payload["trackingNumber"] = tracking_number
    if shipped_date:
        payload["shippedDate"] = shipped_date

    try:
        fulfillment_id = await create_shipping_fulfillment(
            conn.accessToken, conn.isSandbox, order_id, payload
        )
        return {"ok": True, "fulfillmentId": fulfillment_id}
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("create_fulfillment", error)


# --------------------------------------------------- #
# Inventory quantities                                #
# --------------------------------------------------- #


@router.post("/sync-inventory")
@limiter.limit("3/second")
async def sync_inventory(request: Request, caller_uid: str = Depends(get_current_uid)):
    try:
        body = SyncInventoryBody(**await read_json_body(request))
    except ValidationError:
        return error_response(400, "Missing connectionId or newQuantity")

    uid = await resolve_target_uid(caller_uid, body.userId)
    connection_id = clean_str(body.connectionId)
    offer_id = clean_str(body.offerId)
    listing_id = clean_str(body.listingId)

    if not connection_id or body.newQuantity is None:
        return error_response(400, "Missing connectionId or newQuantity")
    if not offer_id and not listing_id:
        return error_response(400, "Provide at least one of offerId or listingId")

    try:
        available = await push_inventory_quantity(
            uid, connection_id, offer_id, listing_id, body.newQuantity
        )
        return {"success": True, "available": available}
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("sync_inventory", error)


@router.post("/refresh-inventory")
@limiter.limit("3/second")
async def refresh_inventory(request: Request):
    is_cron = is_authorized_cron(request)
    try:
        body = RefreshInventoryBody(**await read_json_body(request))
    except ValidationError:
        body = RefreshInventoryBody()

    user_id = clean_str(body.userId)
    connection_id = clean_str(body.connectionId)

    if not is_cron:
        caller_uid = await get_current_uid(request)
        user_id = await resolve_target_uid(caller_uid, user_id)

    try:
        if user_id and connection_id:
            result = await refresh_connection_inventory(user_id, connection_id, session=SyncSession())
            return {"ok": True, **result}

        if is_cron:
            return {"ok": True, **await refresh_all_inventory()}

    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("refresh_inventory", error)

    return error_response(400, "Provide userId and connectionId")


# --------------------------------------------------- #
# Scheduled sync                                      #
# --------------------------------------------------- #


@router.api_route("/auto-sync", methods=["GET", "POST"])
@limiter.limit("1/second")
async def auto_sync(request: Request):
    if not is_authorized_cron(request):
        raise AuthenticationError("Unauthorized")

    if (disabled := ebay_disabled_response()) is not None:
        return disabled

    try:
        result = await run_auto_sync(session=SyncSession())
        return {"ok": True, **result.model_dump()}
    except Exception as error:
        raise server_error("auto_sync", error)
