# Local Imports
from stockflow import config
from ..src.errors import AuthenticationError, StockFlowError
from ..src.handlers import read_json_body, server_error
from ..src.ebay.webhook import (
    challenge_response,
    derive_event_id,
    handle_webhook_event,
    is_webhook_authorized,
)

# External Imports
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from fastapi import Request, APIRouter
from slowapi import Limiter


# Initialize router and rate limiter
router = APIRouter()
limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)


def endpoint_url(request: Request) -> str:
    """The callback url registered with eBay: origin and path, without the query."""
    if config.EBAY_WEBHOOK_ENDPOINT:
        return config.EBAY_WEBHOOK_ENDPOINT
    return f"{request.url.scheme}://{request.url.netloc}{request.url.path}"


@router.get("")
@limiter.limit("10/second")
async def verify_endpoint(request: Request):
    challenge_code = request.query_params.get("challenge_code")
    if not challenge_code:
        return {"ok": True, "message": "eBay webhook endpoint is live"}

    verification_token = config.EBAY_WEBHOOK_VERIFICATION_TOKEN
    if not verification_token:
        return JSONResponse(
            status_code=500,
            content={"error": "Missing EBAY_WEBHOOK_VERIFICATION_TOKEN for challenge verification"},
        )

    return {
        "challengeResponse": challenge_response(
            challenge_code, verification_token, endpoint_url(request)
        )
    }


@router.post("")
@limiter.limit("20/second")
async def receive_event(request: Request):
    if not is_webhook_authorized(request.headers, request.query_params, config.EBAY_WEBHOOK_SECRET):
        raise AuthenticationError("Unauthorized")

    payload = await read_json_body(request)
    event_id = derive_event_id(
        request.headers, payload, require_delivery_id=config.EBAY_WEBHOOK_REQUIRE_DELIVERY_ID
    )

    try:
        return await handle_webhook_event(event_id, request.headers, payload)
    except StockFlowError:
        raise
    except Exception as error:
        raise server_error("receive_event", error)
