# Local Imports
from stockflow import config

# External Imports
from fastapi import HTTPException, Request

import traceback


async def read_json_body(request: Request) -> dict:
    """Request JSON as a dict; anything unparsable or non-object becomes {}."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def ebay_disabled_response() -> dict | None:
    """Service metadata when the eBay integration has been switched off in config/status."""
    if config.is_api_active("ebay"):
        return None
    return config.config


def server_error(context: str, error: Exception) -> HTTPException:
    print(f"Error in {context}():", error)
    print(traceback.format_exc())
    return HTTPException(status_code=500, detail=str(error))


def clean_str(value) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None
