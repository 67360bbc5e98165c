class StockFlowError(Exception):
    status_code = 500

    def __init__(self, message: str, detail=None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class AuthenticationError(StockFlowError):
    """Missing, malformed or rejected Firebase ID token."""

    status_code = 401


class ForbiddenError(StockFlowError):
    status_code = 403


class NotConnectedError(StockFlowError):
    """The user has no eBay connection (or not the one requested)."""

    status_code = 400


class MarketplaceApiError(StockFlowError):
    """eBay answered with a non-success status."""

    status_code = 502

    def __init__(self, message: str, status_code: int | None = None, detail=None):
        super().__init__(message, detail)
        self.upstream_status = status_code


class TokenRefreshError(StockFlowError):
    pass


class MissingDeliveryIdError(StockFlowError):
    """Strict webhook mode and the delivery carried no x-ebay-delivery-id."""

    status_code = 400


def ebay_error_message(body, default: str) -> str:
    """Pick the most useful message out of an eBay `errors` payload."""
    if not isinstance(body, dict):
        return default

    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        return first.get("longMessage") or first.get("message") or default

    return body.get("error_description") or default
