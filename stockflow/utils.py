from stockflow.v1.src.errors import StockFlowError

from fastapi import Request
from slowapi.errors import RateLimitExceeded
from fastapi.responses import JSONResponse


# Add exception handler for rate limit exceeded errors
async def ratelimit_error(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded, please try again later."},
    )


async def stockflow_error(request: Request, exc: StockFlowError):
    content = {"error": exc.message}
    if exc.detail is not None:
        content["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)
