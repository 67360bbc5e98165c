# Local Imports
from stockflow.utils import ratelimit_error, stockflow_error
from stockflow.config import title, description, version, config, status_config
from stockflow.config import CORS_ORIGINS, RATE_LIMIT_ENABLED, start_status_listener
from stockflow.v1.src.errors import StockFlowError
from stockflow.v1.routes import ebay as ebay_v1_routes
from stockflow.v1.routes import connections as connections_v1_routes
from stockflow.v1.routes import webhook as webhook_v1_routes

# External Imports
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from slowapi import Limiter

import uvicorn


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Watch config/status for the eBay kill switch
    doc_watch = await run_in_threadpool(start_status_listener)
    yield
    if doc_watch is not None:
        doc_watch.unsubscribe()


# Initialize Limiter
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

# Initialize FastAPI application
app = FastAPI(
    title=title,
    description=description,
    version=version,
    lifespan=lifespan,
)

# Attach the limiter to the FastAPI app
app.state.limiter = limiter

app.add_exception_handler(RateLimitExceeded, ratelimit_error)
app.add_exception_handler(StockFlowError, stockflow_error)

# Setup CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["X-Requested-With", "Authorization", "Content-Type"],
)

# V1 Routes
app.include_router(ebay_v1_routes.router, prefix="/v1/integrations/ebay", tags=["ebay v1"])
app.include_router(
    connections_v1_routes.router, prefix="/v1/integrations/ebay-connections", tags=["ebay v1"]
)
app.include_router(
    webhook_v1_routes.router, prefix="/v1/integrations/ebay/webhook", tags=["webhook v1"]
)


@app.get("/")
@limiter.limit("1/second")
async def root(request: Request):
    return config


@app.get("/status")
@limiter.limit("3/second")
async def status(request: Request):
    return status_config


# Run app if executed directly
if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
