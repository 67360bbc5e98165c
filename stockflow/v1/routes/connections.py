# Local Imports
from stockflow import config
from ..src.auth import get_current_uid
from ..src.db_firebase import get_db
from ..src.handlers import server_error
from ..src.models import IConnectionSummary

# External Imports
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from fastapi import Request, APIRouter, Depends
from slowapi import Limiter


# Initialize router and rate limiter
router = APIRouter()
limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)


@router.get("")
@limiter.limit("5/second")
async def list_connections(request: Request, uid: str = Depends(get_current_uid)):
    try:
        connections = await get_db().list_connections(uid)
        return {
            "connections": [
                IConnectionSummary(
                    id=connection.connectionId,
                    connectedAt=connection.connectedAt,
                    environment=connection.environment or "sandbox",
                ).model_dump()
                for connection in connections
            ]
        }
    except Exception as error:
        raise server_error("list_connections", error)


@router.delete("")
@limiter.limit("3/second")
async def delete_connection(request: Request, uid: str = Depends(get_current_uid)):
    connection_id = request.query_params.get("id")
    if not connection_id:
        return JSONResponse(status_code=400, content={"error": "Missing id"})

    try:
        deleted = await get_db().delete_connection(uid, connection_id)
    except Exception as error:
        raise server_error("delete_connection", error)

    if not deleted:
        return JSONResponse(status_code=404, content={"error": "Connection not found"})
    return {"ok": True}
