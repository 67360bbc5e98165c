# Local Imports
from stockflow import config
from .constants import ADMIN_ROLES
from .db_firebase import get_db
from .errors import AuthenticationError, ForbiddenError

# External Imports
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests
from fastapi.concurrency import run_in_threadpool
from fastapi import Request

import traceback
import os


_google_request = google_requests.Request()


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header[len("Bearer "):].strip()
    return token or None


def verify_firebase_id_token(token: str) -> str | None:
    """Returns the uid of a valid Firebase ID token, otherwise None."""
    try:
        claims = id_token.verify_firebase_token(
            token, _google_request, audience=os.getenv("FIREBASE_PROJECT_ID")
        )
    except Exception:
        print(traceback.format_exc())
        return None

    if not claims:
        return None
    return claims.get("user_id") or claims.get("sub")


async def get_current_uid(request: Request) -> str:
    """FastAPI dependency resolving the caller's uid from the Authorization header."""
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError("Unauthorized")

    uid = await run_in_threadpool(verify_firebase_id_token, token)
    if not uid:
        raise AuthenticationError("Invalid or expired token")

    return uid


def is_admin_or_sub_admin(user: dict | None) -> bool:
    if not user:
        return False

    roles = user.get("roles")
    if user.get("role") in ADMIN_ROLES:
        return True
    return isinstance(roles, list) and any(role in ADMIN_ROLES for role in roles)


async def resolve_target_uid(caller_uid: str, requested_uid: str | None) -> str:
    """
    Admins may act on another user's data; everybody else only on their own.
    """
    requested_uid = (requested_uid or "").strip()
    if not requested_uid or requested_uid == caller_uid:
        return caller_uid

    caller = await get_db().get_user(caller_uid)
    if not is_admin_or_sub_admin(caller):
        raise ForbiddenError("Forbidden")

    return requested_uid


def is_authorized_cron(request: Request) -> bool:
    secret = config.CRON_SECRET
    if not secret:
        return False

    if request.headers.get("Authorization") == f"Bearer {secret}":
        return True

    return request.query_params.get("secret") == secret
