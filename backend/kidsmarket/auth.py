import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header
from fastapi.concurrency import run_in_threadpool
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from .config import dev_mode, get_server_secret
from .errors import unauthenticated

log = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class Caller:
    uid: str
    email: str = ""


def _verify_firebase_token(token: str) -> Optional[Caller]:
    project_id = get_server_secret("FIREBASE_PROJECT_ID")
    if not project_id:
        log.warning("FIREBASE_PROJECT_ID not set; rejecting bearer token")
        return None
    try:
        info = google_id_token.verify_firebase_token(token, google_requests.Request(), audience=project_id)
    except ValueError as e:
        log.info("Firebase ID token rejected: %s", e)
        return None
    if not info:
        return None
    uid = info.get("user_id") or info.get("sub")
    if not uid:
        return None
    return Caller(uid=str(uid), email=str(info.get("email") or ""))


async def get_caller(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Optional[Caller]:
    """Resolve the caller from a Firebase ID token, or from X-User-Id in DEV_MODE.
    Returns None when the request carries no valid identity.
    """
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(None, 1)[1].strip()
        if token:
            return await run_in_threadpool(_verify_firebase_token, token)
    if x_user_id and dev_mode():
        return Caller(uid=x_user_id, email=(x_user_email or "").lower())
    return None


def require_caller(caller: Optional[Caller], message: str = "You must be logged in.") -> Caller:
    if caller is None:
        raise unauthenticated(message)
    return caller
