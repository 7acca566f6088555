from fastapi import Request
from jose import jwt, JWTError
from datetime import datetime, timedelta
from typing import Optional
import logging

from shared.config import settings

logger = logging.getLogger(__name__)

SESSION_COOKIE = "access_token"
CSRF_PURPOSE = "qr-manage"

def _session_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return request.cookies.get(SESSION_COOKIE)

async def get_optional_user(request: Request) -> Optional[dict]:
    """Current user from the bearer header or session cookie; None when anonymous."""
    token = _session_token(request)
    if not token:
        return None
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured, treating request as anonymous")
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Ignoring invalid session token: {str(e)}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return {
        "id": str(user_id),
        "email": payload.get("email"),
        "roles": payload.get("roles") or [],
        "token": token
    }

def create_csrf_token(slug: str, user: dict) -> str:
    """Form token bound to one slug and one user."""
    expire = datetime.utcnow() + timedelta(minutes=settings.MANAGE_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(
        {"slug": slug, "sub": user["id"], "purpose": CSRF_PURPOSE, "exp": expire},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM
    )

def verify_csrf_token(token: Optional[str], slug: str, user: dict) -> bool:
    if not token or not settings.JWT_SECRET:
        return False
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return False
    return (
        payload.get("purpose") == CSRF_PURPOSE
        and payload.get("slug") == slug
        and payload.get("sub") == user["id"]
    )
