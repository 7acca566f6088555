from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
import logging

from shared.config import settings
from shared.models import MANAGER_ROLES

logger = logging.getLogger(__name__)

security = HTTPBearer()

def decode_token(token: str) -> dict:
    """Decode a session token into the current user dict, raising 401 when invalid."""
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured"
        )
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User ID not found in token"
        )
    return {
        "id": str(user_id),
        "email": payload.get("email"),
        "roles": payload.get("roles") or [],
        "token": token
    }

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    return decode_token(credentials.credentials)

def can_manage(user: dict, customer_id) -> bool:
    """Managers may touch any code, customers only their own."""
    if any(role in MANAGER_ROLES for role in user.get("roles", [])):
        return True
    return customer_id is not None and str(customer_id) == user.get("id")
