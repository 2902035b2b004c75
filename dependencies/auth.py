import logging
from fastapi import Depends, Request
from jose import JWTError
from core.exceptions import AccessDeniedError, AuthenticationError
from core.security import decode_access_token
from models import UserRole
from typing import Optional

logger = logging.getLogger(__name__)


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get("access_token")

    # Fallback to Authorization header (for mobile/API clients)
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]
    return token


async def get_current_user(request: Request) -> dict:
    """Get current authenticated user from HttpOnly cookie or Authorization header"""
    token = _extract_token(request)
    if not token:
        raise AuthenticationError("Access token required. Please login to continue.")

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise AuthenticationError("Invalid token. Please login again.")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Could not validate credentials")

    supabase = getattr(request.app.state, "supabase", None)
    if supabase is None:
        # In-memory mode: the signed claims are the only user record available
        logger.debug(f"No user table configured, trusting token claims for user {user_id}")
        return {"id": str(user_id), "role": payload.get("role", UserRole.PATIENT.value), "is_active": True}

    result = supabase.table("users").select("*").eq("id", user_id).execute()
    if not result.data:
        raise AuthenticationError("User not found")

    user = result.data[0]
    if not user.get("is_active", True):
        raise AccessDeniedError("Account is deactivated. Please contact support.")

    user["id"] = str(user["id"])
    return user


async def get_current_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != UserRole.ADMIN.value:
        raise AccessDeniedError("Admin access required")
    return current_user
