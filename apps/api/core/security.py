"""
Verification of Supabase Auth access tokens.

Supabase signs user access tokens with the project's JWT secret (HS256).
The API never issues tokens itself; it only decodes and validates them.
"""
from typing import Optional, Dict
import logging

from jose import JWTError, jwt

from core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Roles allowed to read analytics of any user
PRIVILEGED_ROLES = {"coach", "admin", "superadmin"}
SERVICE_ROLE = "service_role"


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a Supabase JWT. Returns None when invalid."""
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting token")
        return None
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError:
        return None


def get_user_id_from_token(token: str) -> Optional[str]:
    """Extract user ID from JWT token."""
    payload = decode_access_token(token)
    if payload:
        return payload.get("sub")  # Standard JWT claim for subject (user ID)
    return None


def has_cross_user_access(payload: Dict) -> bool:
    """
    True when the token may read other users' analytics.

    Service-role tokens always can; user tokens need a coach or admin
    role in app_metadata (set server-side, not editable by the user).
    """
    if payload.get("role") == SERVICE_ROLE:
        return True
    app_metadata = payload.get("app_metadata") or {}
    return app_metadata.get("role") in PRIVILEGED_ROLES
