"""
Authentication and authorization dependencies.

Provides FastAPI dependencies for:
- Getting the current authenticated user's token claims
- Getting the current user id
- Cross-user access (coach / admin / service role only)
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Optional
from uuid import UUID

from core.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from core.security import decode_access_token, has_cross_user_access

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict:
    """
    Get the verified claims of the caller's access token.

    Raises UnauthorizedError if the token is missing or invalid.
    """
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")

    return payload


def get_current_user_id(claims: Dict = Depends(get_token_claims)) -> str:
    """Return the caller's user id (the `sub` claim) as a canonical UUID string."""
    user_id = claims.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        return str(UUID(user_id))
    except ValueError:
        raise UnauthorizedError("Invalid user ID format")


def _canonical_sub(claims: Dict) -> Optional[str]:
    try:
        return str(UUID(str(claims.get("sub"))))
    except ValueError:
        return None


def require_user_access(user_id: str, claims: Dict = Depends(get_token_claims)) -> str:
    """
    Authorize reading analytics for `user_id` (a path parameter).

    Users may read their own data; coaches, admins and service-role callers
    may read anyone's.
    """
    try:
        target = str(UUID(user_id))
    except ValueError:
        raise ValidationError("user_id must be a UUID", field="user_id")

    if _canonical_sub(claims) == target or has_cross_user_access(claims):
        return target

    raise ForbiddenError("Not allowed to view analytics for this user")
