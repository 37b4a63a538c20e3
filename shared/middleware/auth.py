"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.
Tokens are stateless: verification is a pure function of the token,
the signing secret and the current time.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from shared.models.models import AdminRole
from shared.utils.exceptions import ForbiddenError, InvalidTokenError
from shared.utils.security import verify_access_token

security = HTTPBearer(auto_error=False)


class TokenData:
    """Authenticated principal as carried by the token claims."""

    def __init__(self, payload: dict):
        self.admin_id: str = payload["sub"]
        self.username: str = payload["username"]
        self.email: Optional[str] = payload.get("email")
        self.role: str = payload["role"]

    @property
    def is_admin(self) -> bool:
        return self.role in (AdminRole.ADMIN.value, AdminRole.SUPERADMIN.value)


def authenticate(token: str) -> TokenData:
    """
    Verify signature and expiry. Every failure raises the same
    InvalidTokenError so callers cannot tell expired from forged.
    """
    try:
        return TokenData(verify_access_token(token))
    except (JWTError, KeyError, ValueError):
        raise InvalidTokenError()


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    """Extract and validate the JWT from the Authorization header."""
    if not credentials:
        raise InvalidTokenError("Access token required")
    return authenticate(credentials.credentials)


async def get_optional_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[TokenData]:
    """Returns the principal if a valid token is present, None otherwise. For public endpoints."""
    if not credentials:
        return None
    try:
        return authenticate(credentials.credentials)
    except InvalidTokenError:
        return None


def require_role(principal: TokenData, roles: tuple) -> TokenData:
    if principal.role not in roles:
        raise ForbiddenError()
    return principal


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: AdminRole):
        self.roles = tuple(r.value for r in roles)

    async def __call__(self, token_data: TokenData = Depends(get_token_data)) -> TokenData:
        return require_role(token_data, self.roles)


# Convenience role dependencies
require_admin = RoleRequired(AdminRole.ADMIN, AdminRole.SUPERADMIN)