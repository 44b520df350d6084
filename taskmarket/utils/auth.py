"""Authentication utilities and dependency injection."""

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from taskmarket.config.logger import app_logger
from taskmarket.utils.local_tokens import decode_local_token

# HTTP Bearer token security scheme
security_scheme = HTTPBearer(
    scheme_name="Bearer",
    description="Bearer token authentication",
    auto_error=False,  # We'll handle errors manually for better control
)


class Principal(BaseModel):
    """The authenticated caller."""

    id: str
    email: Optional[str] = None
    role: str = "USER"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_auth_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_scheme),
) -> str:
    """Extract the Bearer token from the Authorization header.

    Raises:
        HTTPException: If token is missing
    """
    if not credentials:
        raise _unauthorized("Missing or invalid authorization header")

    token = credentials.credentials.strip()
    if not token:
        raise _unauthorized("Missing authentication token")

    return token


async def get_current_principal(
    request: Request,
    token: str = Depends(get_auth_token),
) -> Principal:
    """Decode the token into a Principal and attach it to ``request.state``.

    Raises:
        HTTPException: If token is invalid, expired or lacks a subject
    """
    try:
        payload = decode_local_token(token)
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token payload")

    principal = Principal(
        id=str(user_id),
        email=payload.get("email"),
        role=str(payload.get("role") or "USER").upper(),
    )
    request.state.principal = principal
    return principal


def require_roles(*roles: str) -> Callable:
    """Build a dependency that admits only principals holding one of ``roles``."""
    allowed = {role.upper() for role in roles}

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            app_logger.warning("Access denied for user {} with role {}", principal.id, principal.role)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return dependency


require_admin = require_roles("ADMIN")
