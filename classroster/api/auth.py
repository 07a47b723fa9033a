"""
Authentication and Identity

The engine sits behind a gateway that authenticates end users. The gateway
calls with a shared service bearer token and forwards the end user's identity
in the X-Actor-Id and X-Actor-Role headers.
"""
import logging
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from classroster.config import get_settings
from classroster.models.enums import Role
from classroster.services.actors import Actor

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(code: str, message: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details
            }
        },
        headers={"WWW-Authenticate": "Bearer"}
    )


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> bool:
    """
    Verify bearer token.

    Args:
        credentials: HTTP authorization credentials

    Returns:
        True if valid, raises HTTPException otherwise
    """
    if credentials is None:
        raise _unauthorized(
            "AUTH_001",
            "Authorization header missing",
            "Please provide a valid bearer token",
        )

    token = credentials.credentials

    if token != get_settings().api_token:
        logger.warning(f"Invalid token attempt: {token[:10]}...")
        raise _unauthorized(
            "AUTH_002",
            "Invalid or expired token",
            "The provided token is not valid",
        )

    return True


async def get_current_actor(
    _: bool = Depends(verify_token),
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """
    Resolve the acting user from the forwarded identity headers.

    Returns:
        Actor with a role from the closed Role enum
    """
    if not x_actor_id or not x_actor_id.strip():
        raise _unauthorized(
            "AUTH_004",
            "Actor identity missing",
            "X-Actor-Id header is required",
        )

    try:
        role = Role.parse(x_actor_role)
    except ValueError:
        logger.warning(f"Rejected unknown actor role {x_actor_role!r} for {x_actor_id}")
        raise _unauthorized(
            "AUTH_004",
            "Actor role missing or unknown",
            f"X-Actor-Role must be one of {[r.value for r in Role]}",
        )

    return Actor(user_id=x_actor_id.strip(), role=role)
