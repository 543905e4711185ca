"""Authentication dependencies for FastAPI.

Identity is resolved once per request into a ``Principal`` and handed to the
services explicitly.
"""

import hmac
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from sketchbrains.logging_config import get_logger
from sketchbrains.settings import settings
from sketchbrains.storage.db import Database, get_database
from sketchbrains.storage.models import Profile

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller of a request."""

    user_id: str | None
    email: str | None = None
    is_admin: bool = False
    is_service: bool = False


SERVICE_PRINCIPAL = Principal(user_id=None, is_service=True)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify and decode an access token issued by the auth provider.

    Args:
        token: JWT token string

    Returns:
        Token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.debug("token_verification_failed", error=str(e))
        return None


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    database: Database = Depends(get_database),
) -> Principal | None:
    """Resolve the Bearer token into a principal.

    Returns:
        Principal or None if not authenticated
    """
    if not credentials:
        return None

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None

    user_id = str(payload["sub"])
    with database.session() as session:
        profile = session.get(Profile, user_id)
        if not profile:
            logger.info("token_without_profile", user_id=user_id)
            return None
        return Principal(user_id=profile.id, email=profile.email, is_admin=profile.is_admin)


def require_auth(principal: Principal | None = Depends(get_current_principal)) -> Principal:
    """Require authentication - raises 401 if not authenticated."""
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_admin(principal: Principal = Depends(require_auth)) -> Principal:
    """Require admin privileges - raises 403 otherwise."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return principal


def require_service(
    x_service_token: str | None = Header(default=None, alias="X-Service-Token"),
    principal: Principal | None = Depends(get_current_principal),
) -> Principal:
    """Allow cron/internal callers holding the service token, or admins.

    Raises:
        HTTPException: 401 if neither credential is valid
    """
    if x_service_token and settings.service_token and hmac.compare_digest(
        x_service_token, settings.service_token
    ):
        return SERVICE_PRINCIPAL

    if principal and principal.is_admin:
        return principal

    logger.warning("service_auth_rejected", has_token=bool(x_service_token))
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Service credentials required",
    )
