"""
Authentication dependencies for FastAPI
"""

from typing import Optional
from fastapi import Depends, HTTPException, Header, Request, status
import jwt as pyjwt

from payloom.auth.principal import Principal
from payloom.core.escrow.state_machine import Actor
from payloom.core.security.models import Role
from payloom.infrastructure.settings import get_settings


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": code, "message": message}},
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> Principal:
    """Decode an HS256 bearer token into a Principal"""
    settings = get_settings()
    if not settings.JWT_SECRET:
        raise _unauthorized("AUTH_NOT_CONFIGURED", "JWT_SECRET is not configured")

    try:
        payload = pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise _unauthorized("TOKEN_EXPIRED", "Token expired")
    except pyjwt.InvalidTokenError as e:
        raise _unauthorized("INVALID_TOKEN", f"Invalid token: {str(e)}")

    subject = payload.get("sub")
    if not subject:
        raise _unauthorized("INVALID_TOKEN", "Token has no subject")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]

    return Principal(
        subject=str(subject),
        email=payload.get("email"),
        roles=[str(role).upper() for role in roles],
        raw_claims=payload,
    )


async def get_current_principal(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Principal:
    """
    Extract Principal from the Bearer token in the Authorization header.
    """
    if not authorization:
        raise _unauthorized("AUTHORIZATION_MISSING", "Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authentication scheme")

    principal = decode_token(token)
    # Picked up by RequestLoggingMiddleware
    request.state.principal = principal
    return principal


async def require_admin_role(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require ADMIN role"""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions - ADMIN role required",
        )
    return principal


def buyer_actor(principal: Principal) -> Actor:
    return Actor(role=Role.BUYER, user_id=principal.user_id)


def seller_actor(principal: Principal) -> Actor:
    return Actor(role=Role.SELLER, user_id=principal.user_id)


def admin_actor(principal: Principal) -> Actor:
    return Actor(role=Role.ADMIN, user_id=principal.user_id)
