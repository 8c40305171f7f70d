"""
Authentication and authorization utilities.

Staff authenticate with a short-lived HS256 JWT. Customers never hold a
JWT: they present the opaque table token minted by a QR scan, which is
checked against the database by the customer routes.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header, Query

from shared.config.constants import UserRole
from shared.config.logging import get_logger
from shared.config.settings import JWT_AUDIENCE, JWT_ISSUER, JWT_SECRET, settings
from shared.utils.exceptions import (
    InsufficientRoleError,
    NotAuthenticatedError,
    RestaurantAccessError,
)

logger = get_logger(__name__)


# =============================================================================
# JWT Functions (staff authentication)
# =============================================================================


def sign_jwt(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    """
    Sign a JWT with the given payload.

    Args:
        payload: Claims to include (sub, restaurant_id, role, email).
        ttl_seconds: Token lifetime in seconds. Defaults to the access token expiry.

    Returns:
        Signed JWT token string.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a staff JWT.

    Returns:
        Decoded token claims.

    Raises:
        NotAuthenticatedError: If the token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise NotAuthenticatedError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the real reason, return a generic message
        logger.warning("JWT validation failed", error=str(e))
        raise NotAuthenticatedError("Invalid token")

    try:
        int(payload["sub"])
        UserRole(payload["role"])
    except (KeyError, ValueError, TypeError):
        raise NotAuthenticatedError("Invalid token: malformed claims")

    restaurant_id = payload.get("restaurant_id")
    if restaurant_id is not None and not isinstance(restaurant_id, int):
        raise NotAuthenticatedError("Invalid token: malformed restaurant_id claim")

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        NotAuthenticatedError: If header is missing or malformed.
    """
    if not authorization:
        raise NotAuthenticatedError("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise NotAuthenticatedError("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def _context_from_claims(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "user_id": int(payload["sub"]),
        "restaurant_id": payload.get("restaurant_id"),
        "role": UserRole(payload["role"]),
        "email": payload.get("email"),
    }


def current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the current staff context from the JWT.

    Usage:
        @router.get("/orders")
        def list_orders(ctx: dict = Depends(current_user_context)):
            restaurant_id = ctx["restaurant_id"]
            ...

    Returns:
        Dict with: user_id, restaurant_id (None for platform admins), role, email
    """
    token = get_bearer_token(authorization)
    return _context_from_claims(verify_jwt(token))


def require_roles(ctx: dict[str, Any], allowed: list[UserRole] | frozenset[UserRole]) -> None:
    """
    Verify that the caller holds one of the allowed roles.

    Raises:
        InsufficientRoleError: If the caller's role is not allowed.
    """
    if ctx["role"] not in allowed:
        raise InsufficientRoleError(
            sorted(role.value for role in allowed),
            user_id=ctx["user_id"],
            role=ctx["role"].value,
        )


def require_restaurant(ctx: dict[str, Any], restaurant_id: int) -> None:
    """
    Verify that the caller may act on ``restaurant_id``.

    Platform admins may act on any restaurant.

    Raises:
        RestaurantAccessError: If the caller belongs to another restaurant.
    """
    if ctx["role"] == UserRole.ADMIN:
        return
    if ctx.get("restaurant_id") != restaurant_id:
        raise RestaurantAccessError(restaurant_id, user_id=ctx["user_id"])


def staff_restaurant_id(ctx: dict[str, Any], restaurant_id: int | None = None) -> int:
    """
    Resolve the restaurant a staff request works on.

    Restaurant staff always work on their own restaurant. Platform admins
    have none and must name one explicitly.
    """
    if ctx.get("restaurant_id") is not None:
        if restaurant_id is not None:
            require_restaurant(ctx, restaurant_id)
        return ctx["restaurant_id"]
    if restaurant_id is None:
        raise RestaurantAccessError(None, user_id=ctx["user_id"])
    return restaurant_id


# =============================================================================
# Table token extraction (customer routes)
# =============================================================================


def table_token_param(
    token: str | None = Query(default=None),
    x_table_token: str | None = Header(default=None, alias="X-Table-Token"),
) -> str | None:
    """
    FastAPI dependency returning the raw table token of a customer request.

    The query parameter (what the QR redirect puts in the URL) wins over the
    X-Table-Token header. Validation happens against the database later.
    """
    value = token or x_table_token
    return value.strip() if value and value.strip() else None


# =============================================================================
# WebSocket Authentication (token in query param)
# =============================================================================


def ws_auth_context(token: str = Query(...)) -> dict[str, Any]:
    """
    Verify a staff JWT from a WebSocket query parameter.

    Usage:
        @router.websocket("/ws/changes")
        async def changes(ws: WebSocket, ctx: dict = Depends(ws_auth_context)):
            ...
    """
    return _context_from_claims(verify_jwt(token))

