"""
Authentication router.
Handles staff login.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import ErrorMessages, UserRole
from shared.config.logging import audit_auth_event
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, sign_jwt
from shared.security.password import verify_password
from shared.security.rate_limit import limiter
from shared.utils.exceptions import NotAuthenticatedError
from shared.utils.schemas import LoginRequest, LoginResponse, UserInfo
from rest_api.models import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
@limiter.limit(settings.login_rate_limit)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """
    Authenticate a staff member and return an access token.

    The token contains:
    - sub: user ID
    - restaurant_id: the user's restaurant (None for platform admins)
    - role: one of admin, restaurant_manager, staff, kitchen
    - email: user's email
    """
    ip_address = request.client.host if request.client else None
    user = db.scalar(select(User).where(User.email == body.email, User.is_active.is_(True)))

    if user is None or not verify_password(body.password, user.password):
        audit_auth_event(
            "LOGIN_FAILED",
            user_id=user.id if user else None,
            email=body.email,
            success=False,
            reason="user_not_found" if user is None else "invalid_password",
            ip_address=ip_address,
        )
        raise NotAuthenticatedError(ErrorMessages.INVALID_CREDENTIALS)

    role = UserRole(user.role)
    if role != UserRole.ADMIN and user.restaurant_id is None:
        audit_auth_event(
            "LOGIN_FAILED",
            user_id=user.id,
            email=body.email,
            success=False,
            reason="no_restaurant",
            ip_address=ip_address,
        )
        raise NotAuthenticatedError(ErrorMessages.INVALID_CREDENTIALS)

    access_token = sign_jwt(
        {
            "sub": str(user.id),
            "restaurant_id": user.restaurant_id,
            "role": role.value,
            "email": user.email,
        }
    )
    audit_auth_event(
        "LOGIN_SUCCESS",
        user_id=user.id,
        email=user.email,
        ip_address=ip_address,
        role=role.value,
    )

    return LoginResponse(
        access_token=access_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserInfo(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            restaurant_id=user.restaurant_id,
            role=role.value,
        ),
    )


@router.get("/me", response_model=UserInfo)
def me(ctx: dict = Depends(current_user_context)) -> UserInfo:
    """Current user's info from the token."""
    return UserInfo(
        id=ctx["user_id"],
        email=ctx["email"] or "",
        restaurant_id=ctx["restaurant_id"],
        role=ctx["role"].value,
    )
