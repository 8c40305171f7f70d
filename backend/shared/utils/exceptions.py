"""
Centralized HTTP exceptions for consistent error handling.

Every exception carries a human ``detail`` and a stable machine ``code``;
``app_exception_handler`` renders both as ``{"detail": ..., "code": ...}``.

Usage:
    from shared.utils.exceptions import NotFoundError, ForbiddenError, ValidationError

    raise NotFoundError("Order", order_id)
    raise ForbiddenError("manage this restaurant")
    raise ValidationError("Enter a valid number of guests", code="PARTY_SIZE_INVALID")
"""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from shared.config.constants import (
    ErrorMessages,
    TOKEN_INVALID_MESSAGES,
    TokenInvalidReason,
)
from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    default_code = "ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: str | None = None,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        self.code = code or self.default_code

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, code=self.code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render an AppException with its machine-readable code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


# =============================================================================
# 401 Unauthorized Errors
# =============================================================================


class TableTokenInvalidError(AppException):
    """
    The customer's table token was refused (401).

    The reason is both the error code and the key of the message the
    customer sees, so each failure mode reads differently.
    """

    def __init__(self, reason: TokenInvalidReason, **log_context: Any):
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=TOKEN_INVALID_MESSAGES[reason],
            code=reason.value,
            log_level="info",
            **log_context,
        )


class NotAuthenticatedError(AppException):
    """Missing or bad staff credentials (401)."""

    default_code = "NOT_AUTHENTICATED"

    def __init__(self, detail: str = ErrorMessages.NOT_AUTHENTICATED, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="info",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", 123)
        raise NotFoundError("Table", table_id, restaurant_id=restaurant_id)
    """

    default_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class OrderNotFoundError(NotFoundError):
    """Order not found."""

    def __init__(self, order_id: int | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


class TableNotFoundError(NotFoundError):
    """Table not found (or inactive)."""

    def __init__(self, table_id: int | None = None, **log_context: Any):
        super().__init__("Table", table_id, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("edit orders")
        raise ForbiddenError("access this restaurant", user_id=user_id)
    """

    default_code = "FORBIDDEN"

    def __init__(
        self,
        action: str | None = None,
        detail: str | None = None,
        code: str | None = None,
        **log_context: Any,
    ):
        if detail is None:
            detail = f"Not allowed to {action}" if action else "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            code=code,
            log_level="warning",
            action=action,
            **log_context,
        )


class RestaurantAccessError(ForbiddenError):
    """User doesn't belong to the restaurant."""

    def __init__(self, restaurant_id: int | None = None, **log_context: Any):
        super().__init__(
            detail=ErrorMessages.NO_RESTAURANT_ACCESS,
            restaurant_id=restaurant_id,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


class TransitionNotAllowedError(ForbiddenError):
    """The caller's role may not perform this status transition."""

    def __init__(self, role: str, to_status: str, **log_context: Any):
        super().__init__(
            detail=ErrorMessages.TRANSITION_NOT_ALLOWED.format(target=to_status),
            code="TRANSITION_NOT_ALLOWED",
            role=role,
            to_status=to_status,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Price must be positive")
        raise ValidationError(ErrorMessages.EMPTY_ORDER, code="EMPTY_ORDER")
    """

    default_code = "VALIDATION_ERROR"

    def __init__(self, detail: str, code: str | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            code=code,
            log_level="warning",
            **log_context,
        )


class PartySizeRequiredError(ValidationError):
    """An order was submitted before the party size was set."""

    def __init__(self, **log_context: Any):
        self.prompt = True
        super().__init__(
            ErrorMessages.PARTY_SIZE_REQUIRED,
            code="PARTY_SIZE_REQUIRED",
            **log_context,
        )


class InvalidTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = ErrorMessages.INVALID_TRANSITION.format(current=from_status, target=to_status)
        super().__init__(
            detail,
            code="INVALID_TRANSITION",
            entity=entity,
            from_status=from_status,
            to_status=to_status,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError(ErrorMessages.WAITER_CALL_RESOLVED, code="ALREADY_RESOLVED")
    """

    default_code = "CONFLICT"

    def __init__(self, detail: str, code: str | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            code=code,
            log_level="warning",
            **log_context,
        )


class AlreadyPaidError(ConflictError):
    """Order is already paid."""

    def __init__(self, order_id: int, **log_context: Any):
        super().__init__(
            ErrorMessages.ALREADY_PAID,
            code="ALREADY_PAID",
            order_id=order_id,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to close table", table_id=123)
    """

    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str = "Internal server error",
        code: str | None = None,
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            code=code,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed. Nothing was retried."""

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(
            ErrorMessages.PERSISTENCE_ERROR,
            code="PERSISTENCE_ERROR",
            operation=operation,
            **log_context,
        )


class PartialApplicationError(InternalError):
    """
    A multi-step write stopped half way.

    The committed part stays committed; the caller re-runs the
    idempotent remainder (for example closing the table again).
    """

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(
            ErrorMessages.PARTIAL_APPLICATION,
            code="PARTIAL_APPLICATION",
            operation=operation,
            **log_context,
        )
