"""
Centralized constants for the backend application.

Roles, statuses and payment methods are closed enums so that every
transition and every capability check matches against a fixed set.

Usage:
    from shared.config.constants import UserRole, OrderStatus

    if status == OrderStatus.PENDING:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class UserRole(str, Enum):
    """Staff account roles."""

    ADMIN = "admin"  # Platform admin, not bound to a restaurant
    MANAGER = "restaurant_manager"
    STAFF = "staff"  # Floor service and cashier
    KITCHEN = "kitchen"


# Role groups for common access patterns
MANAGEMENT_ROLES: Final[frozenset[UserRole]] = frozenset({UserRole.ADMIN, UserRole.MANAGER})
FLOOR_ROLES: Final[frozenset[UserRole]] = frozenset(
    {UserRole.ADMIN, UserRole.MANAGER, UserRole.STAFF}
)
ALL_STAFF_ROLES: Final[frozenset[UserRole]] = frozenset(UserRole)


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus(str, Enum):
    """Order workflow status, mirrored onto order items."""

    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"


# Orders the floor still has to deal with
OPEN_ORDER_STATUSES: Final[tuple[OrderStatus, ...]] = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
)
# Orders shown on the kitchen board
KITCHEN_VISIBLE_STATUSES: Final[tuple[OrderStatus, ...]] = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
)


class PaymentMethod(str, Enum):
    """How a bill was settled."""

    CASH = "cash"
    CARD = "card"


class PricingMode(str, Enum):
    """Pricing regime an order was placed under."""

    STANDARD = "standard"
    AYCE = "ayce"


class ProductStatus(str, Enum):
    """Menu availability of a product."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class WaiterCallStatus(str, Enum):
    """Waiter call lifecycle: active -> resolved, one-way."""

    ACTIVE = "active"
    RESOLVED = "resolved"


class TokenInvalidReason(str, Enum):
    """Why a table token was refused. The value doubles as the error code."""

    MISSING = "TOKEN_MISSING"
    NOT_FOUND = "NOT_FOUND"
    RESTAURANT_MISMATCH = "RESTAURANT_MISMATCH"
    TABLE_MISMATCH = "TABLE_MISMATCH"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class TokenRevokeReason:
    """Why a table token was revoked."""

    SUPERSEDED: Final[str] = "superseded"  # A newer scan of the same table
    TABLE_CLOSED: Final[str] = "table_closed"  # Bill settled
    MANUAL: Final[str] = "manual"  # Staff rotated the QR session

    ALL: Final[list[str]] = [SUPERSEDED, TABLE_CLOSED, MANUAL]


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states]).
# Forward only: there is no operation that moves an order back.
ORDER_TRANSITIONS: Final[dict[OrderStatus, list[OrderStatus]]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.PAID],
    OrderStatus.PREPARING: [OrderStatus.READY, OrderStatus.PAID],
    OrderStatus.READY: [OrderStatus.SERVED, OrderStatus.PAID],
    OrderStatus.SERVED: [OrderStatus.PAID],
    OrderStatus.PAID: [],  # Terminal state
}

# Role-based transition restrictions.
# Kitchen may only start preparation and mark orders ready; serving and
# payment belong to the floor.
ORDER_TRANSITION_ROLES: Final[dict[OrderStatus, frozenset[UserRole]]] = {
    OrderStatus.PREPARING: ALL_STAFF_ROLES,
    OrderStatus.READY: ALL_STAFF_ROLES,
    OrderStatus.SERVED: FLOOR_ROLES,
    OrderStatus.PAID: FLOOR_ROLES,
}


def validate_order_transition(current_status: OrderStatus, new_status: OrderStatus) -> bool:
    """Return True if the state machine allows current -> new."""
    return new_status in ORDER_TRANSITIONS.get(current_status, [])


def role_may_set_status(role: UserRole, new_status: OrderStatus) -> bool:
    """Return True if a caller with ``role`` may move an order into ``new_status``."""
    return role in ORDER_TRANSITION_ROLES.get(new_status, frozenset())


def get_allowed_order_transitions(current_status: OrderStatus, role: UserRole) -> list[OrderStatus]:
    """
    Get allowed order transitions for a given status and user role.

    Returns list of status values the user can transition to.
    """
    return [
        new_status
        for new_status in ORDER_TRANSITIONS.get(current_status, [])
        if role_may_set_status(role, new_status)
    ]


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99

    MIN_PRICE_CENTS: Final[int] = 0
    MAX_PRICE_CENTS: Final[int] = 100_000_00

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_NOTES_LENGTH: Final[int] = 500

    MIN_PARTY_SIZE: Final[int] = 1

    MIN_ORDER_COOLDOWN_MINUTES: Final[int] = 1


# =============================================================================
# Error Messages
# =============================================================================


class ErrorMessages:
    """Customer and staff facing error messages."""

    # Table token
    TOKEN_MISSING: Final[str] = "This QR code is not valid. Please ask the staff for a new one."
    TOKEN_NOT_FOUND: Final[str] = (
        "This QR code is not recognised. Please scan the code on your table again."
    )
    TOKEN_MISMATCH: Final[str] = (
        "This QR code belongs to a different table. Please scan the code on your table."
    )
    TOKEN_EXPIRED: Final[str] = "This QR code has expired. Please scan the code on your table again."
    TOKEN_REVOKED: Final[str] = (
        "This QR code has been regenerated or the table was closed. "
        "Please ask the staff for a new one."
    )

    # QR issuance
    QR_MISSING_IDS: Final[str] = "Missing restaurant or table id"
    QR_ISSUE_FAILED: Final[str] = "Unable to generate token"

    # Party size
    PARTY_SIZE_REQUIRED: Final[str] = (
        "Please tell us how many guests are at the table before sending the order."
    )
    PARTY_SIZE_INVALID: Final[str] = "Enter a valid number of guests (minimum 1)."
    PARTY_SIZE_TOO_LARGE: Final[str] = (
        "Please contact the staff for tables with more than {max} guests."
    )

    # Cart and order
    EMPTY_ORDER: Final[str] = "An order must contain at least one product."
    AYCE_LIMIT_REACHED: Final[str] = "Limit reached: maximum {limit} pieces of {product}."
    AYCE_LIMIT_EXCEEDED: Final[str] = (
        "The limit for {product} is {limit} pieces per guest with the All You Can Eat plan."
    )
    INVALID_QUANTITY: Final[str] = "Quantity must be a whole number."
    PRODUCT_UNAVAILABLE: Final[str] = "{product} is not available right now."
    ORDER_COOLDOWN: Final[str] = (
        "Please wait {minutes} more minute(s) before sending another order."
    )

    # Workflow
    INVALID_TRANSITION: Final[str] = "Cannot move an order from {current} to {target}."
    TRANSITION_NOT_ALLOWED: Final[str] = "Your role cannot mark orders as {target}."
    PAYMENT_METHOD_REQUIRED: Final[str] = "Choose a payment method (cash or card)."
    ALREADY_PAID: Final[str] = "This order has already been paid."
    WAITER_CALL_RESOLVED: Final[str] = "This waiter call has already been resolved."

    # Access
    NOT_AUTHENTICATED: Final[str] = "Not authenticated"
    INVALID_CREDENTIALS: Final[str] = "Invalid email or password"
    NO_RESTAURANT_ACCESS: Final[str] = "You do not have access to this restaurant"
    INSUFFICIENT_PERMISSIONS: Final[str] = "Insufficient permissions"

    # Persistence
    PERSISTENCE_ERROR: Final[str] = "The change could not be saved. Please try again."
    PARTIAL_APPLICATION: Final[str] = (
        "The order was paid but the table session could not be closed. "
        "Close the table again to finish."
    )

    RATE_LIMIT_EXCEEDED: Final[str] = "Too many requests. Please try again later."


# One distinct customer message per token failure reason
TOKEN_INVALID_MESSAGES: Final[dict[TokenInvalidReason, str]] = {
    TokenInvalidReason.MISSING: ErrorMessages.TOKEN_MISSING,
    TokenInvalidReason.NOT_FOUND: ErrorMessages.TOKEN_NOT_FOUND,
    TokenInvalidReason.RESTAURANT_MISMATCH: ErrorMessages.TOKEN_MISMATCH,
    TokenInvalidReason.TABLE_MISMATCH: ErrorMessages.TOKEN_MISMATCH,
    TokenInvalidReason.EXPIRED: ErrorMessages.TOKEN_EXPIRED,
    TokenInvalidReason.REVOKED: ErrorMessages.TOKEN_REVOKED,
}
