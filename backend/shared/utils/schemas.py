"""
Shared Pydantic schemas used across the application.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from shared.config.constants import Limits, OrderStatus, PaymentMethod


# =============================================================================
# Authentication Schemas
# =============================================================================


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str


class UserInfo(BaseModel):
    """Basic user information included in auth responses."""

    id: int
    email: str
    full_name: str | None = None
    restaurant_id: int | None
    role: str


class LoginResponse(BaseModel):
    """Login response with JWT token."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    user: UserInfo


# =============================================================================
# Customer Session Schemas
# =============================================================================


class SessionOutput(BaseModel):
    """Result of a successful table-token validation."""

    valid: bool = True
    restaurant_id: int
    restaurant_name: str
    table_id: int
    table_name: str
    expires_at: datetime
    party_size: int | None = None
    needs_party_size: bool
    ayce_active: bool
    prepayment_required: bool


class PartySizeRequest(BaseModel):
    """Guest count. Validated by the session gate so every rejection reads the same."""

    party_size: Any = None


class PartySizeResponse(BaseModel):
    party_size: int


# =============================================================================
# Menu Schemas
# =============================================================================


class MenuProductOutput(BaseModel):
    id: int
    category_id: int
    name: str
    description: str | None = None
    price_cents: int
    ayce_limit: int | None = None  # Per-order cap when AYCE pricing is active


class MenuCategoryOutput(BaseModel):
    id: int
    name: str
    products: list[MenuProductOutput] = Field(default_factory=list)


class MenuOutput(BaseModel):
    """Everything the customer menu needs after the session is validated."""

    restaurant_id: int
    restaurant_name: str
    table_id: int
    table_name: str
    ayce_active: bool
    ayce_lunch_price_cents: int | None = None
    ayce_dinner_price_cents: int | None = None
    prepayment_required: bool
    categories: list[MenuCategoryOutput] = Field(default_factory=list)


# =============================================================================
# Order Schemas
# =============================================================================


class OrderLineInput(BaseModel):
    """One cart line. Prices are never accepted from the client."""

    product_id: int
    quantity: int = Field(ge=0, le=Limits.MAX_QUANTITY)  # 0 drops the line
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class SubmitOrderRequest(BaseModel):
    """Customer order submission."""

    items: list[OrderLineInput] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class OrderItemOutput(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    notes: str | None = None
    status: str


class OrderOutput(BaseModel):
    id: int
    restaurant_id: int
    table_id: int
    table_name: str | None = None
    status: str
    pricing_mode: str
    total_cents: int
    notes: str | None = None
    party_size: int | None = None
    payment_method: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
    allowed_transitions: list[str] = Field(default_factory=list)  # Staff views only
    items: list[OrderItemOutput] = Field(default_factory=list)


class SubmitOrderResponse(BaseModel):
    """Placed order plus whether guests must pay before the kitchen starts."""

    order: OrderOutput
    prepayment_required: bool


class UpdateOrderStatusRequest(BaseModel):
    """Workflow transition. Payment goes through the pay endpoint."""

    status: OrderStatus


class PayOrderRequest(BaseModel):
    payment_method: PaymentMethod | None = None


class OrderEditLine(BaseModel):
    """
    A line of a staff edit.

    ``item_id`` targets an existing line; without it ``product_id`` adds a
    new one. Quantity 0 removes an existing line.
    """

    item_id: int | None = None
    product_id: int | None = None
    quantity: int = Field(ge=0, le=Limits.MAX_QUANTITY)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class EditOrderRequest(BaseModel):
    """Staff correction of a submitted order."""

    items: list[OrderEditLine] = Field(default_factory=list)
    removed_item_ids: list[int] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


# =============================================================================
# Table Schemas
# =============================================================================


class CloseTableRequest(BaseModel):
    payment_method: PaymentMethod | None = None


class CloseTableResponse(BaseModel):
    table_id: int
    paid_order_ids: list[int]
    revoked_token_count: int


class RevokeTokensResponse(BaseModel):
    table_id: int
    revoked_token_count: int


# =============================================================================
# Waiter Call Schemas
# =============================================================================


class WaiterCallOutput(BaseModel):
    id: int
    restaurant_id: int
    table_id: int
    table_name: str | None = None
    status: str
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by_id: int | None = None


# =============================================================================
# Reporting Schemas
# =============================================================================


class DashboardOutput(BaseModel):
    pending_orders: int
    preparing_orders: int
    ready_orders: int
    active_waiter_calls: int


class PaymentsReportOutput(BaseModel):
    """Paid orders in a range with totals per payment method."""

    orders: list[OrderOutput] = Field(default_factory=list)
    count: int
    total_cents: int
    by_method: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Restaurant Settings Schemas
# =============================================================================


class RestaurantSettingsUpdate(BaseModel):
    """
    Partial update of the ordering settings. Only fields present in the body
    are applied; a blank cooldown falls back to the default.
    """

    order_cooldown_enabled: bool | None = None
    order_cooldown_minutes: int | str | None = None
    prepayment_required: bool | None = None
    all_you_can_eat_enabled: bool | None = None
    all_you_can_eat_lunch_price_cents: int | None = None
    all_you_can_eat_dinner_price_cents: int | None = None


class RestaurantSettingsOutput(BaseModel):
    restaurant_id: int
    order_cooldown_enabled: bool
    order_cooldown_minutes: int
    prepayment_required: bool
    all_you_can_eat_enabled: bool
    all_you_can_eat_lunch_price_cents: int | None = None
    all_you_can_eat_dinner_price_cents: int | None = None
    ayce_active: bool
