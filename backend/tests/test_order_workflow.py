"""
Tests for OrderWorkflowService: the status machine, payment and table close.
"""

import pytest
from sqlalchemy.exc import OperationalError

from shared.config.constants import (
    OrderStatus,
    PaymentMethod,
    TokenRevokeReason,
    UserRole,
    get_allowed_order_transitions,
)
from shared.utils.exceptions import (
    AlreadyPaidError,
    InvalidTransitionError,
    OrderNotFoundError,
    PartialApplicationError,
    TableNotFoundError,
    TransitionNotAllowedError,
    ValidationError,
)
from shared.utils.schemas import OrderLineInput
from rest_api.models import as_utc
from rest_api.services.domain.order_service import OrderService
from rest_api.services.domain.order_workflow import OrderWorkflowService
from rest_api.services.domain.session_gate import SessionGateService
from rest_api.services.domain.table_token_service import TableTokenService


def place(db_session, table, product, quantity=1):
    tokens = TableTokenService(db_session)
    live = tokens.issue(table.restaurant_id, table.id).token
    gate = SessionGateService(db_session)
    session = gate.open(table.restaurant_id, table.id, live.token)
    gate.ensure_party_size(session, 2)
    order = OrderService(db_session).place_order(
        session, [OrderLineInput(product_id=product.id, quantity=quantity)]
    )
    return order, session.token


@pytest.fixture
def workflow(db_session, clock):
    return OrderWorkflowService(db_session, now=clock)


@pytest.fixture
def order(db_session, seed_table, product_p1):
    placed, _ = place(db_session, seed_table, product_p1, quantity=2)
    return placed


class TestStatusTransitions:
    """Tests for moving orders through the kitchen and floor states."""

    def test_full_forward_path(self, workflow, order):
        rid = order.restaurant_id
        result = workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.KITCHEN)
        assert result.old_status == "pending"
        assert result.changed

        workflow.set_status(order.id, rid, OrderStatus.READY, UserRole.KITCHEN)
        result = workflow.set_status(order.id, rid, OrderStatus.SERVED, UserRole.STAFF)

        assert result.order.status == "served"
        assert all(item.status == "served" for item in result.order.items)

    def test_items_mirror_order_status(self, workflow, order):
        result = workflow.set_status(order.id, order.restaurant_id, OrderStatus.PREPARING, UserRole.MANAGER)
        assert {item.status for item in result.order.items} == {"preparing"}

    def test_backward_transition_rejected(self, workflow, order):
        rid = order.restaurant_id
        workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.KITCHEN)
        workflow.set_status(order.id, rid, OrderStatus.READY, UserRole.KITCHEN)

        with pytest.raises(InvalidTransitionError) as exc:
            workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.KITCHEN)
        assert exc.value.code == "INVALID_TRANSITION"

    def test_skipping_a_step_rejected(self, workflow, order):
        with pytest.raises(InvalidTransitionError):
            workflow.set_status(order.id, order.restaurant_id, OrderStatus.SERVED, UserRole.STAFF)

    def test_same_status_is_a_no_op(self, workflow, order):
        rid = order.restaurant_id
        workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.KITCHEN)
        result = workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.STAFF)

        assert result.changed is False
        assert result.order.status == "preparing"

    def test_kitchen_cannot_serve(self, workflow, order):
        rid = order.restaurant_id
        workflow.set_status(order.id, rid, OrderStatus.PREPARING, UserRole.KITCHEN)
        workflow.set_status(order.id, rid, OrderStatus.READY, UserRole.KITCHEN)

        with pytest.raises(TransitionNotAllowedError) as exc:
            workflow.set_status(order.id, rid, OrderStatus.SERVED, UserRole.KITCHEN)
        assert exc.value.status_code == 403
        assert exc.value.code == "TRANSITION_NOT_ALLOWED"

    def test_role_checked_before_state(self, workflow, order):
        """A forbidden target is refused even when the edge does not exist."""
        with pytest.raises(TransitionNotAllowedError):
            workflow.set_status(order.id, order.restaurant_id, OrderStatus.SERVED, UserRole.KITCHEN)

    def test_paid_needs_payment_method(self, workflow, order):
        with pytest.raises(ValidationError) as exc:
            workflow.set_status(order.id, order.restaurant_id, OrderStatus.PAID, UserRole.STAFF)
        assert exc.value.code == "PAYMENT_METHOD_REQUIRED"

    def test_unknown_or_foreign_order(self, workflow, order, other_restaurant):
        with pytest.raises(OrderNotFoundError):
            workflow.set_status(order.id, other_restaurant.id, OrderStatus.PREPARING, UserRole.MANAGER)
        with pytest.raises(OrderNotFoundError):
            workflow.set_status(999_999, order.restaurant_id, OrderStatus.PREPARING, UserRole.MANAGER)

    def test_allowed_transitions_per_role(self):
        assert get_allowed_order_transitions(OrderStatus.READY, UserRole.KITCHEN) == []
        assert get_allowed_order_transitions(OrderStatus.READY, UserRole.STAFF) == [
            OrderStatus.SERVED,
            OrderStatus.PAID,
        ]
        assert get_allowed_order_transitions(OrderStatus.PAID, UserRole.ADMIN) == []


class TestPayment:
    """Tests for paying single orders."""

    def test_pay(self, db_session, workflow, order, clock):
        result = workflow.pay(order.id, order.restaurant_id, PaymentMethod.CARD, UserRole.STAFF, user_id=7)

        paid = result.order
        assert result.old_status == "pending"
        assert paid.status == "paid"
        assert paid.payment_method == "card"
        assert as_utc(paid.paid_at) == clock.current
        assert paid.updated_by_id == 7
        assert {item.status for item in paid.items} == {"paid"}

    @pytest.mark.parametrize("method", [None, "", "bitcoin"])
    def test_payment_method_required(self, workflow, order, method):
        with pytest.raises(ValidationError) as exc:
            workflow.pay(order.id, order.restaurant_id, method, UserRole.STAFF)
        assert exc.value.code == "PAYMENT_METHOD_REQUIRED"

    def test_kitchen_cannot_take_payment(self, workflow, order):
        with pytest.raises(TransitionNotAllowedError):
            workflow.pay(order.id, order.restaurant_id, "cash", UserRole.KITCHEN)

    def test_pay_twice(self, workflow, order):
        workflow.pay(order.id, order.restaurant_id, "cash", UserRole.STAFF)
        with pytest.raises(AlreadyPaidError) as exc:
            workflow.pay(order.id, order.restaurant_id, "cash", UserRole.STAFF)
        assert exc.value.status_code == 409

    def test_paid_is_terminal(self, workflow, order):
        workflow.pay(order.id, order.restaurant_id, "cash", UserRole.STAFF)
        with pytest.raises(InvalidTransitionError):
            workflow.set_status(order.id, order.restaurant_id, OrderStatus.PREPARING, UserRole.MANAGER)

    def test_last_payment_ends_session(self, db_session, workflow, seed_table, product_p1):
        placed, token = place(db_session, seed_table, product_p1)

        result = workflow.pay(placed.id, placed.restaurant_id, "cash", UserRole.STAFF)

        db_session.refresh(token)
        assert result.revoked_token_ids == [token.id]
        assert token.revoked is True
        assert token.revoked_reason == TokenRevokeReason.TABLE_CLOSED

    def test_session_stays_open_while_orders_remain(self, db_session, workflow, seed_table, product_p1, product_p2):
        first, _ = place(db_session, seed_table, product_p1)
        second, token = place(db_session, seed_table, product_p2)

        result = workflow.pay(first.id, first.restaurant_id, "cash", UserRole.STAFF)

        db_session.refresh(token)
        assert result.revoked_token_ids == []
        assert token.revoked is False

        result = workflow.pay(second.id, second.restaurant_id, "card", UserRole.STAFF)
        assert result.revoked_token_ids == [token.id]

    def test_revocation_failure_keeps_payment(self, db_session, workflow, order, monkeypatch):
        def broken_revoke(self, *args, **kwargs):
            raise OperationalError("UPDATE table_token", {}, Exception("connection lost"))

        with monkeypatch.context() as patch:
            patch.setattr(TableTokenService, "revoke_all_for_table", broken_revoke)
            with pytest.raises(PartialApplicationError) as exc:
                workflow.pay(order.id, order.restaurant_id, "cash", UserRole.STAFF)

        assert exc.value.code == "PARTIAL_APPLICATION"
        reloaded = OrderService(db_session).get_order(order.id, order.restaurant_id)
        assert reloaded.status == "paid"

        # Closing the table again finishes the job
        result = workflow.close_table(order.table_id, order.restaurant_id, "cash", UserRole.STAFF)
        assert result.paid_orders == []
        assert len(result.revoked_token_ids) == 1


class TestCloseTable:
    """Tests for paying a whole table at once."""

    def test_close_pays_everything_and_revokes(
        self, db_session, workflow, seed_table, second_table, product_p1, product_p2
    ):
        first, _ = place(db_session, seed_table, product_p1)
        second, token = place(db_session, seed_table, product_p2)
        elsewhere, _ = place(db_session, second_table, product_p1)
        workflow.set_status(first.id, first.restaurant_id, OrderStatus.PREPARING, UserRole.KITCHEN)

        result = workflow.close_table(seed_table.id, seed_table.restaurant_id, "card", UserRole.MANAGER)

        assert sorted(o.id for o in result.paid_orders) == sorted([first.id, second.id])
        assert result.old_statuses == {first.id: "preparing", second.id: "pending"}
        assert all(o.status == "paid" and o.payment_method == "card" for o in result.paid_orders)
        assert result.revoked_token_ids == [token.id]

        untouched = OrderService(db_session).get_order(elsewhere.id, elsewhere.restaurant_id)
        assert untouched.status == "pending"

    def test_close_is_idempotent(self, workflow, seed_table, db_session, product_p1):
        place(db_session, seed_table, product_p1)
        workflow.close_table(seed_table.id, seed_table.restaurant_id, "cash", UserRole.STAFF)

        again = workflow.close_table(seed_table.id, seed_table.restaurant_id, "cash", UserRole.STAFF)
        assert again.paid_orders == []
        assert again.revoked_token_ids == []

    def test_close_empty_table_revokes_live_token(self, db_session, workflow, seed_table):
        token = TableTokenService(db_session).issue(seed_table.restaurant_id, seed_table.id).token

        result = workflow.close_table(seed_table.id, seed_table.restaurant_id, "cash", UserRole.STAFF)

        assert result.paid_orders == []
        assert result.revoked_token_ids == [token.id]

    def test_close_needs_method_and_floor_role(self, workflow, seed_table):
        with pytest.raises(ValidationError):
            workflow.close_table(seed_table.id, seed_table.restaurant_id, None, UserRole.STAFF)
        with pytest.raises(TransitionNotAllowedError):
            workflow.close_table(seed_table.id, seed_table.restaurant_id, "cash", UserRole.KITCHEN)

    def test_close_unknown_table(self, workflow, seed_restaurant, other_restaurant, seed_table):
        with pytest.raises(TableNotFoundError):
            workflow.close_table(999_999, seed_restaurant.id, "cash", UserRole.STAFF)
        with pytest.raises(TableNotFoundError):
            workflow.close_table(seed_table.id, other_restaurant.id, "cash", UserRole.ADMIN)
