"""
Tests for OrderService: placing customer orders and staff edits.
"""

import pytest
from sqlalchemy import func, select

from shared.config.constants import OrderStatus, ProductStatus, UserRole
from shared.utils.exceptions import (
    AlreadyPaidError,
    NotFoundError,
    PartySizeRequiredError,
    ValidationError,
)
from shared.utils.schemas import OrderEditLine, OrderLineInput
from rest_api.models import Order
from rest_api.services.domain.order_service import OrderService, order_to_output
from rest_api.services.domain.order_workflow import OrderWorkflowService
from rest_api.services.domain.session_gate import SessionGateService
from rest_api.services.domain.table_token_service import TableTokenService

from conftest import make_product


def open_session(db_session, table, party_size=2):
    token = TableTokenService(db_session).issue(table.restaurant_id, table.id).token
    gate = SessionGateService(db_session)
    session = gate.open(table.restaurant_id, table.id, token.token)
    if party_size is not None:
        gate.ensure_party_size(session, party_size)
    return session


def lines(*pairs):
    return [OrderLineInput(product_id=product.id, quantity=quantity) for product, quantity in pairs]


def order_count(db_session):
    return db_session.scalar(select(func.count(Order.id)))


class TestPlaceOrder:
    """Tests for customer order submission."""

    def test_standard_order(self, db_session, seed_table, product_p1, product_p2):
        session = open_session(db_session, seed_table, party_size=3)
        order = OrderService(db_session).place_order(
            session, lines((product_p1, 2), (product_p2, 1)), notes="window seat"
        )

        assert order.status == OrderStatus.PENDING.value
        assert order.pricing_mode == "standard"
        assert order.total_cents == 2150
        assert order.party_size == 3
        assert order.notes == "window seat"
        assert order.table_token_id == session.token.id
        assert [(i.unit_price_cents, i.quantity, i.total_price_cents) for i in order.items] == [
            (800, 2, 1600),
            (550, 1, 550),
        ]
        assert all(item.status == OrderStatus.PENDING.value for item in order.items)

    def test_prices_are_copied_at_submission(self, db_session, seed_table, product_p1):
        session = open_session(db_session, seed_table)
        order = OrderService(db_session).place_order(session, lines((product_p1, 1)))

        product_p1.price_cents = 1200
        db_session.commit()

        reloaded = OrderService(db_session).get_order(order.id, seed_table.restaurant_id)
        assert reloaded.items[0].unit_price_cents == 800
        assert reloaded.total_cents == 800

    def test_duplicate_products_are_merged(self, db_session, seed_table, product_p1):
        session = open_session(db_session, seed_table)
        order = OrderService(db_session).place_order(session, lines((product_p1, 1), (product_p1, 2)))

        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert order.total_cents == 2400

    def test_party_size_required(self, db_session, seed_table, product_p1):
        session = open_session(db_session, seed_table, party_size=None)

        with pytest.raises(PartySizeRequiredError):
            OrderService(db_session).place_order(session, lines((product_p1, 1)))
        assert order_count(db_session) == 0

    def test_party_size_checked_before_cart(self, db_session, seed_table):
        """An empty cart without a party size asks for the guests first."""
        session = open_session(db_session, seed_table, party_size=None)

        with pytest.raises(PartySizeRequiredError):
            OrderService(db_session).place_order(session, [])

    @pytest.mark.parametrize("quantity", [None, 0])
    def test_empty_order(self, db_session, seed_table, product_p1, quantity):
        session = open_session(db_session, seed_table)
        items = [] if quantity is None else lines((product_p1, quantity))

        with pytest.raises(ValidationError) as exc:
            OrderService(db_session).place_order(session, items)
        assert exc.value.code == "EMPTY_ORDER"
        assert order_count(db_session) == 0

    def test_unavailable_product(self, db_session, seed_table, seed_category, product_p1):
        sold_out = make_product(
            db_session, seed_category, "Lasagne", 1100, status=ProductStatus.UNAVAILABLE.value
        )
        session = open_session(db_session, seed_table)

        with pytest.raises(ValidationError) as exc:
            OrderService(db_session).place_order(session, lines((product_p1, 1), (sold_out, 1)))
        assert exc.value.code == "PRODUCT_UNAVAILABLE"
        assert "Lasagne" in exc.value.detail
        assert order_count(db_session) == 0

    def test_product_of_other_restaurant(self, db_session, seed_table, other_restaurant):
        from rest_api.models import Category

        category = Category(restaurant_id=other_restaurant.id, name="Rolls")
        db_session.add(category)
        db_session.commit()
        foreign = make_product(db_session, category, "California Roll", 900)
        session = open_session(db_session, seed_table)

        with pytest.raises(ValidationError) as exc:
            OrderService(db_session).place_order(session, lines((foreign, 1)))
        assert exc.value.code == "PRODUCT_UNAVAILABLE"


class TestAyceOrders:
    """Tests for orders under the all-you-can-eat plan."""

    def test_ayce_order_is_free(self, db_session, ayce_restaurant, seed_table, product_p1, product_p2):
        session = open_session(db_session, seed_table)
        order = OrderService(db_session).place_order(session, lines((product_p1, 2), (product_p2, 1)))

        assert order.pricing_mode == "ayce"
        assert order.total_cents == 0
        assert all(item.unit_price_cents == 0 and item.total_price_cents == 0 for item in order.items)

    def test_limit_exceeded(self, db_session, ayce_restaurant, seed_table, limited_product):
        session = open_session(db_session, seed_table)

        with pytest.raises(ValidationError) as exc:
            OrderService(db_session).place_order(session, lines((limited_product, 3)))
        assert exc.value.code == "AYCE_LIMIT_EXCEEDED"
        assert order_count(db_session) == 0

    def test_limit_counts_merged_lines(self, db_session, ayce_restaurant, seed_table, limited_product):
        session = open_session(db_session, seed_table)

        with pytest.raises(ValidationError) as exc:
            OrderService(db_session).place_order(
                session, lines((limited_product, 1), (limited_product, 2))
            )
        assert exc.value.code == "AYCE_LIMIT_EXCEEDED"

    def test_limit_applies_per_order(self, db_session, ayce_restaurant, seed_table, limited_product):
        """Each new order starts a fresh count."""
        session = open_session(db_session, seed_table)
        service = OrderService(db_session)

        service.place_order(session, lines((limited_product, 2)))
        second = service.place_order(session, lines((limited_product, 2)))

        assert second.items[0].quantity == 2
        assert order_count(db_session) == 2

    def test_limit_ignored_without_ayce(self, db_session, seed_table, limited_product):
        session = open_session(db_session, seed_table)
        order = OrderService(db_session).place_order(session, lines((limited_product, 5)))
        assert order.total_cents == 2000


class TestCooldown:
    """Tests for the minimum time between orders of one table."""

    @pytest.fixture
    def cooldown(self, db_session, seed_restaurant):
        seed_restaurant.order_cooldown_enabled = True
        seed_restaurant.order_cooldown_minutes = 15
        db_session.commit()

    def test_second_order_too_soon(self, db_session, cooldown, seed_table, product_p1, clock):
        session = open_session(db_session, seed_table)
        service = OrderService(db_session, now=clock)
        service.place_order(session, lines((product_p1, 1)))

        clock.advance(minutes=5)
        with pytest.raises(ValidationError) as exc:
            service.place_order(session, lines((product_p1, 1)))

        assert exc.value.code == "ORDER_COOLDOWN"
        assert "10 more minute" in exc.value.detail
        assert order_count(db_session) == 1

    def test_remaining_minutes_round_up(self, db_session, cooldown, seed_table, product_p1, clock):
        session = open_session(db_session, seed_table)
        service = OrderService(db_session, now=clock)
        service.place_order(session, lines((product_p1, 1)))

        clock.advance(minutes=14, seconds=30)
        with pytest.raises(ValidationError) as exc:
            service.place_order(session, lines((product_p1, 1)))
        assert "1 more minute" in exc.value.detail

    def test_order_allowed_after_cooldown(self, db_session, cooldown, seed_table, product_p1, clock):
        session = open_session(db_session, seed_table)
        service = OrderService(db_session, now=clock)
        service.place_order(session, lines((product_p1, 1)))

        clock.advance(minutes=15)
        service.place_order(session, lines((product_p1, 1)))
        assert order_count(db_session) == 2

    def test_cooldown_is_per_table(self, db_session, cooldown, seed_table, second_table, product_p1, clock):
        """A rescan does not reset the wait, another table is not affected."""
        service = OrderService(db_session, now=clock)
        service.place_order(open_session(db_session, seed_table), lines((product_p1, 1)))

        with pytest.raises(ValidationError):
            service.place_order(open_session(db_session, seed_table), lines((product_p1, 1)))
        service.place_order(open_session(db_session, second_table), lines((product_p1, 1)))

    def test_disabled_cooldown(self, db_session, seed_table, product_p1, clock):
        session = open_session(db_session, seed_table)
        service = OrderService(db_session, now=clock)
        service.place_order(session, lines((product_p1, 1)))
        service.place_order(session, lines((product_p1, 1)))
        assert order_count(db_session) == 2


class TestQueries:
    """Tests for the floor, kitchen and session order lists."""

    def test_lists(self, db_session, seed_table, second_table, product_p1, clock):
        service = OrderService(db_session, now=clock)
        first = service.place_order(open_session(db_session, seed_table), lines((product_p1, 1)))
        clock.advance(minutes=1)
        session = open_session(db_session, second_table)
        second = service.place_order(session, lines((product_p1, 1)))
        clock.advance(minutes=1)
        third = service.place_order(session, lines((product_p1, 1)))

        workflow = OrderWorkflowService(db_session, now=clock)
        workflow.set_status(first.id, seed_table.restaurant_id, OrderStatus.PREPARING, UserRole.KITCHEN)
        workflow.set_status(first.id, seed_table.restaurant_id, OrderStatus.READY, UserRole.KITCHEN)
        workflow.pay(third.id, seed_table.restaurant_id, "cash", UserRole.STAFF)

        rid = seed_table.restaurant_id
        assert [o.id for o in service.list_floor_orders(rid)] == [second.id, first.id]
        assert [o.id for o in service.list_kitchen_orders(rid)] == [second.id]
        assert [o.id for o in service.list_session_orders(session)] == [second.id, third.id]

    def test_get_order_scoped_to_restaurant(self, db_session, seed_table, other_restaurant, product_p1):
        order = OrderService(db_session).place_order(open_session(db_session, seed_table), lines((product_p1, 1)))

        with pytest.raises(NotFoundError):
            OrderService(db_session).get_order(order.id, other_restaurant.id)

    def test_output(self, db_session, seed_table, product_p1):
        order = OrderService(db_session).place_order(open_session(db_session, seed_table), lines((product_p1, 1)))
        output = order_to_output(order)

        assert output.table_name == "T1"
        assert output.items[0].product_name == "Margherita"
        assert output.created_at.tzinfo is not None
        assert output.allowed_transitions == []

    def test_output_lists_next_statuses_for_role(self, db_session, seed_table, product_p1):
        order = OrderService(db_session).place_order(open_session(db_session, seed_table), lines((product_p1, 1)))

        assert order_to_output(order, role=UserRole.KITCHEN).allowed_transitions == ["preparing"]
        assert order_to_output(order, role=UserRole.STAFF).allowed_transitions == ["preparing", "paid"]


class TestEditOrder:
    """Tests for staff corrections of submitted orders."""

    @pytest.fixture
    def order(self, db_session, seed_table, product_p1, product_p2):
        session = open_session(db_session, seed_table)
        return OrderService(db_session).place_order(session, lines((product_p1, 2), (product_p2, 1)))

    def edit(self, db_session, order, items=(), **kwargs):
        return OrderService(db_session).edit_order(order.id, order.restaurant_id, list(items), **kwargs)

    def test_change_quantity(self, db_session, order):
        p1_line = order.items[0]
        result = self.edit(db_session, order, [OrderEditLine(item_id=p1_line.id, quantity=3)])

        assert result.order.total_cents == 3 * 800 + 550
        assert result.order.items[0].total_price_cents == 2400
        assert result.deleted_item_ids == []

    def test_zero_quantity_removes_line(self, db_session, order):
        p2_line = order.items[1]
        result = self.edit(db_session, order, [OrderEditLine(item_id=p2_line.id, quantity=0)])

        assert [item.product_id for item in result.order.items] == [order.items[0].product_id]
        assert result.order.total_cents == 1600
        assert result.deleted_item_ids == [p2_line.id]

    def test_removal_wins_over_update(self, db_session, order):
        p2_line = order.items[1]
        result = self.edit(
            db_session,
            order,
            [OrderEditLine(item_id=p2_line.id, quantity=5)],
            removed_item_ids=[p2_line.id],
        )
        assert len(result.order.items) == 1
        assert result.order.total_cents == 1600

    def test_add_line_uses_current_price(self, db_session, order, seed_category, product_p1):
        product_p1.price_cents = 900
        db_session.commit()
        extra = make_product(db_session, seed_category, "Focaccia", 350)

        result = self.edit(db_session, order, [OrderEditLine(product_id=extra.id, quantity=2)])

        prices = {item.product_id: item.unit_price_cents for item in result.order.items}
        assert prices[product_p1.id] == 800
        assert prices[extra.id] == 350
        assert result.order.total_cents == 1600 + 550 + 700

    def test_new_and_touched_lines_take_order_status(self, db_session, order, product_p2):
        OrderWorkflowService(db_session).set_status(
            order.id, order.restaurant_id, OrderStatus.PREPARING, UserRole.KITCHEN
        )
        result = self.edit(db_session, order, [OrderEditLine(product_id=product_p2.id, quantity=1)])

        assert len(result.order.items) == 3
        assert {item.status for item in result.order.items} == {OrderStatus.PREPARING.value}

    def test_notes_only_change_when_sent(self, db_session, order):
        item = order.items[0]
        kept = self.edit(db_session, order, [OrderEditLine(item_id=item.id, quantity=2)])
        assert kept.order.notes is None

        changed = self.edit(db_session, order, [], notes="allergy: nuts", update_notes=True)
        assert changed.order.notes == "allergy: nuts"

    def test_removing_everything_is_rejected(self, db_session, order):
        item_ids = [item.id for item in order.items]

        with pytest.raises(ValidationError) as exc:
            self.edit(db_session, order, removed_item_ids=item_ids)
        assert exc.value.code == "EMPTY_ORDER"

        reloaded = OrderService(db_session).get_order(order.id, order.restaurant_id)
        assert len(reloaded.items) == 2
        assert reloaded.total_cents == 2150

    def test_unknown_line(self, db_session, order):
        with pytest.raises(NotFoundError):
            self.edit(db_session, order, [OrderEditLine(item_id=999_999, quantity=1)])

    def test_new_line_needs_product(self, db_session, order):
        with pytest.raises(ValidationError) as exc:
            self.edit(db_session, order, [OrderEditLine(quantity=1)])
        assert exc.value.code == "VALIDATION_ERROR"

    def test_paid_order_is_closed(self, db_session, order):
        OrderWorkflowService(db_session).pay(order.id, order.restaurant_id, "card", UserRole.STAFF)

        with pytest.raises(AlreadyPaidError):
            self.edit(db_session, order, [OrderEditLine(item_id=order.items[0].id, quantity=1)])

    def test_ayce_order_keeps_mode_without_limits(
        self, db_session, ayce_restaurant, seed_table, limited_product
    ):
        session = open_session(db_session, seed_table)
        order = OrderService(db_session).place_order(session, lines((limited_product, 2)))

        # Staff corrections are not capped, even after the plan is switched off
        ayce_restaurant.all_you_can_eat_enabled = False
        db_session.commit()
        result = self.edit(db_session, order, [OrderEditLine(item_id=order.items[0].id, quantity=5)])

        assert result.order.pricing_mode == "ayce"
        assert result.order.items[0].quantity == 5
        assert result.order.total_cents == 0
