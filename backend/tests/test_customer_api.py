"""
Tests for the customer endpoints reached with a table token.
"""

import pytest

from shared.config.constants import ProductStatus

from conftest import customer_url, make_product, scan


@pytest.fixture
def seated(client, seed_table):
    """A scanned table; returns (restaurant_id, table_id, token)."""
    rid, tid = seed_table.restaurant_id, seed_table.id
    return rid, tid, scan(client, rid, tid)


def set_party_size(client, seated, value):
    rid, tid, token = seated
    return client.put(customer_url(rid, tid, "party-size", token), json={"party_size": value})


class TestSessionAccess:
    """Tests for table token validation on every customer route."""

    def test_session(self, client, seated):
        rid, tid, token = seated
        response = client.get(customer_url(rid, tid, "session", token))

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["table_name"] == "T1"
        assert data["needs_party_size"] is True
        assert data["prepayment_required"] is False

    def test_token_in_header(self, client, seated):
        rid, tid, token = seated
        response = client.get(customer_url(rid, tid, "session"), headers={"X-Table-Token": token})
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "token,code",
        [(None, "TOKEN_MISSING"), ("forged-token-value", "NOT_FOUND")],
    )
    def test_bad_tokens(self, client, seed_table, token, code):
        response = client.get(customer_url(seed_table.restaurant_id, seed_table.id, "menu", token))

        assert response.status_code == 401
        assert response.json()["code"] == code

    def test_token_of_another_table(self, client, seated, second_table):
        rid, _, token = seated
        response = client.get(customer_url(rid, second_table.id, "menu", token))

        assert response.status_code == 401
        assert response.json()["code"] == "TABLE_MISMATCH"

    def test_token_of_another_restaurant(self, client, seated, other_restaurant):
        _, tid, token = seated
        response = client.get(customer_url(other_restaurant.id, tid, "menu", token))
        assert response.json()["code"] == "RESTAURANT_MISMATCH"

    def test_distinct_messages_per_reason(self, client, seated, second_table):
        rid, tid, token = seated
        missing = client.get(customer_url(rid, tid, "session")).json()["detail"]
        mismatch = client.get(customer_url(rid, second_table.id, "session", token)).json()["detail"]
        unknown = client.get(customer_url(rid, tid, "session", "nope")).json()["detail"]
        assert len({missing, mismatch, unknown}) == 3


class TestMenu:
    """Tests for the customer menu."""

    def test_menu_lists_available_products(
        self, client, db_session, seated, seed_category, product_p1, limited_product
    ):
        make_product(db_session, seed_category, "Lasagne", 1100, status=ProductStatus.UNAVAILABLE.value)
        rid, tid, token = seated

        response = client.get(customer_url(rid, tid, "menu", token))

        assert response.status_code == 200
        data = response.json()
        assert data["ayce_active"] is False
        [category] = data["categories"]
        assert category["name"] == "Mains"
        names = {p["name"]: p for p in category["products"]}
        assert set(names) == {"Margherita", "Salmon Nigiri"}
        assert names["Margherita"]["price_cents"] == 800
        assert names["Salmon Nigiri"]["ayce_limit"] == 2

    def test_menu_shows_ayce_prices(self, client, ayce_restaurant, seated):
        rid, tid, token = seated
        data = client.get(customer_url(rid, tid, "menu", token)).json()

        assert data["ayce_active"] is True
        assert data["ayce_dinner_price_cents"] == 2590


class TestPartySize:
    """Tests for PUT /party-size."""

    def test_set_party_size(self, client, seated):
        response = set_party_size(client, seated, 4)
        assert response.status_code == 200
        assert response.json() == {"party_size": 4}

        rid, tid, token = seated
        session = client.get(customer_url(rid, tid, "session", token)).json()
        assert session["party_size"] == 4
        assert session["needs_party_size"] is False

    def test_numeric_string_accepted(self, client, seated):
        assert set_party_size(client, seated, "2").json() == {"party_size": 2}

    @pytest.mark.parametrize(
        "value,code",
        [(0, "PARTY_SIZE_INVALID"), ("abc", "PARTY_SIZE_INVALID"), (None, "PARTY_SIZE_INVALID"), (99, "PARTY_SIZE_TOO_LARGE")],
    )
    def test_invalid_party_size(self, client, seated, value, code):
        response = set_party_size(client, seated, value)
        assert response.status_code == 400
        assert response.json()["code"] == code

    def test_party_size_survives_rescan(self, client, seated):
        set_party_size(client, seated, 5)
        rid, tid, _ = seated
        token = scan(client, rid, tid)

        session = client.get(customer_url(rid, tid, "session", token)).json()
        assert session["party_size"] == 5


class TestCustomerOrders:
    """Tests for POST and GET /orders."""

    def test_order_requires_party_size(self, client, seated, product_p1):
        rid, tid, token = seated
        response = client.post(
            customer_url(rid, tid, "orders", token),
            json={"items": [{"product_id": product_p1.id, "quantity": 1}]},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PARTY_SIZE_REQUIRED"

    def test_place_order(self, client, seated, product_p1, product_p2, notifier):
        set_party_size(client, seated, 2)
        rid, tid, token = seated

        response = client.post(
            customer_url(rid, tid, "orders", token),
            json={
                "items": [
                    {"product_id": product_p1.id, "quantity": 2},
                    {"product_id": product_p2.id, "quantity": 1, "notes": "no cocoa"},
                ],
                "notes": "birthday",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["prepayment_required"] is False
        order = body["order"]
        assert order["status"] == "pending"
        assert order["total_cents"] == 2150
        assert order["party_size"] == 2
        assert order["items"][1]["notes"] == "no cocoa"

        inserted = {(e.table, e.type) for e in notifier.published if e.type == "INSERT"}
        assert ("orders", "INSERT") in inserted
        assert ("order_items", "INSERT") in inserted

    def test_client_prices_are_ignored(self, client, seated, product_p1):
        set_party_size(client, seated, 2)
        rid, tid, token = seated
        response = client.post(
            customer_url(rid, tid, "orders", token),
            json={"items": [{"product_id": product_p1.id, "quantity": 1, "unit_price_cents": 1}]},
        )
        assert response.json()["order"]["total_cents"] == 800

    def test_prepayment_flag(self, client, db_session, seed_restaurant, seated, product_p1):
        seed_restaurant.prepayment_required = True
        db_session.commit()
        set_party_size(client, seated, 2)
        rid, tid, token = seated

        response = client.post(
            customer_url(rid, tid, "orders", token),
            json={"items": [{"product_id": product_p1.id, "quantity": 1}]},
        )
        assert response.json()["prepayment_required"] is True

    def test_empty_order(self, client, seated):
        set_party_size(client, seated, 2)
        rid, tid, token = seated
        response = client.post(customer_url(rid, tid, "orders", token), json={"items": []})
        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_ORDER"

    def test_ayce_limit(self, client, ayce_restaurant, seated, limited_product):
        set_party_size(client, seated, 2)
        rid, tid, token = seated
        response = client.post(
            customer_url(rid, tid, "orders", token),
            json={"items": [{"product_id": limited_product.id, "quantity": 3}]},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "AYCE_LIMIT_EXCEEDED"

    def test_list_session_orders(self, client, seated, product_p1):
        set_party_size(client, seated, 2)
        rid, tid, token = seated
        placed = client.post(
            customer_url(rid, tid, "orders", token),
            json={"items": [{"product_id": product_p1.id, "quantity": 1}]},
        ).json()["order"]

        listed = client.get(customer_url(rid, tid, "orders", token))
        assert [o["id"] for o in listed.json()] == [placed["id"]]

        # A fresh scan starts a new session with its own order list
        fresh = scan(client, rid, tid)
        assert client.get(customer_url(rid, tid, "orders", fresh)).json() == []
