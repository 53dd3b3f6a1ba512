"""
Order tests.

Verifies:
- Checkout totals come from catalog prices plus half-up tax
- Stock reservation is all-or-nothing across the cart
- Order numbers are unique per day
- Reverting an order hands stock back at most once
- Members only see their own orders; admin listing and archiving
"""

import re
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import insert

from app.extensions import db
from app.models import Order, OrderSequence, Product
from app.services.order_service import compute_tax_cents
from app.services.sequence_service import SequenceError, next_order_number
from app.time_utils import utcnow
from conftest import make_product


def _checkout(client, headers, items, **extra):
    return client.post("/api/orders", json={"items": items, **extra}, headers=headers)


def _stock(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id).stock


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:

    def test_totals_use_catalog_prices_and_tax(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5, images=["/img/shirt.png"])
        mug = make_product("Mug", 500)

        resp = _checkout(client, member_headers, [
            {"product_id": shirt.id, "quantity": 2, "price_cents": 1},
            {"product_id": mug.id, "quantity": 1},
        ])

        assert resp.status_code == 201
        order = resp.json["data"]
        assert order["subtotal_cents"] == 2500
        assert order["tax_cents"] == 175
        assert order["total_cents"] == 2675
        assert order["status"] == "pending"
        assert [item["name"] for item in order["items"]] == ["Shirt", "Mug"]
        assert order["items"][0]["price_cents"] == 1000
        assert order["items"][0]["image_url"] == "/img/shirt.png"
        assert re.fullmatch(r"ORD\d{6}\d{3}", order["order_number"])

    def test_reserves_tracked_stock_only(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5)
        mug = make_product("Mug", 500)

        resp = _checkout(client, member_headers, [
            {"product_id": shirt.id, "quantity": 2},
            {"product_id": mug.id, "quantity": 3},
        ])

        assert resp.status_code == 201
        assert _stock(shirt.id) == 3
        assert _stock(mug.id) is None

    def test_insufficient_stock_leaves_every_product_untouched(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5)
        cap = make_product("Cap", 800, stock=1)

        resp = _checkout(client, member_headers, [
            {"product_id": shirt.id, "quantity": 2},
            {"product_id": cap.id, "quantity": 2},
        ])

        assert resp.status_code == 400
        assert resp.json["success"] is False
        assert resp.json["error"]["product_id"] == cap.id
        assert _stock(shirt.id) == 5
        assert _stock(cap.id) == 1
        assert db.session.query(Order).count() == 0

    def test_repeated_lines_are_checked_against_combined_quantity(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=3)

        resp = _checkout(client, member_headers, [
            {"product_id": shirt.id, "quantity": 2},
            {"product_id": shirt.id, "quantity": 2},
        ])

        assert resp.status_code == 400
        assert _stock(shirt.id) == 3

    def test_missing_product_rolls_back(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5)

        resp = _checkout(client, member_headers, [
            {"product_id": shirt.id, "quantity": 1},
            {"product_id": shirt.id + 999, "quantity": 1},
        ])

        assert resp.status_code == 404
        assert _stock(shirt.id) == 5

    def test_selling_out_clears_has_stock(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=2)

        assert _checkout(client, member_headers, [{"product_id": shirt.id, "quantity": 2}]).status_code == 201

        resp = client.get(f"/api/products/{shirt.id}")
        assert resp.json["data"]["stock"] == 0
        assert resp.json["data"]["has_stock"] is False

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            [{"quantity": 1}],
            [{"product_id": 1, "quantity": 0}],
            [{"product_id": 1, "quantity": 1.5}],
        ],
    )
    def test_rejects_malformed_carts(self, client, member_headers, items):
        resp = _checkout(client, member_headers, items)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "extra",
        [
            {"payment_method": 5},
            {"notes": {"a": 1}},
            {"notes": ["leave at door"]},
            {"shipping_address": {"city": ["Springfield"]}},
            {"payment_method": "x" * 40},
        ],
    )
    def test_rejects_non_text_fields_without_reserving(self, client, member_headers, extra):
        shirt = make_product("Shirt", 1000, stock=5)

        resp = _checkout(client, member_headers, [{"product_id": shirt.id, "quantity": 1}], **extra)

        assert resp.status_code == 400
        assert resp.json["success"] is False
        assert _stock(shirt.id) == 5
        assert db.session.query(Order).count() == 0

    def test_numeric_zip_code_is_accepted(self, client, member_headers):
        shirt = make_product("Shirt", 1000)

        resp = _checkout(
            client, member_headers, [{"product_id": shirt.id, "quantity": 1}],
            shipping_address={"city": "Springfield", "zip_code": 62701},
            notes="  ring twice ",
        )

        assert resp.status_code == 201
        order = db.session.get(Order, resp.json["data"]["id"])
        assert order.shipping_zip_code == "62701"
        assert order.notes == "ring twice"
        assert order.payment_method == "pay_at_pickup"

    def test_requires_auth(self, client):
        assert client.post("/api/orders", json={"items": []}).status_code == 401

    def test_order_numbers_are_unique(self, client, member_headers):
        mug = make_product("Mug", 500)
        numbers = []
        for _ in range(3):
            resp = _checkout(client, member_headers, [{"product_id": mug.id, "quantity": 1}])
            numbers.append(resp.json["data"]["order_number"])

        assert len(set(numbers)) == 3
        assert [n[-3:] for n in numbers] == ["001", "002", "003"]


class TestOrderNumbers:

    def test_daily_sequence_restarts_each_day(self, app):
        first = next_order_number(datetime(2026, 10, 19, 9, 30))
        second = next_order_number(datetime(2026, 10, 19, 18, 0))
        other_day = next_order_number(datetime(2026, 10, 20, 0, 5))
        db.session.commit()

        assert first == "ORD261019001"
        assert second == "ORD261019002"
        assert other_day == "ORD261020001"

    def test_first_order_of_day_survives_insert_race(self, monkeypatch):
        db.session.execute(insert(OrderSequence).values(day="261019", next_number=5))
        db.session.commit()

        real_execute = db.session.execute
        calls = []

        def racing_execute(stmt, *args, **kwargs):
            calls.append(stmt)
            if len(calls) == 1:
                # another checkout created the day's row after this UPDATE missed it
                return SimpleNamespace(rowcount=0)
            return real_execute(stmt, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", racing_execute)
        at = datetime(2026, 10, 19, 12, 0)

        first = next_order_number(at)
        db.session.commit()
        second = next_order_number(at)
        db.session.commit()

        assert (first, second) == ("ORD261019005", "ORD261019006")
        assert db.session.query(OrderSequence).filter_by(day="261019").count() == 1

    def test_day_runs_out_after_999_orders(self):
        db.session.execute(insert(OrderSequence).values(day="261019", next_number=999))
        db.session.commit()
        at = datetime(2026, 10, 19, 12, 0)

        assert next_order_number(at) == "ORD261019999"
        with pytest.raises(SequenceError):
            next_order_number(at)
        db.session.rollback()

    def test_checkout_past_daily_limit_is_refused(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5)
        today = utcnow().strftime("%y%m%d")
        db.session.execute(insert(OrderSequence).values(day=today, next_number=1000))
        db.session.commit()

        resp = _checkout(client, member_headers, [{"product_id": shirt.id, "quantity": 1}])

        assert resp.status_code == 409
        assert "Daily order limit" in resp.json["message"]
        assert _stock(shirt.id) == 5
        assert db.session.query(Order).count() == 0

    @pytest.mark.parametrize(
        "subtotal,expected",
        [(2500, 175), (50, 4), (7, 0), (0, 0), (10000, 700)],
    )
    def test_tax_rounds_half_up(self, subtotal, expected):
        assert compute_tax_cents(subtotal, 700) == expected


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================


class TestStatusTransitions:

    @pytest.fixture
    def placed(self, client, member_headers):
        shirt = make_product("Shirt", 1000, stock=5)
        resp = _checkout(client, member_headers, [{"product_id": shirt.id, "quantity": 2}])
        assert resp.status_code == 201
        return shirt.id, resp.json["data"]["id"]

    def _move(self, client, headers, order_id, status):
        return client.put(f"/api/admin/orders/{order_id}/status", json={"status": status}, headers=headers)

    def test_pending_to_incomplete_restores_stock(self, client, admin_headers, placed):
        product_id, order_id = placed

        resp = self._move(client, admin_headers, order_id, "incomplete")

        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "incomplete"
        assert resp.json["data"]["stock_released"] is True
        assert _stock(product_id) == 5

    def test_stock_is_restored_only_once(self, client, admin_headers, placed):
        product_id, order_id = placed

        self._move(client, admin_headers, order_id, "unfulfilled")
        assert _stock(product_id) == 5

        self._move(client, admin_headers, order_id, "incomplete")
        self._move(client, admin_headers, order_id, "unfulfilled")
        assert _stock(product_id) == 5

    def test_fulfilled_to_incomplete_keeps_stock_consumed(self, client, admin_headers, placed):
        product_id, order_id = placed

        self._move(client, admin_headers, order_id, "fulfilled")
        assert _stock(product_id) == 3

        resp = self._move(client, admin_headers, order_id, "incomplete")
        assert resp.status_code == 200
        assert _stock(product_id) == 3

    def test_restore_tolerates_deleted_product(self, client, admin_headers, placed):
        product_id, order_id = placed
        db.session.delete(db.session.get(Product, product_id))
        db.session.commit()

        resp = self._move(client, admin_headers, order_id, "incomplete")
        assert resp.status_code == 200

    def test_invalid_status(self, client, admin_headers, placed):
        _, order_id = placed
        resp = self._move(client, admin_headers, order_id, "shipped")
        assert resp.status_code == 400

    def test_unknown_order(self, client, admin_headers):
        resp = self._move(client, admin_headers, 424242, "fulfilled")
        assert resp.status_code == 404

    def test_members_cannot_change_status(self, client, member_headers, placed):
        _, order_id = placed
        resp = self._move(client, member_headers, order_id, "fulfilled")
        assert resp.status_code == 403


# =============================================================================
# READS, ARCHIVE, DELETE
# =============================================================================


class TestOrderAccess:

    def test_members_only_see_their_own_orders(
        self, client, member_headers, other_member_headers, admin_headers
    ):
        mug = make_product("Mug", 500)
        order_id = _checkout(client, member_headers, [{"product_id": mug.id, "quantity": 1}]).json["data"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=member_headers).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=other_member_headers).status_code == 404
        assert client.get("/api/orders", headers=other_member_headers).json["data"] == []

        resp = client.get(f"/api/orders/{order_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["email"] == "alice@example.com"

    def test_admin_listing_filters_and_paginates(self, client, member_headers, admin_headers):
        mug = make_product("Mug", 500)
        for _ in range(3):
            _checkout(client, member_headers, [{"product_id": mug.id, "quantity": 1}])

        resp = client.get("/api/admin/orders?status=pending&limit=2", headers=admin_headers)

        assert resp.status_code == 200
        assert len(resp.json["data"]) == 2
        assert resp.json["meta"]["total"] == 3
        assert resp.json["meta"]["totalPages"] == 2

    def test_archived_orders_leave_the_main_listing(self, client, member_headers, admin_headers):
        mug = make_product("Mug", 500)
        order = _checkout(client, member_headers, [{"product_id": mug.id, "quantity": 1}]).json["data"]

        assert client.put(f"/api/admin/orders/{order['id']}/archive", headers=admin_headers).status_code == 200
        assert client.get("/api/admin/orders", headers=admin_headers).json["meta"]["total"] == 0

        archived = client.get(
            f"/api/admin/orders/archived?search={order['order_number']}", headers=admin_headers
        )
        assert [o["id"] for o in archived.json["data"]] == [order["id"]]

        client.put(f"/api/admin/orders/{order['id']}/unarchive", headers=admin_headers)
        assert client.get("/api/admin/orders", headers=admin_headers).json["meta"]["total"] == 1

    def test_delete_order(self, client, member_headers, admin_headers):
        mug = make_product("Mug", 500)
        order_id = _checkout(client, member_headers, [{"product_id": mug.id, "quantity": 1}]).json["data"]["id"]

        assert client.delete(f"/api/admin/orders/{order_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/admin/orders/{order_id}", headers=admin_headers).status_code == 404
