"""
Catalog, health and CLI tests.

Verifies:
- Product payload validation and admin-only writes
- Category name uniqueness and cascading category delete
- Health checks and bootstrap commands
"""

import pytest

from app.extensions import db
from app.models import Category, OrderItem, Product, RewardTask, User
from app.services.reward_service import DEFAULT_TASKS
from conftest import make_product


class TestProducts:

    def test_public_listing_hides_inactive_products(self, client, category):
        make_product("Latte", 450, category=category)
        hidden = make_product("Old Blend", 300, category=category)
        hidden.is_active = False
        db.session.commit()

        resp = client.get(f"/api/products?category_id={category.id}")

        assert resp.status_code == 200
        assert [p["name"] for p in resp.json["data"]["items"]] == ["Latte"]

    def test_paginated_listing(self, client):
        for name in ("A", "B", "C"):
            make_product(name, 100)

        resp = client.get("/api/products?page=2&per_page=2")

        data = resp.json["data"]
        assert [p["name"] for p in data["items"]] == ["C"]
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["has_prev"] is True
        assert data["pagination"]["has_next"] is False

    def test_admin_creates_and_updates_product(self, client, admin_headers, category):
        created = client.post(
            "/api/products",
            json={"name": "Cold Brew", "price_cents": "550", "stock": 12, "category_id": category.id},
            headers=admin_headers,
        )
        assert created.status_code == 201
        product = created.json["data"]
        assert product["price_cents"] == 550
        assert product["has_stock"] is True
        assert product["images"] == []

        updated = client.put(f"/api/products/{product['id']}", json={"stock": None}, headers=admin_headers)
        assert updated.status_code == 200
        assert updated.json["data"]["stock"] is None
        assert updated.json["data"]["has_stock"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"price_cents": 100},
            {"name": "X", "price_cents": -1},
            {"name": "X", "price_cents": 100, "stock": -3},
            {"name": "X", "price_cents": 100, "sku": "unknown-field"},
            {"name": "X", "price_cents": 100, "images": "not-a-list"},
        ],
    )
    def test_rejects_invalid_products(self, client, admin_headers, payload):
        assert client.post("/api/products", json=payload, headers=admin_headers).status_code == 400

    def test_unknown_category(self, client, admin_headers):
        resp = client.post(
            "/api/products", json={"name": "X", "price_cents": 100, "category_id": 4242}, headers=admin_headers
        )
        assert resp.status_code == 404

    def test_members_cannot_write(self, client, member_headers):
        resp = client.post("/api/products", json={"name": "X", "price_cents": 100}, headers=member_headers)
        assert resp.status_code == 403


class TestCategories:

    def test_duplicate_name(self, client, admin_headers, category):
        resp = client.post("/api/categories", json={"name": "Drinks"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_removes_products_and_keeps_order_snapshots(
        self, client, member_headers, admin_headers, category
    ):
        latte = make_product("Latte", 450, stock=10, category=category)
        make_product("Mocha", 500, category=category)
        order = client.post(
            "/api/orders", json={"items": [{"product_id": latte.id, "quantity": 1}]}, headers=member_headers
        ).json["data"]

        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["deleted_products"] == 2
        db.session.expire_all()
        assert db.session.query(Category).count() == 0
        assert db.session.query(Product).count() == 0

        item = db.session.query(OrderItem).filter_by(order_id=order["id"]).one()
        assert item.product_id is None
        assert (item.name, item.price_cents) == ("Latte", 450)

    def test_delete_unknown_category(self, client, admin_headers):
        assert client.delete("/api/categories/4242", headers=admin_headers).status_code == 404


class TestHealth:

    def test_degraded_without_required_tasks(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_healthy_once_tasks_exist(self, app, client):
        app.test_cli_runner().invoke(args=["rewards", "seed-tasks"])
        resp = client.get("/health")
        assert resp.json["status"] == "healthy"


class TestCommands:

    def test_system_init_is_idempotent(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--admin-email", "owner@example.com", "--admin-phone", "5551110000"])
        second = runner.invoke(args=["system", "init"])

        assert first.exit_code == 0, first.output
        assert "PASS Created admin: owner@example.com" in first.output
        assert "PASS Using existing admin: owner@example.com" in second.output
        assert "(0 added)" in second.output
        assert db.session.query(User).filter_by(role="admin").count() == 1
        assert db.session.query(RewardTask).count() == len(DEFAULT_TASKS)

    def test_create_admin_rejects_duplicates(self, app, admin):
        result = app.test_cli_runner().invoke(
            args=["users", "create-admin", "--email", admin.email, "--full-name", "Again", "--phone", "5552220000"]
        )
        assert "FAIL" in result.output
