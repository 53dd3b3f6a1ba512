# backend/app/services/catalog_service.py
"""
Catalog Service - categories and products

Payloads are validated against the Product column metadata and the
PRODUCT_POLICY allowlist before anything is written. Category names are
unique at the database level; collisions surface as ConflictError.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, OrderItem, Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import run_in_transaction

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "description", "price_cents", "stock", "images", "is_active"},
    required_on_create={"name", "price_cents"},
)


def _require_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError("Category not found", details={"category_id": category_id})


def list_products(
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
    include_inactive: bool = False,
) -> dict:
    """
    Product listing, optionally paginated.

    Without page, every matching product is returned.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op() -> Product:
        _require_category(patch.get("category_id"))
        product = Product(images=[], is_active=True)
        for key, value in patch.items():
            setattr(product, key, value)
        if product.images is None:
            product.images = []
        db.session.add(product)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op() -> Product:
        product = get_product(product_id)
        if "category_id" in patch:
            _require_category(patch["category_id"])
        for key, value in patch.items():
            setattr(product, key, value)
        if product.images is None:
            product.images = []
        return product

    return run_in_transaction(_op)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(name: str | None, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    if len(name) > 128:
        raise ValidationError("name exceeds max length 128")

    def _op() -> Category:
        category = Category(name=name, description=(description or "").strip() or None)
        db.session.add(category)
        db.session.flush()
        return category

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError("Category already exists", details={"name": name})


def delete_category(category_id: int) -> int:
    """
    Delete a category and every product in it, all or nothing.

    Order items keep their name/price/image snapshots and lose only the
    product link. Returns the number of products removed.
    """
    def _op() -> int:
        category = db.session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        products = db.session.query(Product).filter(Product.category_id == category.id).all()
        product_ids = [p.id for p in products]
        if product_ids:
            db.session.query(OrderItem).filter(OrderItem.product_id.in_(product_ids)).update(
                {OrderItem.product_id: None}, synchronize_session="fetch"
            )
        for product in products:
            db.session.delete(product)
        db.session.flush()
        db.session.delete(category)
        return len(products)

    return run_in_transaction(_op)
