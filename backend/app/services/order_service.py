"""
Order Service - checkout with stock reservation and status transitions

Invariants:
- Reservation happens at checkout: each tracked product's stock is
  decremented by the total quantity requested across the cart.
- Checkout is all-or-nothing. The sequence allocation, every stock
  decrement and the order insert commit together; a missing product or
  insufficient stock anywhere in the cart rolls all of them back.
- Prices, names and images are snapshotted from the catalog at checkout;
  client-supplied prices are ignored.
- Stock is handed back at most once per order (stock_released), when an
  order moves into unfulfilled/incomplete from pending/unfulfilled.
  Moving into fulfilled never touches stock, and nothing re-reserves
  stock after it was released.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Order, OrderItem, Product, User
from ..models.orders import ORDER_STATUSES
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, coerce_str
from app.time_utils import day_bounds, parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .sequence_service import next_order_number

REVERT_TARGET_STATUSES = ("unfulfilled", "incomplete")
RESERVED_STATUSES = ("pending", "unfulfilled")

SHIPPING_FIELDS = {
    "street": "shipping_street",
    "city": "shipping_city",
    "state": "shipping_state",
    "zip_code": "shipping_zip_code",
    "zipCode": "shipping_zip_code",
    "country": "shipping_country",
}


class OrderNotFoundError(NotFoundError):
    """Order id does not exist."""


class ProductNotFoundError(NotFoundError):
    """A cart line references a product that does not exist."""


class InsufficientStockError(ConflictError):
    """A tracked product has less stock than the cart requests."""

    status_code = 400


def compute_tax_cents(subtotal_cents: int, rate_bps: int) -> int:
    """Tax rounded half-up to the cent."""
    return (subtotal_cents * rate_bps + 5000) // 10000


def _item_product_id(item: dict):
    for key in ("product_id", "product", "id", "_id"):
        if item.get(key) is not None:
            return item[key]
    return None


def normalize_cart(items) -> list[tuple[int, int]]:
    """
    Validate client cart lines into (product_id, quantity) pairs.

    Lines keep their client order; the same product may appear twice.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        raw_product_id = _item_product_id(item)
        if raw_product_id is None:
            raise ValidationError(f"items[{index}] is missing a product id")
        product_id = coerce_int(raw_product_id, f"items[{index}].product_id")

        quantity = coerce_int(item.get("quantity", 1), f"items[{index}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{index}].quantity must be >= 1")

        lines.append((product_id, quantity))
    return lines


def _shipping_columns(shipping_address) -> dict:
    if shipping_address is None:
        return {}
    if not isinstance(shipping_address, dict):
        raise ValidationError("shipping_address must be an object")
    columns = {}
    for key, column in SHIPPING_FIELDS.items():
        value = shipping_address.get(key)
        if value is not None:
            columns[column] = coerce_str(value, key, allow_int=True)
    return columns


def _reserve_stock(lines: list[tuple[int, int]]) -> dict[int, Product]:
    """Lock and decrement every tracked product in the cart."""
    requested: dict[int, int] = {}
    for product_id, quantity in lines:
        requested[product_id] = requested.get(product_id, 0) + quantity

    products: dict[int, Product] = {}
    for product_id, quantity in requested.items():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFoundError(
                f"Product not found: {product_id}",
                details={"product_id": product_id},
            )

        if product.tracks_stock:
            if product.stock < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {product.name}",
                    details={
                        "product_id": product.id,
                        "requested_quantity": quantity,
                        "stock": product.stock,
                    },
                )
            product.stock = product.stock - quantity

        products[product_id] = product
    return products


def create_order(
    user_id: int,
    items,
    shipping_address: dict | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> Order:
    """Create a pending order, reserving stock for every cart line."""
    lines = normalize_cart(items)
    shipping = _shipping_columns(shipping_address)
    payment_method = coerce_str(payment_method, "payment_method") or "pay_at_pickup"
    notes = coerce_str(notes, "notes") or None
    if len(payment_method) > 32:
        raise ValidationError("payment_method exceeds max length 32")
    rate_bps = current_app.config["ORDER_TAX_RATE_BPS"]

    def _op() -> Order:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        now = utcnow()
        order_number = next_order_number(now)

        products = _reserve_stock(lines)

        order_items = []
        for position, (product_id, quantity) in enumerate(lines, start=1):
            product = products[product_id]
            images = product.images or []
            order_items.append(OrderItem(
                position=position,
                product_id=product.id,
                name=product.name,
                price_cents=product.price_cents,
                quantity=quantity,
                image_url=images[0] if images else None,
            ))

        subtotal = sum(item.price_cents * item.quantity for item in order_items)
        tax = compute_tax_cents(subtotal, rate_bps)

        order = Order(
            user_id=user.id,
            order_number=order_number,
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=subtotal + tax,
            status="pending",
            stock_released=False,
            payment_method=payment_method,
            notes=notes,
            is_archived=False,
            created_at=now,
            updated_at=now,
            items=order_items,
            **shipping,
        )
        db.session.add(order)
        return order

    return run_in_transaction(_op)


def _release_stock(order: Order) -> None:
    for item in order.items:
        if item.product_id is None:
            continue
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if product is None or not product.tracks_stock:
            continue
        product.stock = product.stock + item.quantity
    order.stock_released = True


def update_order_status(order_id: int, new_status: str) -> Order:
    """
    Move an order to new_status, handing reserved stock back when the
    transition abandons a still-reserved order.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}"
        )

    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError("Order not found")

        previous = order.status
        if (
            new_status in REVERT_TARGET_STATUSES
            and previous in RESERVED_STATUSES
            and not order.stock_released
        ):
            _release_stock(order)

        order.status = new_status
        order.updated_at = utcnow()
        return order

    return run_in_transaction(_op)


def get_order(order_id: int, user: User | None = None) -> Order:
    """Load one order; non-admin callers only see their own."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError("Order not found")
    if user is not None and not user.is_admin and order.user_id != user.id:
        raise OrderNotFoundError("Order not found")
    return order


def get_user_orders(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def _not_archived():
    return or_(Order.is_archived.is_(False), Order.is_archived.is_(None))


def _paginate(query, page: int, limit: int) -> dict:
    total = query.count()
    total_pages = max(1, -(-total // limit))
    items = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
        },
    }


def get_all_orders(
    status: str | None = None,
    user_id: int | None = None,
    page: int = 1,
    limit: int = 10,
    archived: bool = False,
) -> dict:
    """Admin listing, newest first. Archived orders only show up with archived=True."""
    query = db.session.query(Order)
    query = query.filter(Order.is_archived.is_(True)) if archived else query.filter(_not_archived())
    if status and status != "all":
        query = query.filter(Order.status == status)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    return _paginate(query, page, limit)


def get_archived_orders(
    search: str | None = None,
    status: str | None = None,
    date: str | None = None,
    page: int = 1,
    limit: int = 30,
) -> dict:
    query = db.session.query(Order).filter(Order.is_archived.is_(True))
    if search:
        query = query.filter(Order.order_number.ilike(f"%{search.strip()}%"))
    if status and status != "all":
        query = query.filter(Order.status == status)
    if date:
        try:
            day = parse_iso_datetime(date)
        except ValueError:
            raise ValidationError("date must be an ISO-8601 date")
        if day is not None:
            start, end = day_bounds(day.date())
            query = query.filter(Order.created_at >= start, Order.created_at < end)
    return _paginate(query, page, limit)


def set_order_archived(order_id: int, archived: bool) -> Order:
    def _op() -> Order:
        order = db.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError("Order not found")
        order.is_archived = archived
        return order

    return run_in_transaction(_op)


def archive_order(order_id: int) -> Order:
    return set_order_archived(order_id, True)


def unarchive_order(order_id: int) -> Order:
    return set_order_archived(order_id, False)


def delete_order(order_id: int) -> None:
    """
    Hard delete. Reserved stock is NOT handed back; callers wanting the
    stock restored should transition the order to incomplete first.
    """
    def _op() -> None:
        order = db.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError("Order not found")
        db.session.delete(order)

    run_in_transaction(_op)
