from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

ORDER_STATUSES = ("pending", "unfulfilled", "fulfilled", "incomplete")


class Order(db.Model):
    """
    Checkout order with snapshotted line items.

    INVARIANTS:
    - total_cents == subtotal_cents + tax_cents
    - subtotal_cents == sum(item.price_cents * item.quantity) at creation
      (prices are snapshots, not live catalog prices)
    - order_number is ORD + YYMMDD + 3-digit daily sequence, unique

    stock_released records that the reservation was handed back to the
    catalog, so a later transition can never restore the same stock twice.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint("total_cents = subtotal_cents + tax_cents", name="total_is_subtotal_plus_tax"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    stock_released = db.Column(db.Boolean, nullable=False, default=False)

    shipping_street = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(128), nullable=True)
    shipping_state = db.Column(db.String(64), nullable=True)
    shipping_zip_code = db.Column(db.String(16), nullable=True)
    shipping_country = db.Column(db.String(64), nullable=True)

    payment_method = db.Column(db.String(32), nullable=False, default="pay_at_pickup")
    notes = db.Column(db.Text, nullable=True)

    # NULL on rows written before archiving existed; treated as not archived
    is_archived = db.Column(db.Boolean, nullable=True, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy="selectin",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def shipping_address(self) -> dict | None:
        fields = {
            "street": self.shipping_street,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "zip_code": self.shipping_zip_code,
            "country": self.shipping_country,
        }
        if not any(fields.values()):
            return None
        return fields

    def to_dict(self, include_user: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "order_number": self.order_number,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "stock_released": self.stock_released,
            "shipping_address": self.shipping_address,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "is_archived": bool(self.is_archived),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_user and self.user is not None:
            data["user"] = self.user.to_summary()
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="quantity_positive"),
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # Product may be deleted later; the snapshots below keep the line readable
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(1024), nullable=True)

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product is not None else None,
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "image_url": self.image_url,
            "line_total_cents": self.line_total_cents,
        }


class OrderSequence(db.Model):
    """
    Atomic per-day order number sequences.

    WHY: Counting today's orders and formatting the count races under
    concurrent checkouts; an UPDATE ... SET next_number = next_number + 1
    on a single row serializes allocations instead.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("day", name="uq_order_sequences_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    day = db.Column(db.String(6), nullable=False)  # YYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "day": self.day,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
