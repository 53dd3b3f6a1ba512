# Overview: Flask API routes for checkout and order administration; parses input and returns JSON responses.

# backend/app/routes/orders.py
"""
Order routes.

Members place orders and read their own; admins list, move orders
through their statuses, archive and delete them. Stock bookkeeping lives
entirely in order_service.
"""
from flask import Blueprint, request, g

from ..services import order_service
from ..validation import ServiceError, parse_pagination
from ..decorators import require_auth, require_admin
from ..responses import ok, from_error, internal_error

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


def _listing(result: dict):
    return ok(
        [order.to_dict(include_user=True) for order in result["items"]],
        meta=result["meta"],
    )


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body:
    - items: [{product_id, quantity}] (required, non-empty)
    - shipping_address: {street, city, state, zip_code, country} (optional)
    - payment_method, notes (optional)

    Line prices come from the catalog, never from the request.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            g.current_user.id,
            data.get("items"),
            shipping_address=data.get("shipping_address") or data.get("shippingAddress"),
            payment_method=data.get("payment_method") or data.get("paymentMethod"),
            notes=data.get("notes"),
        )
        return ok(order.to_dict(), 201, message="Order created successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.get("")
@require_auth
def my_orders_route():
    try:
        orders = order_service.get_user_orders(g.current_user.id)
        return ok([order.to_dict() for order in orders])
    except Exception:
        return internal_error("Failed to list orders")


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, user=g.current_user)
        return ok(order.to_dict(include_user=g.current_user.is_admin))
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load order")


@admin_orders_bp.get("")
@require_auth
@require_admin
def admin_list_orders_route():
    """
    Query params:
    - status: pending|unfulfilled|fulfilled|incomplete|all (optional)
    - userid: int (optional)
    - page, limit: pagination (limit default 10, max 100)
    """
    try:
        page, limit = parse_pagination(request.args)
        user_id = request.args.get("userid", type=int) or request.args.get("user_id", type=int)
        result = order_service.get_all_orders(
            status=request.args.get("status"),
            user_id=user_id,
            page=page,
            limit=limit,
        )
        return _listing(result)
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to list orders")


@admin_orders_bp.get("/archived")
@require_auth
@require_admin
def admin_archived_orders_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=30)
        result = order_service.get_archived_orders(
            search=request.args.get("search"),
            status=request.args.get("status"),
            date=request.args.get("date"),
            page=page,
            limit=limit,
        )
        return _listing(result)
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to list archived orders")


@admin_orders_bp.put("/<int:order_id>/status")
@require_auth
@require_admin
def update_status_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order_status(order_id, data.get("status"))
        return ok(order.to_dict(include_user=True), message="Order status updated")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to update order status")


@admin_orders_bp.put("/<int:order_id>/archive")
@require_auth
@require_admin
def archive_order_route(order_id: int):
    try:
        order = order_service.archive_order(order_id)
        return ok(order.to_dict(include_user=True), message="Order archived")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to archive order")


@admin_orders_bp.put("/<int:order_id>/unarchive")
@require_auth
@require_admin
def unarchive_order_route(order_id: int):
    try:
        order = order_service.unarchive_order(order_id)
        return ok(order.to_dict(include_user=True), message="Order restored")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to unarchive order")


@admin_orders_bp.delete("/<int:order_id>")
@require_auth
@require_admin
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
        return ok(message="Order deleted")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to delete order")
