# Overview: Flask API routes for the product catalog and categories; parses input and returns JSON responses.

# backend/app/routes/products.py
"""
Catalog routes.

Reads are public. Product and category writes require an admin.
"""
from flask import Blueprint, request

from ..services import catalog_service
from ..validation import ServiceError
from ..decorators import require_auth, require_admin
from ..responses import ok, from_error, internal_error

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        result = catalog_service.list_products(
            category_id=request.args.get("category_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return ok(result)
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return ok(catalog_service.get_product(product_id).to_dict())
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load product")


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    try:
        product = catalog_service.create_product(request.get_json(silent=True) or {})
        return ok(product.to_dict(), 201, message="Product created")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True) or {})
        return ok(product.to_dict(), message="Product updated")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to update product")


@categories_bp.get("")
def list_categories_route():
    try:
        return ok([c.to_dict() for c in catalog_service.list_categories()])
    except Exception:
        return internal_error("Failed to list categories")


@categories_bp.post("")
@require_auth
@require_admin
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.create_category(data.get("name"), data.get("description"))
        return ok(category.to_dict(), 201, message="Category created")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to create category")


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category_route(category_id: int):
    try:
        removed = catalog_service.delete_category(category_id)
        return ok({"deleted_products": removed}, message="Category and its products deleted")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to delete category")
