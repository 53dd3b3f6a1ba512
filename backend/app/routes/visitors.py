# Overview: Flask API routes for in-store check-in and visitor administration; parses input and returns JSON responses.

# backend/app/routes/visitors.py
"""
Visitor routes.

POST /checkin is public (kiosk); it only accepts phones of registered
members. Everything under /admin requires an admin session.
"""
from flask import Blueprint, request, g

from ..services import visitor_service
from ..validation import ServiceError, parse_pagination
from ..decorators import require_auth, require_admin
from ..responses import ok, from_error, internal_error

visitors_bp = Blueprint("visitors", __name__, url_prefix="/api/visitors")


def _listing(result: dict):
    return ok(
        [v.to_dict() for v in result["visitors"]],
        pagination=result["pagination"],
        statistics=result["statistics"],
    )


@visitors_bp.post("/checkin")
def checkin_route():
    try:
        data = request.get_json(silent=True) or {}
        result = visitor_service.check_in_visitor(data.get("phone"))
        return ok(
            {
                "visitor": result["visitor"].to_dict(),
                "is_member": result["is_member"],
                "is_new_visitor": result["is_new_visitor"],
                "user_name": result["user_name"],
            },
            message="Check-in successful!",
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to check in visitor")


@visitors_bp.get("/admin/all")
@require_auth
@require_admin
def list_route():
    """
    Query params: page, limit (default 50), search (phone substring),
    memberFilter (all|members|non-members), date (YYYY-MM-DD of last visit).
    """
    try:
        page, limit = parse_pagination(request.args, default_limit=50)
        result = visitor_service.list_visitors(
            search=request.args.get("search"),
            member_filter=request.args.get("memberFilter", "all"),
            date=request.args.get("date"),
            page=page,
            limit=limit,
        )
        return _listing(result)
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to list visitors")


@visitors_bp.get("/admin/archived/all")
@require_auth
@require_admin
def archived_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=50)
        result = visitor_service.list_archived_visitors(
            search=request.args.get("search"),
            page=page,
            limit=limit,
        )
        return _listing(result)
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to list archived visitors")


@visitors_bp.get("/admin/<int:visitor_id>")
@require_auth
@require_admin
def get_route(visitor_id: int):
    try:
        return ok(visitor_service.get_visitor(visitor_id).to_dict())
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load visitor")


@visitors_bp.get("/admin/user/<int:user_id>")
@require_auth
@require_admin
def by_user_route(user_id: int):
    try:
        return ok(visitor_service.get_visitor_by_user(user_id).to_dict())
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load visitor")


@visitors_bp.put("/admin/<int:visitor_id>/archive")
@require_auth
@require_admin
def archive_route(visitor_id: int):
    try:
        visitor = visitor_service.archive_visitor(visitor_id)
        return ok(visitor.to_dict(include_visits=False), message="Visitor archived")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to archive visitor")


@visitors_bp.put("/admin/<int:visitor_id>/unarchive")
@require_auth
@require_admin
def unarchive_route(visitor_id: int):
    try:
        visitor = visitor_service.unarchive_visitor(visitor_id)
        return ok(visitor.to_dict(include_visits=False), message="Visitor restored")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to unarchive visitor")


@visitors_bp.post("/admin/checkin/<int:user_id>")
@require_auth
@require_admin
def admin_checkin_route(user_id: int):
    try:
        result = visitor_service.admin_check_in_user(user_id, g.current_user.id)
        user = result["user"]
        return ok(
            {"visitor": result["visitor"].to_dict(), "user": user.to_summary()},
            message=f"Check-in successful for {user.full_name}",
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to check in user")
