# Overview: Flask API routes for the points ledger; parses input and returns JSON responses.

# backend/app/routes/points.py
"""
Points routes.

Admins adjust balances and read the ledger; members read their own
balance. Every balance change goes through points_service, which writes
the audit row in the same transaction.
"""
from flask import Blueprint, request, g

from ..services import points_service
from ..validation import ServiceError, parse_pagination
from ..decorators import require_auth, require_admin
from ..responses import ok, from_error, internal_error

points_bp = Blueprint("points", __name__, url_prefix="/api/points")


@points_bp.post("/admin/adjust/<int:user_id>")
@require_auth
@require_admin
def adjust_route(user_id: int):
    """
    Body:
    - adjustment_type: "add" | "subtract"
    - points: positive integer
    - reason: non-empty string
    - reward_task_id, custom_reason, notes (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        result = points_service.adjust_user_points(
            user_id,
            data.get("adjustment_type") or data.get("adjustmentType"),
            data.get("points"),
            data.get("reason"),
            g.current_user.id,
            reward_task_id=data.get("reward_task_id") or data.get("rewardTaskId"),
            custom_reason=data.get("custom_reason") or data.get("customReason"),
            notes=data.get("notes"),
        )
        verb = "added" if result["adjustment"].adjustment_type == "add" else "subtracted"
        return ok(
            {
                "adjustment": result["adjustment"].to_dict(),
                "user": result["user"].to_summary(),
                "previous_balance": result["previous_balance"],
                "new_balance": result["new_balance"],
            },
            message=f"Successfully {verb} {result['adjustment'].points} points",
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to adjust points")


@points_bp.get("/admin/history/<int:user_id>")
@require_auth
@require_admin
def history_route(user_id: int):
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        result = points_service.get_user_points_history(user_id, page=page, limit=limit)
        user = result["user"]
        return ok(
            {
                "user": {**user.to_summary(), "reward_points": user.reward_points},
                "adjustments": [a.to_dict() for a in result["adjustments"]],
            },
            pagination=result["pagination"],
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load points history")


@points_bp.get("/admin/adjustments")
@require_auth
@require_admin
def adjustments_route():
    """
    Query params: page, limit, search, adjustmentType (add|subtract|all),
    userId, startDate, endDate (ISO-8601; endDate inclusive of the whole day).
    """
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        result = points_service.get_all_points_adjustments(
            page=page,
            limit=limit,
            search=request.args.get("search"),
            adjustment_type=request.args.get("adjustmentType") or request.args.get("adjustment_type"),
            user_id=request.args.get("userId", type=int) or request.args.get("user_id", type=int),
            start_date=request.args.get("startDate") or request.args.get("start_date"),
            end_date=request.args.get("endDate") or request.args.get("end_date"),
        )
        return ok(
            [a.to_dict() for a in result["adjustments"]],
            pagination=result["pagination"],
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load points adjustments")


@points_bp.get("/admin/stats")
@require_auth
@require_admin
def stats_route():
    try:
        return ok(points_service.get_points_stats())
    except Exception:
        return internal_error("Failed to load points statistics")


@points_bp.get("/my-points")
@require_auth
def my_points_route():
    try:
        result = points_service.get_my_points(g.current_user.id)
        return ok({
            "current_balance": result["current_balance"],
            "recent_adjustments": [a.to_dict() for a in result["recent_adjustments"]],
        })
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load points")
