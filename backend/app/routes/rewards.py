# Overview: Flask API routes for reward tasks, claims and admin review; parses input and returns JSON responses.

# backend/app/routes/rewards.py
"""
Reward routes.

Claims may be posted as JSON (text proof) or multipart/form-data with
proofImage / proofAudio / proofVideo file parts.
"""
from flask import Blueprint, request, g

from ..services import reward_service
from ..validation import ServiceError, parse_pagination
from ..decorators import require_auth, require_admin
from ..responses import ok, from_error, internal_error

rewards_bp = Blueprint("rewards", __name__, url_prefix="/api/rewards")


def _claim_fields() -> tuple[dict, list]:
    if request.files or request.form:
        data = request.form.to_dict()
        files = [(name, f) for name, f in request.files.items(multi=True) if f and f.filename]
        return data, files
    return request.get_json(silent=True) or {}, []


@rewards_bp.get("/tasks")
@require_auth
def tasks_route():
    try:
        return ok(reward_service.list_tasks_for_user(g.current_user.id))
    except Exception:
        return internal_error("Failed to load reward tasks")


@rewards_bp.post("/claim")
@require_auth
def claim_route():
    try:
        data, files = _claim_fields()
        claim = reward_service.submit_reward_claim(
            g.current_user.id,
            data.get("task_id") or data.get("taskId"),
            data.get("proof_type") or data.get("proofType"),
            data.get("proof_text") or data.get("proofText"),
            files,
            reward_service.load_task_catalog(),
        )
        return ok(claim.to_dict(), 201, message="Reward claim submitted successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to submit reward claim")


@rewards_bp.get("/history")
@require_auth
def history_route():
    try:
        result = reward_service.get_user_rewards(g.current_user.id)
        return ok(
            [claim.to_dict() for claim in result["rewards"]],
            total_earned=result["total_earned"],
        )
    except Exception:
        return internal_error("Failed to load reward history")


@rewards_bp.get("/requests")
@require_auth
def pending_requests_route():
    try:
        claims = reward_service.get_user_pending_requests(g.current_user.id)
        return ok([claim.to_dict() for claim in claims])
    except Exception:
        return internal_error("Failed to load reward requests")


@rewards_bp.get("/admin/requests")
@require_auth
@require_admin
def admin_requests_route():
    """status defaults to pending; status=all lists every claim."""
    try:
        page, limit = parse_pagination(request.args)
        result = reward_service.get_all_requests(
            status=request.args.get("status", "pending"),
            page=page,
            limit=limit,
        )
        return ok(
            [claim.to_dict() for claim in result["requests"]],
            pagination=result["pagination"],
        )
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to load reward requests")


@rewards_bp.put("/admin/requests/<int:claim_id>")
@require_auth
@require_admin
def decide_request_route(claim_id: int):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        claim = reward_service.update_reward_status(
            claim_id,
            status,
            g.current_user.id,
            data.get("admin_notes") or data.get("adminNotes"),
        )
        return ok(claim.to_dict(), message=f"Reward {status} successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to update reward status")


@rewards_bp.get("/admin/stats")
@require_auth
@require_admin
def stats_route():
    try:
        return ok(reward_service.get_reward_stats())
    except Exception:
        return internal_error("Failed to load reward statistics")


@rewards_bp.get("/admin/tasks")
@require_auth
@require_admin
def admin_tasks_route():
    try:
        return ok([task.to_dict() for task in reward_service.list_all_tasks()])
    except Exception:
        return internal_error("Failed to load reward tasks")


@rewards_bp.post("/admin/tasks")
@require_auth
@require_admin
def create_task_route():
    try:
        task = reward_service.create_task(request.get_json(silent=True) or {}, g.current_user.id)
        return ok(task.to_dict(), 201, message="Reward task created successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to create reward task")


@rewards_bp.put("/admin/tasks/<int:task_pk>")
@require_auth
@require_admin
def update_task_route(task_pk: int):
    try:
        task = reward_service.update_task(task_pk, request.get_json(silent=True) or {})
        return ok(task.to_dict(), message="Reward task updated successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to update reward task")


@rewards_bp.delete("/admin/tasks/<int:task_pk>")
@require_auth
@require_admin
def delete_task_route(task_pk: int):
    try:
        reward_service.delete_task(task_pk)
        return ok(message="Reward task deleted successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to delete reward task")


@rewards_bp.patch("/admin/tasks/<int:task_pk>/toggle-visibility")
@require_auth
@require_admin
def toggle_visibility_route(task_pk: int):
    try:
        task = reward_service.toggle_task_visibility(task_pk)
        state = "shown" if task.is_visible else "hidden"
        return ok(task.to_dict(), message=f"Task {state} successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to toggle task visibility")
