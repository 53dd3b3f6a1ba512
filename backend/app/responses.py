# Overview: JSON envelope helpers shared by the API routes.

from __future__ import annotations

from flask import current_app, jsonify

from .validation import ServiceError


def ok(data=None, status: int = 200, message: str | None = None, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(message: str, status: int, error=None):
    body = {"success": False, "message": message}
    if error:
        body["error"] = error
    return jsonify(body), status


def from_error(exc: ServiceError):
    """Translate a service-layer error into its failure envelope."""
    return fail(exc.message, exc.status_code, exc.details or None)


def internal_error(log_message: str):
    """Log the active exception and return the generic 500 envelope."""
    current_app.logger.exception(log_message)
    return fail("Internal server error", 500)
