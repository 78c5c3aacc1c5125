"""Staff and admin order management API."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ordering.services.errors import OrderError

from .api import _components, current_identity, error_response, unauthenticated


admin_bp = Blueprint("ordering_admin", __name__, url_prefix="/api/admin")


@admin_bp.before_request
def guard_private_routes():
    if current_identity() is None:
        return unauthenticated()
    return None


@admin_bp.put("/orders/<int:order_id>/status")
def update_status(order_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    # optimistic concurrency token: body "version" or an If-Match header
    version = payload.get("version", request.headers.get("If-Match"))
    try:
        expected = int(str(version).strip('"')) if version not in (None, "") else None
    except ValueError:
        expected = None
    try:
        order = _components()["order_service"].transition_status(
            current_identity(), order_id, payload.get("status"), expected_version=expected
        )
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, "message": "Order status updated successfully", "order": order})


@admin_bp.get("/orders/<int:order_id>/events")
def order_events(order_id: int):
    try:
        events = _components()["order_service"].list_events(current_identity(), order_id)
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, "events": events})


@admin_bp.delete("/orders/<int:order_id>")
def delete_order(order_id: int):
    try:
        _components()["order_service"].delete_order(current_identity(), order_id)
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, "message": "Order deleted successfully"})


@admin_bp.get("/dashboard")
def dashboard():
    try:
        data = _components()["order_service"].dashboard(current_identity())
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, **data})
