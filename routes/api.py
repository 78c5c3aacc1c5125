"""Customer-facing JSON API: checkout, order history and payment callbacks."""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request, session

from ordering.services.errors import InvalidOrderInput, OrderError
from ordering.services.identity import Identity, identity_from_session
from ordering.services.payment_service import parse_gateway_result
from ordering.utils.validators import MAX_ID


api_bp = Blueprint("ordering_api", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["ordering_components"]


def current_identity() -> Optional[Identity]:
    return identity_from_session(session)


def unauthenticated():
    return jsonify({"success": False, "error": "UNAUTHENTICATED", "message": "Unauthenticated."}), 401


def error_response(exc: OrderError):
    return jsonify(exc.to_dict()), exc.http_status


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


@api_bp.post("/orders")
def create_order():
    actor = current_identity()
    if actor is None:
        return unauthenticated()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    try:
        order = _components()["order_service"].create_order(
            actor,
            payload.get("items"),
            payload.get("order_type"),
            delivery_address=payload.get("delivery_address"),
            notes=payload.get("notes"),
            payment_method=payload.get("payment_method"),
        )
    except OrderError as exc:
        return error_response(exc)
    return (
        jsonify(
            {
                "success": True,
                "message": "Order created successfully",
                "order_id": order["id"],
                "order": order,
            }
        ),
        201,
    )


@api_bp.get("/orders")
def list_orders():
    actor = current_identity()
    if actor is None:
        return unauthenticated()
    try:
        result = _components()["order_service"].list_orders(
            actor,
            status=request.args.get("status"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            page=_int_arg("page") or 1,
            page_size=_int_arg("page_size") or 20,
        )
    except OrderError as exc:
        return error_response(exc)
    return jsonify(
        {
            "success": True,
            "orders": result["items"],
            "page": result["page"],
            "page_size": result["page_size"],
            "total": result["total"],
            "total_pages": result["total_pages"],
        }
    )


@api_bp.get("/orders/<int:order_id>")
def show_order(order_id: int):
    actor = current_identity()
    if actor is None:
        return unauthenticated()
    try:
        order = _components()["order_service"].get_order(actor, order_id)
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, "order": order})


@api_bp.get("/orders/<int:order_id>/payments")
def list_payments(order_id: int):
    actor = current_identity()
    if actor is None:
        return unauthenticated()
    try:
        payments = _components()["payment_service"].list_payments(actor, order_id)
    except OrderError as exc:
        return error_response(exc)
    return jsonify({"success": True, "payments": payments})


@api_bp.post("/payments")
def record_payment():
    actor = current_identity()
    if actor is None:
        return unauthenticated()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    try:
        order_id = payload.get("order_id")
        if (
            order_id is None
            or isinstance(order_id, bool)
            or not str(order_id).isdigit()
            or int(order_id) > MAX_ID
        ):
            return error_response(InvalidOrderInput({"order_id": "order_id is required"}))
        gateway_result = parse_gateway_result(payload)
        result = _components()["payment_service"].record_payment(actor, int(order_id), gateway_result)
    except OrderError as exc:
        return error_response(exc)
    body = {
        "success": True,
        "payment": result.payment,
        "order": result.order,
        "warnings": result.warnings,
    }
    return jsonify(body)
