from typing import Any, Dict, Optional


def _money(value) -> Optional[str]:
    # decimals go out as strings so clients never see float rounding
    return None if value is None else f"{value:.2f}"


def _ts(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _enum(value) -> Optional[str]:
    return getattr(value, "value", value)


def to_order_item_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "menu_item_id": row.menu_item_id,
        "quantity": row.quantity,
        "unit_price": _money(row.unit_price),
        "total_price": _money(row.total_price),
        "customizations": row.customizations or {},
        "special_instructions": row.special_instructions,
    }


def to_order_summary_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "order_number": row.order_number,
        "user_id": row.user_id,
        "total_amount": _money(row.total_amount),
        "status": _enum(row.status),
        "order_type": _enum(row.order_type),
        "payment_status": _enum(row.payment_status),
        "created_at": _ts(row.created_at),
    }


def to_order_dto(row: Any) -> Dict:
    data = to_order_summary_dto(row)
    data.update(
        {
            "subtotal": _money(row.subtotal),
            "tax_amount": _money(row.tax_amount),
            "delivery_fee": _money(row.delivery_fee),
            "delivery_address": row.delivery_address,
            "payment_method": row.payment_method,
            "refund_requested": bool(row.refund_requested),
            "notes": row.notes,
            "estimated_delivery_time": _ts(row.estimated_delivery_time),
            "paid_at": _ts(row.paid_at),
            "version": row.version,
            "updated_at": _ts(row.updated_at),
            "items": [to_order_item_dto(it) for it in row.items],
        }
    )
    return data


def to_payment_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "order_id": row.order_id,
        "payment_gateway": row.payment_gateway,
        "transaction_id": row.transaction_id,
        "amount": _money(row.amount),
        "status": _enum(row.status),
        "payment_method": row.payment_method,
        "paid_at": _ts(row.paid_at),
        "details": row.details,
        "created_at": _ts(row.created_at),
    }


def to_order_event_dto(row: Any) -> Dict:
    return {
        "order_id": row.order_id,
        "from_status": row.from_status,
        "to_status": row.to_status,
        "actor_id": row.actor_id,
        "actor_role": row.actor_role,
        "created_at": _ts(row.created_at),
    }
