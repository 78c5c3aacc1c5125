from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..services.errors import InvalidOrderInput
from ..services.status import OrderType, parse_enum


MAX_TEXT = 500
MAX_QUANTITY = 1000
# signed 64-bit, the widest integer key the supported databases store
MAX_ID = 2**63 - 1


@dataclass(frozen=True)
class CartLine:
    menu_item_id: int
    quantity: int
    customizations: Dict[str, Any] = field(default_factory=dict)
    special_instructions: Optional[str] = None


@dataclass(frozen=True)
class OrderRequest:
    lines: List[CartLine]
    order_type: OrderType
    delivery_address: Optional[str]
    notes: Optional[str]
    payment_method: Optional[str]


def ensure_positive_int(value, field: str, maximum: Optional[int] = None) -> int:
    # bool is an int subclass, reject it explicitly
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} must be an integer >= 1")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"{field} must be an integer >= 1") from None
    if isinstance(value, float) and value != number:
        raise ValueError(f"{field} must be an integer >= 1")
    if number < 1:
        raise ValueError(f"{field} must be an integer >= 1")
    if maximum is not None and number > maximum:
        raise ValueError(f"{field} may not be greater than {maximum}")
    return number


def optional_text(value, field: str, errors: Dict[str, str], max_length: int = MAX_TEXT) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        errors[field] = f"{field} must be a string"
        return None
    value = value.strip()
    if len(value) > max_length:
        errors[field] = f"{field} may not be longer than {max_length} characters"
        return None
    return value or None


def _parse_line(raw, index: int, errors: Dict[str, str]) -> Optional[CartLine]:
    prefix = f"items.{index}"
    if not isinstance(raw, dict):
        errors[prefix] = "each item must be an object"
        return None
    line_errors = len(errors)
    try:
        menu_item_id = ensure_positive_int(raw.get("menu_item_id"), "menu_item_id", maximum=MAX_ID)
    except ValueError as exc:
        errors[f"{prefix}.menu_item_id"] = str(exc)
    try:
        quantity = ensure_positive_int(raw.get("quantity"), "quantity", maximum=MAX_QUANTITY)
    except ValueError as exc:
        errors[f"{prefix}.quantity"] = str(exc)
    customizations = raw.get("customizations")
    if customizations is not None and not isinstance(customizations, dict):
        errors[f"{prefix}.customizations"] = "customizations must be an object"
    instructions = optional_text(raw.get("special_instructions"), f"{prefix}.special_instructions", errors)
    if len(errors) != line_errors:
        return None
    return CartLine(
        menu_item_id=menu_item_id,
        quantity=quantity,
        customizations=dict(customizations or {}),
        special_instructions=instructions,
    )


def validate_order_request(
    items,
    order_type,
    delivery_address=None,
    notes=None,
    payment_method=None,
) -> OrderRequest:
    """Validate a checkout submission; raises InvalidOrderInput with per-field messages."""
    errors: Dict[str, str] = {}

    lines: List[CartLine] = []
    if not isinstance(items, (list, tuple)) or not items:
        errors["items"] = "items must be a non-empty list"
    else:
        for index, raw in enumerate(items):
            line = _parse_line(raw, index, errors)
            if line is not None:
                lines.append(line)

    kind: Optional[OrderType] = None
    try:
        kind = parse_enum(OrderType, order_type)
    except ValueError:
        errors["order_type"] = "order_type must be one of: dine_in, takeaway, delivery"

    address = optional_text(delivery_address, "delivery_address", errors)
    if kind is OrderType.DELIVERY and address is None and "delivery_address" not in errors:
        errors["delivery_address"] = "delivery_address is required for delivery orders"
    elif kind is not None and kind is not OrderType.DELIVERY and address is not None:
        errors["delivery_address"] = f"delivery_address is not allowed for {kind.value} orders"

    notes = optional_text(notes, "notes", errors)
    payment_method = optional_text(payment_method, "payment_method", errors, max_length=100)

    if errors:
        raise InvalidOrderInput(errors)
    return OrderRequest(
        lines=lines,
        order_type=kind,
        delivery_address=address,
        notes=notes,
        payment_method=payment_method,
    )
