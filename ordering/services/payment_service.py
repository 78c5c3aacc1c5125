from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db.session import get_session
from ..models.order import Order
from ..models.payment import Payment
from ..utils.dto import to_order_dto, to_payment_dto
from ..utils.validators import optional_text
from .errors import (
    AMOUNT_MISMATCH,
    ConflictRetry,
    InvalidOrderInput,
    InvalidPaymentState,
    OrderError,
    OrderNotFound,
    PersistenceFailure,
)
from .identity import Identity
from .logging import log_event
from .order_service import utcnow
from .pricing import MAX_AMOUNT, to_money
from .status import OrderStatus, PaymentOutcome, PaymentStatus, parse_enum


@dataclass
class GatewayResult:
    status: PaymentOutcome
    amount: Decimal
    transaction_id: str
    payment_method: str
    payment_gateway: Optional[str] = None
    details: Optional[Dict] = None


@dataclass
class PaymentResult:
    payment: Dict
    order: Dict
    warnings: List[str] = field(default_factory=list)


def parse_gateway_result(data: Dict) -> GatewayResult:
    """Validate a gateway callback / confirmation payload."""
    errors: Dict[str, str] = {}
    outcome = None
    try:
        outcome = parse_enum(PaymentOutcome, data.get("status"))
    except ValueError:
        errors["status"] = "status must be one of: pending, completed, failed, refunded"

    amount = None
    raw_amount = data.get("amount")
    if raw_amount is None or isinstance(raw_amount, bool):
        errors["amount"] = "amount is required"
    else:
        try:
            amount = to_money(raw_amount)
        except (InvalidOperation, TypeError, ValueError):
            errors["amount"] = "amount must be a number"
        else:
            if not amount.is_finite():
                errors["amount"] = "amount must be a number"
            elif amount < 0:
                errors["amount"] = "amount must be >= 0"
            elif amount > MAX_AMOUNT:
                errors["amount"] = f"amount may not exceed {MAX_AMOUNT}"

    transaction_id = optional_text(data.get("transaction_id"), "transaction_id", errors, max_length=128)
    if transaction_id is None and "transaction_id" not in errors:
        errors["transaction_id"] = "transaction_id is required"
    method = optional_text(data.get("payment_method"), "payment_method", errors, max_length=100)
    if method is None and "payment_method" not in errors:
        errors["payment_method"] = "payment_method is required"
    gateway = optional_text(data.get("payment_gateway"), "payment_gateway", errors, max_length=64)
    details = data.get("details")
    if details is not None and not isinstance(details, dict):
        errors["details"] = "details must be an object"

    if errors:
        raise InvalidOrderInput(errors)
    return GatewayResult(
        status=outcome,
        amount=amount,
        transaction_id=transaction_id,
        payment_method=method,
        payment_gateway=gateway,
        details=details,
    )


class PaymentService:
    """Records gateway-reported payment outcomes against orders."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def record_payment(self, actor: Identity, order_id: int, result: GatewayResult) -> PaymentResult:
        """Store a gateway outcome and apply it to the order.

        Changes to the order are a compare-and-set on (version, status,
        payment_status), so a payment racing a status change gets ConflictRetry
        instead of overwriting it.
        """
        warnings: List[str] = []
        refund = False
        try:
            with self._session_factory() as session:
                order = session.get(Order, order_id)
                if order is None or not actor.can_see(order.user_id):
                    raise OrderNotFound()
                if session.query(Payment.id).filter(Payment.transaction_id == result.transaction_id).first():
                    raise InvalidOrderInput({"transaction_id": "transaction_id has already been recorded"})

                now = utcnow()
                payment = Payment(
                    order_id=order.id,
                    payment_gateway=result.payment_gateway,
                    transaction_id=result.transaction_id,
                    amount=result.amount,
                    status=result.status,
                    payment_method=result.payment_method,
                    details=result.details,
                )

                values = None
                if result.status is PaymentOutcome.COMPLETED:
                    if order.payment_status is not PaymentStatus.PENDING:
                        raise InvalidPaymentState(
                            f"Order is already {order.payment_status.value}, a completed payment cannot be applied"
                        )
                    completed = (
                        session.query(Payment.id)
                        .filter(Payment.order_id == order.id, Payment.status == PaymentOutcome.COMPLETED)
                        .first()
                    )
                    if completed is not None:
                        raise InvalidPaymentState("A completed payment for this order is awaiting reconciliation")
                    payment.paid_at = now
                    values = {}
                    if result.amount == to_money(order.total_amount):
                        values.update(
                            payment_status=PaymentStatus.PAID,
                            paid_at=now,
                            payment_method=order.payment_method or result.payment_method,
                        )
                        # money taken after the order was cancelled has to go back
                        if order.status is OrderStatus.CANCELLED:
                            values["refund_requested"] = True
                            refund = True
                    else:
                        # kept for manual reconciliation, the order stays unpaid
                        warnings.append(AMOUNT_MISMATCH)
                elif result.status is PaymentOutcome.REFUNDED:
                    if order.payment_status is not PaymentStatus.PAID:
                        raise InvalidPaymentState("Only paid orders can be refunded")
                    values = {"payment_status": PaymentStatus.REFUNDED, "refund_requested": False}

                if values is not None:
                    values.update(version=Order.version + 1, updated_at=func.now())
                    outcome = session.execute(
                        update(Order)
                        .where(
                            Order.id == order.id,
                            Order.version == order.version,
                            Order.status == order.status,
                            Order.payment_status == order.payment_status,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if outcome.rowcount != 1:
                        raise ConflictRetry()

                session.add(payment)
                session.flush()
                session.refresh(order)
                payload = PaymentResult(payment=to_payment_dto(payment), order=to_order_dto(order), warnings=warnings)
        except OrderError:
            raise
        except IntegrityError as exc:
            # transaction_id unique constraint hit by a concurrent callback
            raise InvalidOrderInput({"transaction_id": "transaction_id has already been recorded"}) from exc
        except SQLAlchemyError as exc:
            log_event("error", "payment.record_failed", order_id=order_id, error=str(exc))
            raise PersistenceFailure("Could not store the payment, please retry") from exc

        log_event(
            "info",
            "payment.recorded",
            order_id=order_id,
            transaction_id=result.transaction_id,
            status=result.status,
            amount=result.amount,
            payment_status=payload.order["payment_status"],
        )
        if warnings:
            log_event(
                "warning",
                "payment.amount_mismatch",
                order_id=order_id,
                transaction_id=result.transaction_id,
                amount=result.amount,
                expected=payload.order["total_amount"],
            )
        if refund:
            log_event("info", "order.refund_requested", order_id=order_id, amount=payload.order["total_amount"])
        return payload

    def list_payments(self, actor: Identity, order_id: int) -> List[Dict]:
        try:
            with self._session_factory() as session:
                order = session.get(Order, order_id)
                if order is None or not actor.can_see(order.user_id):
                    raise OrderNotFound()
                return [to_payment_dto(p) for p in order.payments]
        except OrderError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Storage is unavailable") from exc
