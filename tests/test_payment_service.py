from contextlib import contextmanager
from decimal import Decimal

import pytest
from sqlalchemy import event, text

from ordering.models import Order, Payment
from ordering.services.errors import (
    AMOUNT_MISMATCH,
    ConflictRetry,
    InvalidOrderInput,
    InvalidPaymentState,
    OrderNotFound,
)
from ordering.services.payment_service import GatewayResult, PaymentService, parse_gateway_result
from ordering.services.status import PaymentOutcome


def _result(status, amount="27.50", tx="tx-100", method="card"):
    return GatewayResult(
        status=status,
        amount=Decimal(amount),
        transaction_id=tx,
        payment_method=method,
        payment_gateway="stripe",
        details={"charge": "ch_1"},
    )


def _payments(session_factory):
    with session_factory() as session:
        return session.query(Payment).count()


def test_matching_completed_payment_marks_order_paid(payment_service, client_identity, dine_in_order):
    outcome = payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    assert outcome.warnings == []
    assert outcome.order["payment_status"] == "paid"
    assert outcome.order["paid_at"] is not None
    assert outcome.payment["status"] == "completed"
    assert outcome.payment["paid_at"] is not None
    assert outcome.payment["amount"] == "27.50"
    assert outcome.payment["details"] == {"charge": "ch_1"}


def test_mismatched_amount_is_kept_but_flagged(payment_service, session_factory, client_identity, dine_in_order):
    outcome = payment_service.record_payment(
        client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED, amount="20.00")
    )
    assert outcome.warnings == [AMOUNT_MISMATCH]
    assert outcome.order["payment_status"] == "pending"
    assert outcome.order["paid_at"] is None
    assert _payments(session_factory) == 1
    listed = payment_service.list_payments(client_identity, dine_in_order["id"])
    assert [p["transaction_id"] for p in listed] == ["tx-100"]


def test_failed_payment_leaves_order_pending(payment_service, client_identity, dine_in_order):
    outcome = payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.FAILED))
    assert outcome.order["payment_status"] == "pending"
    assert outcome.payment["paid_at"] is None


def test_refund_requires_a_paid_order(payment_service, session_factory, client_identity, dine_in_order):
    with pytest.raises(InvalidPaymentState):
        payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.REFUNDED))
    assert _payments(session_factory) == 0


def test_refund_after_cancelling_a_paid_order(
    payment_service, order_service, client_identity, staff_identity, dine_in_order
):
    payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    assert order_service.transition_status(staff_identity, dine_in_order["id"], "cancelled")["refund_requested"]
    outcome = payment_service.record_payment(
        staff_identity, dine_in_order["id"], _result(PaymentOutcome.REFUNDED, tx="tx-refund")
    )
    assert outcome.order["payment_status"] == "refunded"
    assert outcome.order["refund_requested"] is False


def test_second_completed_payment_is_rejected(payment_service, client_identity, dine_in_order):
    payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    with pytest.raises(InvalidPaymentState):
        payment_service.record_payment(
            client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED, tx="tx-101")
        )


def test_duplicate_transaction_id_is_rejected(payment_service, client_identity, dine_in_order):
    payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.FAILED))
    with pytest.raises(InvalidOrderInput) as info:
        payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    assert "transaction_id" in info.value.errors


def test_clients_cannot_pay_or_read_other_orders(payment_service, other_client_identity, dine_in_order):
    with pytest.raises(OrderNotFound):
        payment_service.record_payment(other_client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    with pytest.raises(OrderNotFound):
        payment_service.list_payments(other_client_identity, dine_in_order["id"])


def test_parse_gateway_result_validates_fields():
    with pytest.raises(InvalidOrderInput) as info:
        parse_gateway_result({"status": "settled", "amount": "abc", "details": "raw"})
    assert set(info.value.errors) == {"status", "amount", "transaction_id", "payment_method", "details"}

    parsed = parse_gateway_result(
        {"status": "COMPLETED", "amount": 27.5, "transaction_id": " tx-9 ", "payment_method": "cash"}
    )
    assert parsed.status is PaymentOutcome.COMPLETED
    assert parsed.amount == Decimal("27.50")
    assert parsed.transaction_id == "tx-9"


def test_negative_amount_is_rejected():
    with pytest.raises(InvalidOrderInput) as info:
        parse_gateway_result({"status": "completed", "amount": "-1", "transaction_id": "t", "payment_method": "card"})
    assert info.value.errors == {"amount": "amount must be >= 0"}


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", float("nan"), float("inf")])
def test_non_finite_amount_is_rejected(amount):
    with pytest.raises(InvalidOrderInput) as info:
        parse_gateway_result({"status": "completed", "amount": amount, "transaction_id": "t", "payment_method": "card"})
    assert info.value.errors == {"amount": "amount must be a number"}


def test_amount_beyond_column_range_is_rejected():
    with pytest.raises(InvalidOrderInput) as info:
        parse_gateway_result(
            {"status": "completed", "amount": "100000000.00", "transaction_id": "t", "payment_method": "card"}
        )
    assert info.value.errors == {"amount": "amount may not exceed 99999999.99"}


def test_second_completed_payment_after_mismatch_is_rejected(
    payment_service, session_factory, client_identity, dine_in_order
):
    short = payment_service.record_payment(
        client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED, amount="20.00")
    )
    assert short.warnings == [AMOUNT_MISMATCH]
    with pytest.raises(InvalidPaymentState):
        payment_service.record_payment(
            client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED, tx="tx-101")
        )
    listed = payment_service.list_payments(client_identity, dine_in_order["id"])
    assert [(p["transaction_id"], p["status"]) for p in listed] == [("tx-100", "completed")]
    assert _payments(session_factory) == 1


def test_payment_for_a_cancelled_order_requests_refund(
    payment_service, order_service, client_identity, staff_identity, dine_in_order
):
    order_service.transition_status(staff_identity, dine_in_order["id"], "cancelled")
    outcome = payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    assert outcome.order["status"] == "cancelled"
    assert outcome.order["payment_status"] == "paid"
    assert outcome.order["refund_requested"] is True


def test_payment_bumps_version_so_stale_status_writers_conflict(
    payment_service, order_service, client_identity, staff_identity, dine_in_order
):
    seen_version = dine_in_order["version"]
    outcome = payment_service.record_payment(client_identity, dine_in_order["id"], _result(PaymentOutcome.COMPLETED))
    assert outcome.order["version"] == seen_version + 1
    with pytest.raises(ConflictRetry):
        order_service.transition_status(staff_identity, dine_in_order["id"], "cancelled", expected_version=seen_version)


def test_cancel_landing_between_read_and_payment_write_is_detected(
    session_factory, order_service, client_identity, staff_identity, dine_in_order
):
    order_id = dine_in_order["id"]

    @contextmanager
    def racing_session():
        with session_factory() as session:

            @event.listens_for(session, "do_orm_execute")
            def _staff_cancels(state):
                if state.is_update:
                    state.session.connection().execute(
                        text("UPDATE orders SET status = 'cancelled', version = version + 1 WHERE id = :id"),
                        {"id": order_id},
                    )

            yield session

    with pytest.raises(ConflictRetry):
        PaymentService(racing_session).record_payment(
            client_identity, order_id, _result(PaymentOutcome.COMPLETED)
        )

    assert _payments(session_factory) == 0
    order = order_service.get_order(staff_identity, order_id)
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["version"] == dine_in_order["version"]

    # the cancel wins on its own; the retried payment then flags the refund
    order_service.transition_status(staff_identity, order_id, "cancelled")
    retried = PaymentService(session_factory).record_payment(
        client_identity, order_id, _result(PaymentOutcome.COMPLETED)
    )
    assert retried.order["refund_requested"] is True
    with session_factory() as session:
        stored = session.get(Order, order_id)
        assert (stored.status.value, stored.payment_status.value) == ("cancelled", "paid")
