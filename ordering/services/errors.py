from typing import Dict, Optional


class OrderError(Exception):
    """Base class for workflow failures surfaced to callers.

    ``code`` is the stable reason code exposed over HTTP; ``errors`` carries
    field-level detail for validation failures only.
    """

    code = "ORDER_ERROR"
    http_status = 400

    def __init__(self, message: str, *, errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self) -> Dict:
        payload = {"success": False, "error": self.code, "message": self.message}
        if self.errors:
            payload["errors"] = dict(self.errors)
        return payload


class InvalidOrderInput(OrderError):
    code = "INVALID_ORDER_INPUT"
    http_status = 422

    def __init__(self, errors: Dict[str, str], message: str = "Validation errors") -> None:
        super().__init__(message, errors=errors)


class CatalogLookupFailed(OrderError):
    code = "CATALOG_LOOKUP_FAILED"
    http_status = 404


class ItemUnavailable(OrderError):
    code = "ITEM_UNAVAILABLE"
    http_status = 422


class OrderNotFound(OrderError):
    code = "ORDER_NOT_FOUND"
    http_status = 404

    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(message)


class Forbidden(OrderError):
    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InvalidTransition(OrderError):
    code = "INVALID_TRANSITION"
    http_status = 409


class InvalidPaymentState(OrderError):
    code = "INVALID_PAYMENT_STATE"
    http_status = 409


class ConflictRetry(OrderError):
    code = "CONFLICT_RETRY"
    http_status = 409

    def __init__(self, message: str = "Order was modified concurrently, reload and retry") -> None:
        super().__init__(message)


class PersistenceFailure(OrderError):
    code = "PERSISTENCE_FAILURE"
    http_status = 503


# soft warning code, returned alongside a successful result
AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
