from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..db.session import get_session
from ..models.order import Order
from ..models.order_event import OrderEvent
from ..models.order_item import OrderItem
from ..utils.dto import to_order_dto, to_order_event_dto, to_order_summary_dto
from ..utils.pagination import normalize_paging, total_pages
from ..utils.validators import CartLine, validate_order_request
from .catalog_service import CatalogEntry, MenuCatalog
from .errors import (
    CatalogLookupFailed,
    ConflictRetry,
    Forbidden,
    InvalidOrderInput,
    InvalidTransition,
    ItemUnavailable,
    OrderError,
    OrderNotFound,
    PersistenceFailure,
)
from .identity import Identity
from .logging import log_event
from .pricing import MAX_AMOUNT, PricingPolicy, to_money
from .status import OPEN_STATUSES, OrderStatus, PaymentStatus, can_transition, parse_enum


def default_order_number() -> str:
    return "ORD-" + uuid4().hex[:10].upper()


def utcnow() -> datetime:
    # naive UTC, matching what the database's CURRENT_TIMESTAMP stores
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_day(value, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise InvalidOrderInput({field: f"{field} must be an ISO date"}) from None


class OrderService:
    """Order workflow: checkout, status transitions and order reads.

    Every public method is one unit of work against the store. Writes are
    never retried here; reads retry once on a transient OperationalError.
    """

    MAX_NUMBER_ATTEMPTS = 5

    def __init__(
        self,
        session_factory=get_session,
        catalog: Optional[MenuCatalog] = None,
        pricing: Optional[PricingPolicy] = None,
        number_generator: Callable[[], str] = default_order_number,
    ):
        self._session_factory = session_factory
        self._catalog = catalog or MenuCatalog()
        self._pricing = pricing or PricingPolicy()
        self._number_generator = number_generator

    # -- checkout ---------------------------------------------------------

    def create_order(
        self,
        actor: Identity,
        items,
        order_type,
        delivery_address: Optional[str] = None,
        notes: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Dict:
        """Validate, price and persist an order together with its items."""
        request = validate_order_request(items, order_type, delivery_address, notes, payment_method)

        for attempt in range(1, self.MAX_NUMBER_ATTEMPTS + 1):
            number = self._number_generator()
            try:
                with self._session_factory() as session:
                    taken = session.query(Order.id).filter(Order.order_number == number).first()
                    if taken is not None:
                        log_event("warning", "order.number_collision", order_number=number, attempt=attempt)
                        continue
                    priced = self._resolve_lines(session, request.lines)
                    quote = self._pricing.quote(
                        ((entry.price, line.quantity) for line, entry in priced), request.order_type
                    )
                    if quote.total_amount > MAX_AMOUNT:
                        raise InvalidOrderInput({"items": f"order total may not exceed {MAX_AMOUNT}"})
                    order = Order(
                        user_id=actor.user_id,
                        order_number=number,
                        subtotal=quote.subtotal,
                        tax_amount=quote.tax_amount,
                        delivery_fee=quote.delivery_fee,
                        total_amount=quote.total_amount,
                        status=OrderStatus.PENDING,
                        order_type=request.order_type,
                        delivery_address=request.delivery_address,
                        payment_method=request.payment_method,
                        payment_status=PaymentStatus.PENDING,
                        refund_requested=False,
                        notes=request.notes,
                        version=1,
                    )
                    order.items = [
                        OrderItem(
                            menu_item_id=line.menu_item_id,
                            quantity=line.quantity,
                            unit_price=entry.price,
                            total_price=self._pricing.line_total(entry.price, line.quantity),
                            customizations=line.customizations or None,
                            special_instructions=line.special_instructions,
                        )
                        for line, entry in priced
                    ]
                    session.add(order)
                    session.flush()
                    result = to_order_dto(order)
            except IntegrityError as exc:
                # lost the order_number race to a concurrent insert; nothing was committed
                log_event("warning", "order.number_collision", order_number=number, attempt=attempt, error=str(exc.orig))
                continue
            except OrderError:
                raise
            except SQLAlchemyError as exc:
                log_event("error", "order.create_failed", user_id=actor.user_id, error=str(exc))
                raise PersistenceFailure("Could not store the order, please retry") from exc
            log_event(
                "info",
                "order.created",
                order_id=result["id"],
                order_number=number,
                user_id=actor.user_id,
                items=len(priced),
                total=quote.total_amount,
            )
            return result

        log_event("error", "order.number_exhausted", attempts=self.MAX_NUMBER_ATTEMPTS)
        raise PersistenceFailure("Could not allocate a unique order number")

    def _resolve_lines(self, session, lines: List[CartLine]) -> List[Tuple[CartLine, CatalogEntry]]:
        resolved = []
        for line in lines:
            entry = self._catalog.lookup(session, line.menu_item_id)
            if entry is None:
                raise CatalogLookupFailed(f"Menu item {line.menu_item_id} not found")
            if not entry.available:
                raise ItemUnavailable(f"Menu item {entry.name} is currently unavailable")
            resolved.append((line, entry))
        return resolved

    # -- status workflow --------------------------------------------------

    def transition_status(
        self,
        actor: Identity,
        order_id: int,
        target_status,
        expected_version: Optional[int] = None,
    ) -> Dict:
        """Move an order along the status machine.

        The write is a compare-and-set on (status, version); a writer that
        computed its transition against stale state gets ConflictRetry.
        """
        if not actor.is_privileged:
            raise Forbidden()
        try:
            target = parse_enum(OrderStatus, target_status)
        except ValueError:
            raise InvalidTransition(f"Unknown status {target_status!r}") from None

        try:
            with self._session_factory() as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise OrderNotFound()
                current = order.status
                if not can_transition(current, target):
                    raise InvalidTransition(f"Cannot change status from {current.value} to {target.value}")
                if expected_version is not None and int(expected_version) != order.version:
                    raise ConflictRetry()

                values = {"status": target, "version": Order.version + 1, "updated_at": func.now()}
                refund = target is OrderStatus.CANCELLED and order.payment_status is PaymentStatus.PAID
                if refund:
                    values["refund_requested"] = True
                outcome = session.execute(
                    update(Order)
                    .where(
                        Order.id == order.id,
                        Order.status == current,
                        Order.version == order.version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    raise ConflictRetry()

                changed_at = utcnow()
                session.add(
                    OrderEvent(
                        order_id=order.id,
                        from_status=current.value,
                        to_status=target.value,
                        actor_id=actor.user_id,
                        actor_role=actor.role.value,
                        created_at=changed_at,
                    )
                )
                session.flush()
                session.refresh(order)
                result = to_order_dto(order)
                unpaid = order.payment_status is PaymentStatus.PENDING
        except OrderError:
            raise
        except SQLAlchemyError as exc:
            log_event("error", "order.status_change_failed", order_id=order_id, error=str(exc))
            raise PersistenceFailure("Could not update the order, please retry") from exc

        log_event(
            "info",
            "order.status_changed",
            order_id=order_id,
            from_status=current,
            to_status=target,
            actor_id=actor.user_id,
            actor_role=actor.role,
            changed_at=changed_at,
        )
        if refund:
            log_event("info", "order.refund_requested", order_id=order_id, amount=result["total_amount"])
        if target is OrderStatus.DELIVERED and unpaid:
            log_event("warning", "order.delivered_unpaid", order_id=order_id)
        return result

    # -- reads ------------------------------------------------------------

    def _read(self, fn):
        for attempt in (1, 2):
            try:
                with self._session_factory() as session:
                    return fn(session)
            except OperationalError as exc:
                if attempt == 2:
                    raise PersistenceFailure("Storage is unavailable") from exc
                log_event("warning", "db.read_retry", error=str(exc))
            except SQLAlchemyError as exc:
                raise PersistenceFailure("Storage is unavailable") from exc

    def list_orders(
        self,
        actor: Identity,
        *,
        status=None,
        date_from=None,
        date_to=None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        """Orders visible to ``actor``, newest first.

        Clients only ever see their own orders. ``date_to`` is inclusive
        when it is a plain date.
        """
        p, ps = normalize_paging(page, page_size)
        wanted = None
        if status:
            try:
                wanted = parse_enum(OrderStatus, status)
            except ValueError:
                raise InvalidOrderInput({"status": "unknown order status"}) from None
        start = _parse_day(date_from, "date_from")
        end = _parse_day(date_to, "date_to")
        if end is not None and end.time() == time.min:
            end = end + timedelta(days=1)

        def query(session):
            q = session.query(Order)
            if not actor.is_privileged:
                q = q.filter(Order.user_id == actor.user_id)
            if wanted is not None:
                q = q.filter(Order.status == wanted)
            if start is not None:
                q = q.filter(Order.created_at >= start)
            if end is not None:
                q = q.filter(Order.created_at < end)
            total = q.count()
            rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((p - 1) * ps).limit(ps).all()
            return {
                "items": [to_order_dto(r) for r in rows],
                "page": p,
                "page_size": ps,
                "total": total,
                "total_pages": total_pages(total, ps),
            }

        return self._read(query)

    def get_order(self, actor: Identity, order_id: int) -> Dict:
        def query(session):
            order = session.get(Order, order_id)
            # hidden orders look exactly like missing ones
            if order is None or not actor.can_see(order.user_id):
                raise OrderNotFound()
            return to_order_dto(order)

        return self._read(query)

    def list_events(self, actor: Identity, order_id: int) -> List[Dict]:
        if not actor.is_privileged:
            raise Forbidden()

        def query(session):
            order = session.get(Order, order_id)
            if order is None:
                raise OrderNotFound()
            return [to_order_event_dto(e) for e in order.events]

        return self._read(query)

    # -- administration ---------------------------------------------------

    def delete_order(self, actor: Identity, order_id: int) -> None:
        if not actor.is_admin:
            raise Forbidden()
        try:
            with self._session_factory() as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise OrderNotFound()
                number = order.order_number
                session.delete(order)
                session.flush()
        except OrderError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Could not delete the order") from exc
        log_event("info", "order.deleted", order_id=order_id, order_number=number, actor_id=actor.user_id)
        return None

    def dashboard(self, actor: Identity) -> Dict:
        """Order statistics shaped by the actor's role."""
        today = datetime.combine(utcnow().date(), time.min)

        def recent(q, limit=5):
            rows = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
            return [to_order_summary_dto(r) for r in rows]

        def query(session):
            if actor.is_admin:
                revenue = (
                    session.query(func.coalesce(func.sum(Order.total_amount), 0))
                    .filter(Order.payment_status == PaymentStatus.PAID)
                    .scalar()
                )
                return {
                    "dashboard": "admin",
                    "stats": {
                        "total_orders": session.query(Order).count(),
                        "total_revenue": f"{to_money(Decimal(str(revenue or 0))):.2f}",
                        "today_orders": session.query(Order).filter(Order.created_at >= today).count(),
                    },
                    "recent_orders": recent(session.query(Order)),
                }
            if actor.is_privileged:
                return {
                    "dashboard": "staff",
                    "stats": {
                        "pending_orders": session.query(Order).filter(Order.status.in_(OPEN_STATUSES)).count(),
                    },
                    "new_orders": recent(session.query(Order).filter(Order.status == OrderStatus.PENDING)),
                }
            own = session.query(Order).filter(Order.user_id == actor.user_id)
            return {
                "dashboard": "client",
                "stats": {"total_orders": own.count()},
                "recent_orders": recent(own),
            }

        return self._read(query)
