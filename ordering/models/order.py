from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship
from .base import Base
from ..services.status import OrderStatus, OrderType, PaymentStatus


def _enum_column(enum_cls, name: str) -> Enum:
    # store the lower-case values, not the member names
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_number = Column(String(32), nullable=False, unique=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(_enum_column(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING)
    order_type = Column(_enum_column(OrderType, "order_type"), nullable=False)
    delivery_address = Column(Text, nullable=True)
    payment_method = Column(String(100), nullable=True)
    payment_status = Column(
        _enum_column(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING
    )
    refund_requested = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    estimated_delivery_time = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    payments = relationship(
        "Payment", back_populates="order", cascade="all, delete-orphan", order_by="Payment.id"
    )
    events = relationship(
        "OrderEvent", back_populates="order", cascade="all, delete-orphan", order_by="OrderEvent.id"
    )
