from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, JSON, Numeric, String, func
from sqlalchemy.orm import relationship
from .base import Base
from ..services.status import PaymentOutcome


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_gateway = Column(String(64), nullable=True)
    transaction_id = Column(String(128), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(
            PaymentOutcome,
            name="payment_outcome",
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    payment_method = Column(String(100), nullable=False)
    paid_at = Column(DateTime, nullable=True)
    details = Column(JSON, nullable=True)  # opaque gateway metadata
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    order = relationship("Order", back_populates="payments")
