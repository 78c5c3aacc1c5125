from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from .base import Base


class OrderEvent(Base):
    """Status change observation consumed by dashboards and reporting."""

    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(32), nullable=False)
    to_status = Column(String(32), nullable=False)
    actor_id = Column(Integer, nullable=False)
    actor_role = Column(String(16), nullable=False)
    created_at = Column(DateTime, nullable=False)

    order = relationship("Order", back_populates="events")
