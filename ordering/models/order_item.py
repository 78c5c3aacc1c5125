from sqlalchemy import Column, ForeignKey, Integer, JSON, Numeric, Text
from sqlalchemy.orm import relationship
from .base import Base


class OrderItem(Base):
    """One priced line of an order; prices are snapshots taken at checkout."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # reference only, catalog rows are owned elsewhere
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    customizations = Column(JSON, nullable=True)
    special_instructions = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
