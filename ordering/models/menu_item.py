from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, func
from .base import Base


class MenuItem(Base):
    """Catalog entry; read-only from the order workflow's point of view."""

    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(128), nullable=True)
    price = Column(Numeric(8, 2), nullable=False)
    available = Column(Boolean, nullable=False, default=True)
    popular = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
