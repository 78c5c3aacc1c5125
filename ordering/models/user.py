from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship
from .base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(16), nullable=False, default="client")  # admin | staff | client
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    orders = relationship("Order", back_populates="user")
