from .base import Base
from .menu_item import MenuItem
from .order import Order
from .order_event import OrderEvent
from .order_item import OrderItem
from .payment import Payment
from .user import User

__all__ = ["Base", "MenuItem", "Order", "OrderEvent", "OrderItem", "Payment", "User"]
