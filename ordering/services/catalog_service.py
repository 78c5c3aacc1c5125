from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..models.menu_item import MenuItem


@dataclass(frozen=True)
class CatalogEntry:
    menu_item_id: int
    name: str
    price: Decimal
    available: bool


class MenuCatalog:
    """Catalog lookup over the menu table.

    Lookups run on the caller's session so the price read and the order
    insert belong to the same transaction.
    """

    def lookup(self, session: Session, menu_item_id: int) -> Optional[CatalogEntry]:
        row = session.get(MenuItem, menu_item_id)
        if row is None:
            return None
        return CatalogEntry(
            menu_item_id=row.id,
            name=row.name,
            price=Decimal(row.price),
            available=bool(row.available),
        )
