"""Domain models for ft_catalog: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Product:
    id: str
    vendor_id: str
    name: str
    price: int          # whole Leone
    quantity: int       # units in stock
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def available(self) -> bool:
        return self.is_active and self.quantity > 0


@dataclass(frozen=True)
class Reservation:
    """Stock taken for one order line. `price` is the catalog price at reservation."""
    product_id: str
    vendor_id: str
    name: str
    quantity: int
    price: int
    remaining_stock: int
