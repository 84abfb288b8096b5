"""Order domain model: pure dataclasses, no SQLAlchemy dependency.

items, delivery and payment are embedded documents (JSONB columns); the
to_dict/from_dict pairs define their stored shape.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from src.ft_common.enums import OrderStatus, PaymentStatus

_PAID_STATUSES = frozenset(
    s.value
    for s in (
        OrderStatus.PAID,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
        OrderStatus.DISPUTED,
        OrderStatus.REFUNDED,
    )
)


def _parse_dt(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _dump_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class OrderItem:
    product_id: str
    vendor_id: str
    name: str
    quantity: int
    unit_price: int  # snapshot of the catalog price at reservation

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "subtotal": self.subtotal}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=d["product_id"],
            vendor_id=d.get("vendor_id", ""),
            name=d.get("name", ""),
            quantity=int(d["quantity"]),
            unit_price=int(d["unit_price"]),
        )


@dataclass
class DeliveryAddress:
    first_name: str
    last_name: str
    phone: str
    address: str
    district: str
    city: str = ""
    notes: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "DeliveryAddress":
        return cls(**{k: d.get(k, "") or "" for k in cls.__dataclass_fields__})


@dataclass
class PaymentRecord:
    """The order's payment sub-record. Mutated only by initiation and reconciliation."""
    provider: str
    method: str
    reference: str
    status: str                  # PaymentStatus value
    amount: int                  # whole Leone
    currency: str
    customer_phone: str
    attempt: int = 1
    provider_payment_id: str | None = None
    transaction_id: str | None = None
    checkout_url: str | None = None
    expires_at: str | None = None
    admin_notes: str | None = None
    initiated_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def in_flight(self) -> bool:
        return self.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for key in ("initiated_at", "completed_at", "updated_at"):
            d[key] = _dump_dt(d[key])
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "PaymentRecord":
        data = {k: d.get(k) for k in cls.__dataclass_fields__ if k in d}
        for key in ("initiated_at", "completed_at", "updated_at"):
            if key in data:
                data[key] = _parse_dt(data[key])
        return cls(**data)


@dataclass
class Order:
    id: str
    order_number: str
    buyer_id: str
    items: list[OrderItem]
    delivery: DeliveryAddress
    total: int                   # authoritative, Σ unit_price × quantity
    currency: str
    status: str = OrderStatus.PENDING.value
    payment_status: str | None = None
    payment: PaymentRecord | None = None
    client_total: int | None = None   # as sent by the client, display only
    cancel_reason: str | None = None
    dispute_reason: str | None = None
    confirmed_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def vendor_ids(self) -> list[str]:
        return sorted({i.vendor_id for i in self.items if i.vendor_id})

    @property
    def computed_total(self) -> int:
        return sum(i.subtotal for i in self.items)

    @property
    def is_paid(self) -> bool:
        return (
            self.status in _PAID_STATUSES
            or self.payment_status == PaymentStatus.COMPLETED
        )

    @property
    def stock_lines(self) -> list[tuple[str, int]]:
        return [(i.product_id, i.quantity) for i in self.items]
