"""Escrow domain models: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.ft_common.enums import EscrowStatus


@dataclass
class Escrow:
    id: str
    order_id: str
    buyer_id: str
    amount: int                  # whole Leone, fixed at creation
    currency: str
    status: str = EscrowStatus.PENDING.value
    payment_reference: str | None = None
    provider_payment_id: str | None = None
    funded_at: datetime | None = None
    released_at: datetime | None = None
    refunded_at: datetime | None = None
    release_reason: str | None = None
    refund_reason: str | None = None
    admin_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class EscrowEvent:
    """One row of the append-only escrow audit trail."""
    escrow_id: str
    order_id: str
    from_status: str | None
    to_status: str
    actor: str
    reason: str | None = None
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class EscrowStats:
    total_escrows: int
    total_amount: int
    pending_amount: int
    funded_amount: int
    release_rate: str            # percent, two decimals
    refund_rate: str
    count_by_status: dict[str, int] = field(default_factory=dict)
    amount_by_status: dict[str, int] = field(default_factory=dict)
