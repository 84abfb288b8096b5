from dataclasses import asdict
from datetime import datetime

from src.ft_common.leones import leones_to_display
from src.ft_common.schemas import CamelModel
from src.ft_escrow.domain.models import Escrow, EscrowEvent, EscrowStats


class EscrowResponse(CamelModel):
    id: str
    order_id: str
    buyer_id: str
    amount: int
    amount_display: str
    currency: str
    status: str
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

    @classmethod
    def from_domain(cls, escrow: Escrow) -> "EscrowResponse":
        return cls(**asdict(escrow), amount_display=leones_to_display(escrow.amount))


class EscrowListResponse(CamelModel):
    items: list[EscrowResponse]
    next_cursor: str | None
    has_more: bool


class EscrowEventResponse(CamelModel):
    id: int | None
    escrow_id: str
    order_id: str
    from_status: str | None
    to_status: str
    actor: str
    reason: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, event: EscrowEvent) -> "EscrowEventResponse":
        return cls(**asdict(event))


class EscrowStatsResponse(CamelModel):
    total_escrows: int
    total_amount: int
    pending_amount: int
    funded_amount: int
    release_rate: str
    refund_rate: str
    count_by_status: dict[str, int]
    amount_by_status: dict[str, int]

    @classmethod
    def from_domain(cls, stats: EscrowStats) -> "EscrowStatsResponse":
        return cls(**asdict(stats))


class ResolveDisputeRequest(CamelModel):
    outcome: str
    notes: str | None = None
