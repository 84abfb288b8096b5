from dataclasses import asdict
from datetime import datetime

from pydantic import Field

from src.ft_common.leones import leones_to_display
from src.ft_common.schemas import CamelModel
from src.ft_escrow.application.schemas import EscrowResponse
from src.ft_escrow.domain.models import Escrow
from src.ft_order.domain.models import Order
from src.ft_payment.domain.models import PaymentHandle, PaymentMethodInfo, ReconciliationOutcome


class InitializePaymentRequest(CamelModel):
    order_id: str
    payment_method: str
    phone_number: str = ""


class PaymentHandleResponse(CamelModel):
    order_id: str
    reference: str
    payment_id: str | None
    status: str
    amount: int
    currency: str
    attempt: int
    checkout_url: str | None = None
    expires_at: str | None = None

    @classmethod
    def from_handle(cls, handle: PaymentHandle) -> "PaymentHandleResponse":
        return cls(**asdict(handle))


class VerifyPaymentRequest(CamelModel):
    transaction_id: str = Field(min_length=1)
    admin_notes: str | None = None
    status: str | None = None


class ReconciliationResponse(CamelModel):
    order_id: str
    reference: str
    previous_status: str | None
    payment_status: str
    order_status: str
    changed: bool
    escrow_status: str | None = None
    source: str | None = None

    @classmethod
    def from_outcome(cls, outcome: ReconciliationOutcome) -> "ReconciliationResponse":
        return cls(**asdict(outcome))


class PaymentMethodResponse(CamelModel):
    id: str
    name: str
    type: str
    description: str

    @classmethod
    def from_info(cls, info: PaymentMethodInfo) -> "PaymentMethodResponse":
        return cls(**asdict(info))


class PaymentHistoryItem(CamelModel):
    order_id: str
    order_number: str
    order_status: str
    reference: str
    method: str
    status: str
    amount: int
    amount_display: str
    currency: str
    attempt: int
    transaction_id: str | None = None
    initiated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_order(cls, order: Order) -> "PaymentHistoryItem":
        p = order.payment
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.status,
            reference=p.reference,
            method=p.method,
            status=p.status,
            amount=p.amount,
            amount_display=leones_to_display(p.amount),
            currency=p.currency,
            attempt=p.attempt,
            transaction_id=p.transaction_id,
            initiated_at=p.initiated_at,
            completed_at=p.completed_at,
        )


class PaymentHistoryResponse(CamelModel):
    items: list[PaymentHistoryItem]
    next_cursor: str | None
    has_more: bool


class ReleaseEscrowRequest(CamelModel):
    release_reason: str | None = None


class RefundEscrowRequest(CamelModel):
    refund_reason: str | None = None


class EscrowSettlementResponse(CamelModel):
    order_id: str
    order_status: str
    escrow: EscrowResponse

    @classmethod
    def from_domain(cls, order: Order, escrow: Escrow) -> "EscrowSettlementResponse":
        return cls(
            order_id=order.id,
            order_status=order.status,
            escrow=EscrowResponse.from_domain(escrow),
        )
