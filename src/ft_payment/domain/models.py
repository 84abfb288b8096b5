"""Payment domain models: provider-neutral value objects."""

from dataclasses import dataclass
from typing import Any

from src.ft_common.enums import PaymentMethod, PaymentStatus

_KNOWN_STATUSES = frozenset(s.value for s in PaymentStatus)


def normalize_status(raw: Any) -> str:
    """Map a provider status onto PaymentStatus; anything unknown is pending."""
    value = str(raw or "").strip().lower()
    return value if value in _KNOWN_STATUSES else PaymentStatus.PENDING.value


@dataclass(frozen=True)
class ProviderPayment:
    """A payment as the provider reports it (create, verify or webhook)."""
    payment_id: str | None
    reference: str | None
    status: str
    amount: int | None = None
    currency: str | None = None
    fee: int | None = None
    checkout_url: str | None = None
    expires_at: str | None = None
    transaction_id: str | None = None

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> "ProviderPayment":
        amount = data.get("amount")
        fee = data.get("fee")
        return cls(
            payment_id=data.get("id") or data.get("payment_id"),
            reference=data.get("reference"),
            status=normalize_status(data.get("status")),
            amount=int(amount) if amount is not None else None,
            currency=data.get("currency"),
            fee=int(fee) if fee is not None else None,
            checkout_url=data.get("checkout_url") or data.get("payment_url"),
            expires_at=data.get("expires_at"),
            transaction_id=data.get("transaction_id"),
        )


@dataclass(frozen=True)
class PaymentHandle:
    """What the buyer needs to complete an initiated payment."""
    order_id: str
    reference: str
    payment_id: str | None
    status: str
    amount: int
    currency: str
    attempt: int
    checkout_url: str | None = None
    expires_at: str | None = None


@dataclass(frozen=True)
class ReconciliationOutcome:
    order_id: str
    reference: str
    previous_status: str | None
    payment_status: str
    order_status: str
    changed: bool
    escrow_status: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class PaymentMethodInfo:
    id: str
    name: str
    type: str
    description: str


PAYMENT_METHODS: tuple[PaymentMethodInfo, ...] = (
    PaymentMethodInfo(
        PaymentMethod.ORANGE_MONEY.value, "Orange Money", "mobile_money",
        "Pay with Orange Money mobile money",
    ),
    PaymentMethodInfo(
        PaymentMethod.AFRIMONEY.value, "Afrimoney", "mobile_money",
        "Pay with Afrimoney mobile money",
    ),
    PaymentMethodInfo(
        PaymentMethod.AFRICELL_MONEY.value, "Africell Money", "mobile_money",
        "Pay with Africell Money mobile money",
    ),
)
