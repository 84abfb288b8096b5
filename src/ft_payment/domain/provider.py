"""Payment provider interface as the initiator and reconciler see it."""

from typing import Protocol

from src.ft_payment.domain.models import ProviderPayment


class PaymentProviderProtocol(Protocol):
    def is_configured(self) -> bool: ...

    def ensure_configured(self) -> None: ...

    async def create_mobile_money_payment(
        self,
        amount: int,
        phone: str,
        method: str,
        reference: str,
        description: str,
        customer_name: str,
    ) -> ProviderPayment: ...

    async def verify_payment(self, reference: str) -> ProviderPayment: ...

    def validate_webhook_signature(self, payload: bytes, signature: str) -> bool: ...
