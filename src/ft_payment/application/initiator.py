"""PaymentInitiator: starts a mobile-money charge for a pending order.

The order row stays locked (SELECT ... FOR UPDATE) across the provider call,
so two initiations for one order serialize and the second one sees the first
one's pending payment. The provider call is bounded by the client timeout.
On any failure the transaction rolls back and nothing is written.
"""

import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_common.datetime_utils import utc_now
from src.ft_common.enums import OrderStatus, PaymentMethod, PaymentStatus
from src.ft_common.errors import (
    OrderAlreadyPaidError,
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentAlreadyPendingError,
    PaymentValidationError,
)
from src.ft_common.leones import validate_amount
from src.ft_escrow.application.ledger import EscrowLedger
from src.ft_order.domain.models import PaymentRecord
from src.ft_order.domain.repository import OrderRepositoryProtocol
from src.ft_order.domain.transitions import can_transition
from src.ft_order.infrastructure.persistence import OrderRepository
from src.ft_payment.domain.models import PAYMENT_METHODS, PaymentHandle, PaymentMethodInfo
from src.ft_payment.domain.provider import PaymentProviderProtocol
from src.ft_payment.domain.reference import generate_payment_reference

logger = logging.getLogger("ft.payment")

PROVIDER_NAME = "monime"
PHONE_PATTERN = re.compile(r"^232[0-9]{8}$")
_METHODS = frozenset(m.value for m in PaymentMethod)


def validate_payment_request(method: str, phone: str) -> None:
    if method not in _METHODS:
        raise PaymentValidationError(
            "Invalid payment method. Only Orange Money, Afrimoney, and Africell Money are supported."
        )
    if not phone:
        raise PaymentValidationError("Phone number is required for mobile money payments")
    if not PHONE_PATTERN.match(phone):
        raise PaymentValidationError(
            "Invalid phone number format. Use the Sierra Leone format 232XXXXXXXX."
        )


def list_payment_methods() -> list[PaymentMethodInfo]:
    return list(PAYMENT_METHODS)


class PaymentInitiator:
    def __init__(
        self,
        provider: PaymentProviderProtocol,
        ledger: EscrowLedger | None = None,
        orders: OrderRepositoryProtocol | None = None,
    ) -> None:
        self._provider = provider
        self._ledger = ledger or EscrowLedger()
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()

    async def initiate(
        self,
        db: AsyncSession,
        order_id: str,
        buyer_id: str,
        method: str,
        phone: str,
    ) -> PaymentHandle:
        # Deployment problem, reported before touching the order
        self._provider.ensure_configured()
        validate_payment_request(method, phone)

        try:
            order = await self._orders.get_by_id(order_id, db, for_update=True)
            if order is None or order.buyer_id != buyer_id:
                raise OrderNotFoundError(order_id)
            if order.is_paid:
                raise OrderAlreadyPaidError(order_id)
            if order.payment is not None and order.payment.in_flight:
                raise PaymentAlreadyPendingError(order_id, order.payment.reference)
            if not can_transition(order.status, OrderStatus.PENDING_PAYMENT.value):
                raise OrderNotPayableError(order_id, order.status)
            try:
                validate_amount(order.total)
            except ValueError as exc:
                raise PaymentValidationError(str(exc)) from exc

            attempt = order.payment.attempt + 1 if order.payment else 1
            reference = generate_payment_reference(order.id, attempt)
            count = len(order.items)
            remote = await self._provider.create_mobile_money_payment(
                amount=order.total,
                phone=phone,
                method=method,
                reference=reference,
                description=f"FarmTrust Order - {count} item{'s' if count > 1 else ''}",
                customer_name=order.delivery.full_name,
            )

            now = utc_now()
            order.payment = PaymentRecord(
                provider=PROVIDER_NAME,
                method=method,
                reference=reference,
                status=PaymentStatus.PENDING.value,
                amount=order.total,
                currency=order.currency,
                customer_phone=phone,
                attempt=attempt,
                provider_payment_id=remote.payment_id,
                transaction_id=remote.transaction_id,
                checkout_url=remote.checkout_url,
                expires_at=remote.expires_at,
                initiated_at=now,
                updated_at=now,
            )
            order.status = OrderStatus.PENDING_PAYMENT.value
            order.payment_status = PaymentStatus.PENDING.value
            await self._orders.update(order, db)
            await self._ledger.create_pending(
                db,
                order_id=order.id,
                buyer_id=order.buyer_id,
                amount=order.total,
                currency=order.currency,
                reference=reference,
                provider_payment_id=remote.payment_id,
                actor=buyer_id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Payment initiated: order=%s reference=%s method=%s amount=%d attempt=%d",
            order.id, reference, method, order.total, attempt,
        )
        return PaymentHandle(
            order_id=order.id,
            reference=reference,
            payment_id=remote.payment_id,
            status=PaymentStatus.PENDING.value,
            amount=order.total,
            currency=order.currency,
            attempt=attempt,
            checkout_url=remote.checkout_url,
            expires_at=remote.expires_at,
        )
