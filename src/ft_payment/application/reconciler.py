"""PaymentReconciler: applies provider-reported payment status to an order.

Status arrives from three places: the signed provider webhook, a verify call
against the provider, or an operator. All of them end in `_apply`, which
locks the order row and runs in one transaction:

  local == remote            -> no-op
  local completed/cancelled  -> no-op, never regressed
  order closed               -> no-op, logged (completed/cancelled/refunded)
  completed                  -> order confirmed, escrow pending -> funded
  failed                     -> order payment_failed, escrow untouched
  cancelled                  -> order cancelled, stock released, pending escrow refunded
  processing / pending       -> payment_status only

Delivering the same status twice is therefore harmless.
"""

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.application.service import StockReservationService
from src.ft_common.datetime_utils import utc_now
from src.ft_common.enums import EscrowStatus, OrderStatus, PaymentStatus, ReconcileSource
from src.ft_common.errors import (
    AppError,
    EscrowAlreadyFundedError,
    InvalidWebhookSignatureError,
    OrderNotFoundError,
    PaymentValidationError,
    ProviderError,
)
from src.ft_common.notifier import LoggingNotifier, Notifier, notify_safely
from src.ft_escrow.application.ledger import SYSTEM_ACTOR, EscrowLedger
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_order.application.service import ensure_can_view
from src.ft_order.domain.models import Order
from src.ft_order.domain.repository import OrderRepositoryProtocol
from src.ft_order.domain.transitions import ensure_transition
from src.ft_order.infrastructure.persistence import OrderRepository
from src.ft_payment.domain.models import ProviderPayment, ReconciliationOutcome
from src.ft_payment.domain.provider import PaymentProviderProtocol

logger = logging.getLogger("ft.payment")

_FINAL_LOCAL = frozenset({PaymentStatus.COMPLETED.value, PaymentStatus.CANCELLED.value})
_CLOSED_ORDER = frozenset({
    OrderStatus.COMPLETED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REFUNDED.value,
})
_MANUAL_STATUSES = frozenset(s.value for s in PaymentStatus)

_TEMPLATES = {
    PaymentStatus.COMPLETED.value: "payment_confirmed",
    PaymentStatus.FAILED.value: "payment_failed",
    PaymentStatus.CANCELLED.value: "payment_cancelled",
}


class PaymentReconciler:
    def __init__(
        self,
        provider: PaymentProviderProtocol,
        ledger: EscrowLedger | None = None,
        stock: StockReservationService | None = None,
        orders: OrderRepositoryProtocol | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._provider = provider
        self._ledger = ledger or EscrowLedger()
        self._stock = stock or StockReservationService()
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()
        self._notifier: Notifier = notifier or LoggingNotifier()

    async def reconcile(
        self,
        db: AsyncSession,
        ref: str,
        source: str = ReconcileSource.VERIFY.value,
    ) -> ReconciliationOutcome:
        """Verify `ref` (reference or transaction id) with the provider and apply it.

        ProviderError propagates before anything is written.
        """
        order = await self._find(db, ref)
        remote = await self._provider.verify_payment(order.payment.reference)
        return await self._apply(db, order.id, remote, source, SYSTEM_ACTOR)

    async def handle_webhook(
        self, db: AsyncSession, raw_body: bytes, signature: str
    ) -> ReconciliationOutcome:
        if not self._provider.validate_webhook_signature(raw_body, signature):
            logger.warning("Rejected provider webhook with invalid signature")
            raise InvalidWebhookSignatureError()
        try:
            body = json.loads(raw_body)
        except ValueError as e:
            raise PaymentValidationError("Malformed webhook payload") from e
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise PaymentValidationError("Webhook payload has no data object")

        remote = ProviderPayment.from_provider(data)
        ref = remote.reference or remote.payment_id
        if not ref:
            raise PaymentValidationError("Webhook payload has no payment reference")
        logger.info(
            "Provider webhook: event=%s reference=%s status=%s",
            body.get("event"), ref, remote.status,
        )
        order = await self._find(db, ref)
        return await self._apply(
            db, order.id, remote, ReconcileSource.WEBHOOK.value, SYSTEM_ACTOR
        )

    async def manual_verification(
        self,
        db: AsyncSession,
        ref: str,
        admin_id: str,
        notes: str | None = None,
        status: str = PaymentStatus.COMPLETED.value,
    ) -> ReconciliationOutcome:
        """Operator-forced status; the provider is not consulted."""
        if status not in _MANUAL_STATUSES:
            raise PaymentValidationError(f"Unknown payment status: {status}")
        order = await self._find(db, ref)
        remote = ProviderPayment(
            payment_id=order.payment.provider_payment_id,
            reference=order.payment.reference,
            status=status,
            transaction_id=ref if ref != order.payment.reference else None,
        )
        logger.info(
            "Manual payment verification: order=%s status=%s admin=%s",
            order.id, status, admin_id,
        )
        return await self._apply(
            db, order.id, remote, ReconcileSource.MANUAL.value, admin_id, admin_notes=notes
        )

    async def poll_status(
        self, db: AsyncSession, ref: str, user: CurrentUser
    ) -> ReconciliationOutcome:
        """Buyer-facing status check; falls back to local state when the provider is down."""
        order = await self._find(db, ref)
        ensure_can_view(order, user)
        if self._provider.is_configured():
            try:
                remote = await self._provider.verify_payment(order.payment.reference)
            except ProviderError as e:
                logger.warning("Poll for %s served from local state: %s", ref, e.message)
            else:
                return await self._apply(
                    db, order.id, remote, ReconcileSource.POLL.value, SYSTEM_ACTOR
                )
        escrow = await self._ledger.get_by_order(db, order.id)
        return _outcome(order, order.payment.status, False, escrow.status if escrow else None,
                        ReconcileSource.POLL.value)

    async def sweep_pending_payments(
        self, db: AsyncSession, initiated_before: datetime, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Re-verify payments stuck in pending/processing since before the cutoff."""
        stale = await self._orders.list_stale_payments(initiated_before, limit, db)
        results: list[dict[str, Any]] = []
        for order in stale:
            reference = order.payment.reference
            try:
                outcome = await self.reconcile(db, reference, ReconcileSource.SWEEP.value)
            except AppError as e:
                logger.warning("Sweep could not reconcile %s: %s", reference, e.message)
                results.append({"order_id": order.id, "reference": reference, "error": e.message})
                continue
            results.append(
                {
                    "order_id": order.id,
                    "reference": reference,
                    "payment_status": outcome.payment_status,
                    "changed": outcome.changed,
                }
            )
        logger.info("Pending payment sweep: %d candidates", len(stale))
        return results

    async def _find(self, db: AsyncSession, ref: str) -> Order:
        order = await self._orders.get_by_payment_ref(ref, db)
        if order is None or order.payment is None:
            raise OrderNotFoundError(ref)
        return order

    async def _apply(
        self,
        db: AsyncSession,
        order_id: str,
        remote: ProviderPayment,
        source: str,
        actor: str,
        admin_notes: str | None = None,
    ) -> ReconciliationOutcome:
        try:
            order = await self._orders.get_by_id(order_id, db, for_update=True)
            if order is None or order.payment is None:
                raise OrderNotFoundError(order_id)
            payment = order.payment
            previous = payment.status
            target = remote.status
            escrow = await self._ledger.get_by_order(db, order.id)

            if previous == target or previous in _FINAL_LOCAL:
                if previous != target:
                    logger.warning(
                        "Ignoring %s status %s for order %s, payment already %s",
                        source, target, order.id, previous,
                    )
                await db.commit()
                return _outcome(order, previous, False, escrow.status if escrow else None, source)
            if order.status in _CLOSED_ORDER:
                logger.warning(
                    "Ignoring %s status %s for order %s, order already %s (payment %s)",
                    source, target, order.id, order.status, previous,
                )
                await db.commit()
                return _outcome(order, previous, False, escrow.status if escrow else None, source)

            now = utc_now()
            payment.status = target
            payment.updated_at = now
            payment.transaction_id = remote.transaction_id or payment.transaction_id
            payment.provider_payment_id = remote.payment_id or payment.provider_payment_id
            if admin_notes:
                payment.admin_notes = admin_notes
            order.payment_status = target

            if target == PaymentStatus.COMPLETED.value:
                ensure_transition(order.status, OrderStatus.CONFIRMED.value)
                order.status = OrderStatus.CONFIRMED.value
                payment.completed_at = now
                order.confirmed_at = now
                if escrow is None:
                    logger.error("No escrow for paid order %s", order.id)
                else:
                    try:
                        escrow = await self._ledger.fund(
                            db, escrow.id, actor, remote.payment_id
                        )
                    except EscrowAlreadyFundedError:
                        logger.info("Escrow %s already funded", escrow.id)
            elif target == PaymentStatus.FAILED.value:
                ensure_transition(order.status, OrderStatus.PAYMENT_FAILED.value)
                order.status = OrderStatus.PAYMENT_FAILED.value
            elif target == PaymentStatus.CANCELLED.value:
                ensure_transition(order.status, OrderStatus.CANCELLED.value)
                order.status = OrderStatus.CANCELLED.value
                order.cancelled_at = now
                order.cancel_reason = "Payment cancelled"
                await self._stock.release_all(db, order.stock_lines)
                if escrow is not None and escrow.status == EscrowStatus.PENDING.value:
                    escrow = await self._ledger.refund(
                        db, escrow.id, "payment cancelled", actor
                    )

            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Payment reconciled via %s: order=%s %s -> %s (order %s)",
            source, order.id, previous, target, order.status,
        )
        template = _TEMPLATES.get(target)
        if template:
            await notify_safely(
                self._notifier,
                template,
                order.buyer_id,
                {"order_id": order.id, "order_number": order.order_number,
                 "reference": payment.reference, "amount": payment.amount},
            )
        return _outcome(order, previous, True, escrow.status if escrow else None, source)


def _outcome(
    order: Order, previous: str | None, changed: bool, escrow_status: str | None, source: str
) -> ReconciliationOutcome:
    return ReconciliationOutcome(
        order_id=order.id,
        reference=order.payment.reference,
        previous_status=previous,
        payment_status=order.payment.status,
        order_status=order.status,
        changed=changed,
        escrow_status=escrow_status,
        source=source,
    )
