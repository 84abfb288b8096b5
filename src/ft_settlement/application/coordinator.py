"""SettlementCoordinator: the order payment & escrow lifecycle.

Phase 1 (create_order) reserves stock and persists the order; phase 2
(initiate_payment) asks the provider for a charge. Between them and the
reconciliation the order waits in pending_payment. Delivery confirmation,
dispute resolution and auto-release drive the escrow to its final state.

The coordinator holds no state of its own; it composes the order builder,
payment initiator/reconciler, escrow ledger and stock service, and is built
once in the application lifespan.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.application.service import StockReservationService
from src.ft_common.datetime_utils import utc_now
from src.ft_common.enums import (
    DisputeOutcome,
    EscrowStatus,
    OrderStatus,
    PaymentStatus,
    ReconcileSource,
    ReleaseReason,
)
from src.ft_common.errors import (
    AppError,
    EscrowNotFoundError,
    EscrowNotFundedError,
    ForbiddenError,
    InvalidOrderTransitionError,
    OrderNotCancellableError,
    OrderNotFoundError,
    OrderValidationError,
)
from src.ft_common.notifier import LoggingNotifier, Notifier, notify_safely
from src.ft_escrow.application.ledger import EscrowLedger
from src.ft_escrow.domain.models import Escrow, EscrowStats
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_order.application.schemas import CreateOrderRequest, OrderListResponse
from src.ft_order.application.service import OrderBuilder, ensure_can_view
from src.ft_order.domain.models import Order
from src.ft_order.domain.repository import OrderRepositoryProtocol
from src.ft_order.domain.transitions import (
    CANCELLABLE_STATUSES,
    FULFILMENT_STATUSES,
    SETTLEABLE_STATUSES,
    ensure_transition,
)
from src.ft_order.infrastructure.persistence import OrderRepository
from src.ft_payment.application.initiator import PaymentInitiator, list_payment_methods
from src.ft_payment.application.reconciler import PaymentReconciler
from src.ft_payment.application.schemas import PaymentHistoryItem, PaymentHistoryResponse
from src.ft_payment.domain.models import (
    PaymentHandle,
    PaymentMethodInfo,
    ReconciliationOutcome,
)
from src.ft_payment.domain.provider import PaymentProviderProtocol

logger = logging.getLogger("ft.settlement")


class SettlementCoordinator:
    def __init__(
        self,
        provider: PaymentProviderProtocol,
        notifier: Notifier | None = None,
        orders: OrderRepositoryProtocol | None = None,
        ledger: EscrowLedger | None = None,
        stock: StockReservationService | None = None,
        auto_release_days: int = 3,
        pending_sweep_minutes: int = 15,
    ) -> None:
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()
        self._notifier: Notifier = notifier or LoggingNotifier()
        self.ledger = ledger or EscrowLedger()
        self._stock = stock or StockReservationService()
        self._builder = OrderBuilder(self._orders, self._stock)
        self._initiator = PaymentInitiator(provider, self.ledger, self._orders)
        self._reconciler = PaymentReconciler(
            provider, self.ledger, self._stock, self._orders, self._notifier
        )
        self._auto_release_after = timedelta(days=auto_release_days)
        self._pending_sweep_after = timedelta(minutes=pending_sweep_minutes)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(
        self, db: AsyncSession, buyer_id: str, req: CreateOrderRequest
    ) -> Order:
        order = await self._builder.create_order(db, buyer_id, req)
        await notify_safely(
            self._notifier, "order_placed", buyer_id,
            {"order_id": order.id, "order_number": order.order_number, "total": order.total},
        )
        return order

    async def get_order(self, db: AsyncSession, order_id: str, user: CurrentUser) -> Order:
        return await self._builder.get_order(db, order_id, user)

    async def list_orders(
        self,
        db: AsyncSession,
        user: CurrentUser,
        status: str | None,
        limit: int,
        cursor: str | None,
    ) -> OrderListResponse:
        return await self._builder.list_orders(db, user, status, limit, cursor)

    async def cancel_order(
        self,
        db: AsyncSession,
        order_id: str,
        user: CurrentUser,
        reason: str | None = None,
    ) -> Order:
        """Cancel before payment: stock goes back, a pending escrow is refunded.

        A funded escrow is never touched here; money already held goes back
        through refund_order_escrow or dispute resolution.
        """
        try:
            order = await self._locked_order(db, order_id)
            if not (user.is_admin or order.buyer_id == user.user_id):
                raise ForbiddenError("Only the buyer or an admin can cancel this order")
            if order.status not in CANCELLABLE_STATUSES:
                raise OrderNotCancellableError(order_id, order.status)
            if order.payment is not None and order.payment.in_flight:
                # A charge may still complete; reconcile it first
                raise OrderNotCancellableError(order_id, f"{order.status}/payment {order.payment.status}")

            now = utc_now()
            order.status = OrderStatus.CANCELLED.value
            order.cancelled_at = now
            order.cancel_reason = reason or "Cancelled by " + ("admin" if user.is_admin else "buyer")
            await self._stock.release_all(db, order.stock_lines)

            escrow = await self.ledger.get_by_order(db, order.id)
            if escrow is not None and escrow.status == EscrowStatus.PENDING.value:
                await self.ledger.refund(db, escrow.id, "order cancelled", user.user_id)
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Order %s cancelled by %s", order.order_number, user.user_id)
        await notify_safely(
            self._notifier, "order_cancelled", order.buyer_id,
            {"order_id": order.id, "order_number": order.order_number, "reason": order.cancel_reason},
        )
        return order

    async def update_order_status(
        self, db: AsyncSession, order_id: str, status: str, user: CurrentUser
    ) -> Order:
        """Vendor/admin fulfilment progress: processing, shipped, delivered."""
        if status not in FULFILMENT_STATUSES:
            raise OrderValidationError(
                f"Status must be one of: {', '.join(sorted(FULFILMENT_STATUSES))}"
            )
        try:
            order = await self._locked_order(db, order_id)
            if not (user.is_admin or (user.is_vendor and user.user_id in order.vendor_ids)):
                raise ForbiddenError("Only the order's vendor or an admin can update it")
            ensure_transition(order.status, status)
            order.status = status
            if status == OrderStatus.DELIVERED.value:
                order.delivered_at = utc_now()
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Order %s -> %s by %s", order.order_number, status, user.user_id)
        await notify_safely(
            self._notifier, f"order_{status}", order.buyer_id,
            {"order_id": order.id, "order_number": order.order_number},
        )
        return order

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def initiate_payment(
        self, db: AsyncSession, order_id: str, buyer_id: str, method: str, phone: str
    ) -> PaymentHandle:
        return await self._initiator.initiate(db, order_id, buyer_id, method, phone)

    async def reconcile(
        self, db: AsyncSession, ref: str, source: str = ReconcileSource.VERIFY.value
    ) -> ReconciliationOutcome:
        return await self._reconciler.reconcile(db, ref, source)

    async def verify_payment(
        self,
        db: AsyncSession,
        ref: str,
        user: CurrentUser,
        admin_notes: str | None = None,
        status: str | None = None,
    ) -> ReconciliationOutcome:
        """POST verify: admins with notes force a status, everyone else re-verifies."""
        if user.is_admin and admin_notes:
            return await self._reconciler.manual_verification(
                db, ref, user.user_id, admin_notes, status or PaymentStatus.COMPLETED.value
            )
        order = await self._builder.get_order_by_reference(db, ref)
        ensure_can_view(order, user)
        return await self._reconciler.reconcile(db, ref)

    async def handle_webhook(
        self, db: AsyncSession, raw_body: bytes, signature: str
    ) -> ReconciliationOutcome:
        return await self._reconciler.handle_webhook(db, raw_body, signature)

    async def manual_verification(
        self,
        db: AsyncSession,
        ref: str,
        admin_id: str,
        notes: str | None = None,
        status: str = PaymentStatus.COMPLETED.value,
    ) -> ReconciliationOutcome:
        return await self._reconciler.manual_verification(db, ref, admin_id, notes, status)

    async def poll_status(
        self, db: AsyncSession, ref: str, user: CurrentUser
    ) -> ReconciliationOutcome:
        return await self._reconciler.poll_status(db, ref, user)

    async def sweep_pending_payments(
        self, db: AsyncSession, now: datetime | None = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        cutoff = (now or utc_now()) - self._pending_sweep_after
        return await self._reconciler.sweep_pending_payments(db, cutoff, limit)

    def list_payment_methods(self) -> list[PaymentMethodInfo]:
        return list_payment_methods()

    async def payment_history(
        self, db: AsyncSession, user: CurrentUser, limit: int, cursor: str | None
    ) -> PaymentHistoryResponse:
        buyer_id = None if user.is_admin else user.user_id
        orders = await self._orders.list_payments(buyer_id, limit + 1, cursor, db)
        has_more = len(orders) > limit
        page = orders[:limit]
        return PaymentHistoryResponse(
            items=[PaymentHistoryItem.from_order(o) for o in page],
            next_cursor=page[-1].id if has_more and page else None,
            has_more=has_more,
        )

    # ------------------------------------------------------------------
    # Escrow settlement
    # ------------------------------------------------------------------

    async def get_escrow_status(
        self, db: AsyncSession, order_id: str, user: CurrentUser
    ) -> Escrow:
        await self._builder.get_order(db, order_id, user)
        escrow = await self.ledger.get_by_order(db, order_id)
        if escrow is None:
            raise EscrowNotFoundError(order_id)
        return escrow

    async def on_delivered(
        self, db: AsyncSession, order_id: str, user: CurrentUser
    ) -> Order:
        """Buyer confirms receipt: order completed, vendor gets paid."""
        try:
            order = await self._locked_order(db, order_id)
            if not (user.is_admin or order.buyer_id == user.user_id):
                raise ForbiddenError("Only the buyer can confirm delivery")
            if order.status not in (
                OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value
            ):
                raise InvalidOrderTransitionError(order.status, OrderStatus.COMPLETED.value)
            escrow = await self._funded_escrow(db, order)

            now = utc_now()
            order.delivered_at = order.delivered_at or now
            order.status = OrderStatus.COMPLETED.value
            order.completed_at = now
            await self.ledger.release(
                db, escrow.id, ReleaseReason.BUYER_CONFIRMATION.value, user.user_id
            )
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Delivery confirmed for %s, escrow %s released", order.order_number, escrow.id)
        await self._notify_vendors(order, "escrow_released", {"amount": escrow.amount})
        return order

    async def release_order_escrow(
        self,
        db: AsyncSession,
        order_id: str,
        user: CurrentUser,
        reason: str | None = None,
    ) -> tuple[Order, Escrow]:
        """Pay the vendor outside the delivery flow: the buyer or an admin."""
        try:
            order = await self._locked_order(db, order_id)
            if not (user.is_admin or order.buyer_id == user.user_id):
                raise ForbiddenError("Only the buyer or an admin can release this escrow")
            if order.status not in SETTLEABLE_STATUSES:
                raise InvalidOrderTransitionError(order.status, OrderStatus.COMPLETED.value)
            escrow = await self._funded_escrow(db, order)

            code = (
                ReleaseReason.ADMIN_RELEASE.value
                if user.is_admin
                else ReleaseReason.BUYER_CONFIRMATION.value
            )
            escrow = await self.ledger.release(
                db, escrow.id, code, user.user_id, _clean(reason) or "Delivery confirmed"
            )
            order.status = OrderStatus.COMPLETED.value
            order.completed_at = utc_now()
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Escrow %s for %s released by %s", escrow.id, order.order_number, user.user_id)
        await self._notify_vendors(order, "escrow_released", {"amount": escrow.amount})
        return order, escrow

    async def refund_order_escrow(
        self,
        db: AsyncSession,
        order_id: str,
        user: CurrentUser,
        reason: str | None,
    ) -> tuple[Order, Escrow]:
        """Return held money to the buyer outside a dispute: the vendor or an admin."""
        reason = _clean(reason)
        if not reason:
            raise OrderValidationError("A refund reason is required")
        try:
            order = await self._locked_order(db, order_id)
            if not (user.is_admin or (user.is_vendor and user.user_id in order.vendor_ids)):
                raise ForbiddenError("Only the order's vendor or an admin can refund this escrow")
            if order.status not in SETTLEABLE_STATUSES:
                raise InvalidOrderTransitionError(order.status, OrderStatus.REFUNDED.value)
            escrow = await self._funded_escrow(db, order)

            escrow = await self.ledger.refund(db, escrow.id, reason, user.user_id)
            order.status = OrderStatus.REFUNDED.value
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Escrow %s for %s refunded by %s", escrow.id, order.order_number, user.user_id)
        await notify_safely(
            self._notifier, "escrow_refunded", order.buyer_id,
            {"order_id": order.id, "order_number": order.order_number,
             "amount": escrow.amount, "reason": reason},
        )
        return order, escrow

    async def list_escrows(
        self,
        db: AsyncSession,
        user: CurrentUser,
        status: str | None,
        limit: int,
        cursor: str | None,
    ) -> list[Escrow]:
        """Escrows the caller is party to; admins see all."""
        return await self.ledger.list_escrows(db, status, limit, cursor, **_escrow_scope(user))

    async def escrow_stats(self, db: AsyncSession, user: CurrentUser) -> EscrowStats:
        return await self.ledger.get_stats(db, **_escrow_scope(user))

    async def open_dispute(
        self, db: AsyncSession, order_id: str, user: CurrentUser, reason: str
    ) -> Order:
        if not reason or not reason.strip():
            raise OrderValidationError("A dispute reason is required")
        try:
            order = await self._locked_order(db, order_id)
            if order.buyer_id != user.user_id and not user.is_admin:
                raise ForbiddenError("Only the buyer can open a dispute")
            ensure_transition(order.status, OrderStatus.DISPUTED.value)
            await self._funded_escrow(db, order)
            order.status = OrderStatus.DISPUTED.value
            order.dispute_reason = reason.strip()
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Dispute opened on %s by %s", order.order_number, user.user_id)
        await self._notify_vendors(order, "dispute_opened", {"reason": order.dispute_reason})
        return order

    async def on_dispute_resolved(
        self,
        db: AsyncSession,
        order_id: str,
        outcome: str,
        admin_id: str,
        notes: str | None = None,
    ) -> Order:
        if outcome == DisputeOutcome.RELEASE_TO_VENDOR.value:
            target = OrderStatus.COMPLETED.value
        elif outcome == DisputeOutcome.REFUND_TO_BUYER.value:
            target = OrderStatus.REFUNDED.value
        else:
            raise OrderValidationError(f"Unknown dispute outcome: {outcome}")

        try:
            order = await self._locked_order(db, order_id)
            if order.status != OrderStatus.DISPUTED.value:
                raise InvalidOrderTransitionError(order.status, target)
            escrow = await self._funded_escrow(db, order)
            if target == OrderStatus.COMPLETED.value:
                await self.ledger.release(
                    db, escrow.id, ReleaseReason.DISPUTE_RESOLUTION.value, admin_id, notes
                )
                order.completed_at = utc_now()
            else:
                await self.ledger.refund(db, escrow.id, "dispute resolved for buyer", admin_id, notes)
            order.status = target
            await self._orders.update(order, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Dispute on %s resolved: %s by %s", order.order_number, outcome, admin_id)
        await notify_safely(
            self._notifier, "dispute_resolved", order.buyer_id,
            {"order_id": order.id, "order_number": order.order_number, "outcome": outcome},
        )
        await self._notify_vendors(order, "dispute_resolved", {"outcome": outcome})
        return order

    async def process_auto_release(
        self, db: AsyncSession, now: datetime | None = None, limit: int = 100
    ) -> dict[str, Any]:
        """Release funded escrows whose order was delivered long enough ago.

        Each escrow is its own transaction; a failure is reported in the
        result and the batch carries on.
        """
        cutoff = (now or utc_now()) - self._auto_release_after
        candidates = await self.ledger.list_release_candidates(db, cutoff, limit)
        released: list[str] = []
        failed: list[dict[str, str]] = []
        for escrow in candidates:
            try:
                order = await self._locked_order(db, escrow.order_id)
                if order.status != OrderStatus.DELIVERED.value:
                    raise InvalidOrderTransitionError(order.status, OrderStatus.COMPLETED.value)
                await self.ledger.release(
                    db, escrow.id, ReleaseReason.AUTO_RELEASE.value, "system"
                )
                order.status = OrderStatus.COMPLETED.value
                order.completed_at = utc_now()
                await self._orders.update(order, db)
                await db.commit()
            except AppError as e:
                await db.rollback()
                logger.warning("Auto-release skipped escrow %s: %s", escrow.id, e.message)
                failed.append({"escrow_id": escrow.id, "error": e.message})
                continue
            released.append(escrow.id)
            await self._notify_vendors(order, "escrow_released", {"amount": escrow.amount})

        logger.info(
            "Auto-release run: cutoff=%s candidates=%d released=%d failed=%d",
            cutoff.isoformat(), len(candidates), len(released), len(failed),
        )
        return {
            "cutoff": cutoff.isoformat(),
            "processed": len(candidates),
            "released": released,
            "failed": failed,
        }

    # ------------------------------------------------------------------

    async def _locked_order(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._orders.get_by_id(order_id, db, for_update=True)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _funded_escrow(self, db: AsyncSession, order: Order) -> Escrow:
        escrow = await self.ledger.get_by_order(db, order.id)
        if escrow is None:
            raise EscrowNotFoundError(order.id)
        if escrow.status != EscrowStatus.FUNDED.value:
            raise EscrowNotFundedError(escrow.id, escrow.status)
        return escrow

    async def _notify_vendors(
        self, order: Order, template: str, extra: dict[str, Any]
    ) -> None:
        context = {"order_id": order.id, "order_number": order.order_number, **extra}
        for vendor_id in order.vendor_ids:
            await notify_safely(self._notifier, template, vendor_id, context)


def _clean(text: str | None) -> str:
    return (text or "").strip()


def _escrow_scope(user: CurrentUser) -> dict[str, str | None]:
    if user.is_admin:
        return {"buyer_id": None, "vendor_id": None}
    if user.is_vendor:
        return {"buyer_id": None, "vendor_id": user.user_id}
    return {"buyer_id": user.user_id, "vendor_id": None}
