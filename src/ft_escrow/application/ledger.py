"""EscrowLedger: the only writer of escrow state.

Runs inside the caller's transaction: nothing here commits. Each transition
is a guarded UPDATE followed by an escrow_events row; when the guard refuses,
the current row decides which error is raised.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_common.enums import EscrowStatus
from src.ft_common.errors import EscrowNotFoundError
from src.ft_common.id_generator import generate_id
from src.ft_common.leones import percentage, validate_amount
from src.ft_escrow.domain.models import Escrow, EscrowEvent, EscrowStats
from src.ft_escrow.domain.repository import EscrowRepositoryProtocol
from src.ft_escrow.domain.state_machine import rejection
from src.ft_escrow.infrastructure.persistence import EscrowRepository

logger = logging.getLogger("ft.escrow")

SYSTEM_ACTOR = "system"


def summarize(totals: Iterable[tuple[str, int, int]]) -> EscrowStats:
    """Build dashboard figures from (status, count, amount) rows."""
    counts: dict[str, int] = {s.value: 0 for s in EscrowStatus}
    amounts: dict[str, int] = {s.value: 0 for s in EscrowStatus}
    for status, count, amount in totals:
        counts[status] = int(count)
        amounts[status] = int(amount)
    total = sum(counts.values())
    return EscrowStats(
        total_escrows=total,
        total_amount=sum(amounts.values()),
        pending_amount=amounts[EscrowStatus.PENDING.value],
        funded_amount=amounts[EscrowStatus.FUNDED.value],
        release_rate=percentage(counts[EscrowStatus.RELEASED_TO_VENDOR.value], total),
        refund_rate=percentage(counts[EscrowStatus.REFUNDED_TO_BUYER.value], total),
        count_by_status=counts,
        amount_by_status=amounts,
    )


class EscrowLedger:
    def __init__(self, repo: EscrowRepositoryProtocol | None = None) -> None:
        self._repo: EscrowRepositoryProtocol = repo or EscrowRepository()

    async def get(self, db: AsyncSession, escrow_id: str) -> Escrow:
        escrow = await self._repo.get_by_id(db, escrow_id)
        if escrow is None:
            raise EscrowNotFoundError(escrow_id)
        return escrow

    async def get_by_order(self, db: AsyncSession, order_id: str) -> Escrow | None:
        return await self._repo.get_by_order(db, order_id)

    async def create_pending(
        self,
        db: AsyncSession,
        order_id: str,
        buyer_id: str,
        amount: int,
        currency: str,
        reference: str,
        provider_payment_id: str | None,
        actor: str = SYSTEM_ACTOR,
    ) -> Escrow:
        """Open the order's escrow, or point the existing pending one at a new attempt."""
        validate_amount(amount)
        existing = await self._repo.get_by_order(db, order_id)
        if existing is not None:
            relinked = await self._repo.relink_pending(
                db, existing.id, reference, provider_payment_id
            )
            if relinked is None:
                raise rejection(existing.id, existing.status, EscrowStatus.PENDING.value)
            logger.info("Escrow %s re-linked to payment %s", existing.id, reference)
            return relinked

        escrow = await self._repo.insert(
            db,
            Escrow(
                id=generate_id(),
                order_id=order_id,
                buyer_id=buyer_id,
                amount=amount,
                currency=currency,
                payment_reference=reference,
                provider_payment_id=provider_payment_id,
            ),
        )
        await self._record(db, escrow, None, actor, "payment initiated")
        logger.info("Escrow %s opened for order %s amount=%d", escrow.id, order_id, amount)
        return escrow

    async def fund(
        self,
        db: AsyncSession,
        escrow_id: str,
        actor: str = SYSTEM_ACTOR,
        provider_payment_id: str | None = None,
    ) -> Escrow:
        escrow = await self._repo.mark_funded(db, escrow_id, provider_payment_id)
        if escrow is None:
            await self._reject(db, escrow_id, EscrowStatus.FUNDED.value)
        await self._record(db, escrow, EscrowStatus.PENDING.value, actor, "payment completed")
        logger.info("Escrow %s funded amount=%d", escrow_id, escrow.amount)
        return escrow

    async def release(
        self,
        db: AsyncSession,
        escrow_id: str,
        reason: str,
        actor: str,
        notes: str | None = None,
    ) -> Escrow:
        escrow = await self._repo.mark_released(db, escrow_id, reason, notes)
        if escrow is None:
            await self._reject(db, escrow_id, EscrowStatus.RELEASED_TO_VENDOR.value)
        await self._record(db, escrow, EscrowStatus.FUNDED.value, actor, reason)
        logger.info("Escrow %s released to vendor (%s) by %s", escrow_id, reason, actor)
        return escrow

    async def refund(
        self,
        db: AsyncSession,
        escrow_id: str,
        reason: str,
        actor: str,
        notes: str | None = None,
    ) -> Escrow:
        # refund starts from pending or funded; lock so the audit row sees the real one
        before = await self._repo.get_by_id(db, escrow_id, for_update=True)
        if before is None:
            raise EscrowNotFoundError(escrow_id)
        escrow = await self._repo.mark_refunded(db, escrow_id, reason, notes)
        if escrow is None:
            await self._reject(db, escrow_id, EscrowStatus.REFUNDED_TO_BUYER.value)
        await self._record(db, escrow, before.status, actor, reason)
        logger.info("Escrow %s refunded to buyer (%s) by %s", escrow_id, reason, actor)
        return escrow

    async def list_escrows(
        self,
        db: AsyncSession,
        status: str | None,
        limit: int,
        cursor_id: str | None,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Escrow]:
        """Newest first. No scope lists every escrow (admin dashboard)."""
        return await self._repo.list_escrows(
            db, status, limit, cursor_id, buyer_id=buyer_id, vendor_id=vendor_id
        )

    async def list_events(self, db: AsyncSession, escrow_id: str) -> list[EscrowEvent]:
        await self.get(db, escrow_id)
        return await self._repo.list_events(db, escrow_id)

    async def list_release_candidates(
        self, db: AsyncSession, delivered_before: datetime, limit: int = 100
    ) -> list[Escrow]:
        return await self._repo.list_release_candidates(db, delivered_before, limit)

    async def get_stats(
        self,
        db: AsyncSession,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> EscrowStats:
        rows: list[Any] = await self._repo.status_totals(
            db, buyer_id=buyer_id, vendor_id=vendor_id
        )
        return summarize((r.status, r.count, r.amount) for r in rows)

    async def _reject(self, db: AsyncSession, escrow_id: str, target: str) -> None:
        current = await self._repo.get_by_id(db, escrow_id)
        if current is None:
            raise EscrowNotFoundError(escrow_id)
        raise rejection(escrow_id, current.status, target)

    async def _record(
        self,
        db: AsyncSession,
        escrow: Escrow,
        from_status: str | None,
        actor: str,
        reason: str | None,
    ) -> None:
        await self._repo.append_event(
            db,
            EscrowEvent(
                escrow_id=escrow.id,
                order_id=escrow.order_id,
                from_status=from_status,
                to_status=escrow.status,
                actor=actor,
                reason=reason,
            ),
        )
