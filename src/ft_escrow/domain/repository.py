"""EscrowRepository Protocol: interface contract for persistence layer."""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_escrow.domain.models import Escrow, EscrowEvent


class EscrowRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, escrow: Escrow) -> Escrow: ...

    async def get_by_id(
        self, db: AsyncSession, escrow_id: str, for_update: bool = False
    ) -> Escrow | None: ...

    async def get_by_order(self, db: AsyncSession, order_id: str) -> Escrow | None: ...

    async def relink_pending(
        self, db: AsyncSession, escrow_id: str, reference: str,
        provider_payment_id: str | None,
    ) -> Escrow | None: ...

    async def mark_funded(
        self, db: AsyncSession, escrow_id: str, provider_payment_id: str | None
    ) -> Escrow | None: ...

    async def mark_released(
        self, db: AsyncSession, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None: ...

    async def mark_refunded(
        self, db: AsyncSession, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None: ...

    async def append_event(self, db: AsyncSession, event: EscrowEvent) -> None: ...

    async def list_events(self, db: AsyncSession, escrow_id: str) -> list[EscrowEvent]: ...

    async def list_escrows(
        self,
        db: AsyncSession,
        status: str | None,
        limit: int,
        cursor_id: str | None,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Escrow]: ...

    async def list_release_candidates(
        self, db: AsyncSession, delivered_before: datetime, limit: int
    ) -> list[Escrow]: ...

    async def status_totals(
        self,
        db: AsyncSession,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Any]: ...
