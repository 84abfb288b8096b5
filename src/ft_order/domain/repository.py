# src/ft_order/domain/repository.py
"""OrderRepository Protocol: interface contract for persistence layer."""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_order.domain.models import Order


class OrderRepositoryProtocol(Protocol):
    async def save(self, order: Order, db: AsyncSession) -> None: ...

    async def get_by_id(
        self, order_id: str, db: AsyncSession, for_update: bool = False
    ) -> Order | None: ...

    async def get_by_payment_ref(
        self, ref: str, db: AsyncSession, for_update: bool = False
    ) -> Order | None: ...

    async def update(self, order: Order, db: AsyncSession) -> None: ...

    async def list_orders(
        self,
        buyer_id: str | None,
        statuses: list[str] | None,
        limit: int,
        cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]: ...

    async def list_stale_payments(
        self, initiated_before: datetime, limit: int, db: AsyncSession
    ) -> list[Order]: ...

    async def list_payments(
        self,
        buyer_id: str | None,
        limit: int,
        cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]: ...
