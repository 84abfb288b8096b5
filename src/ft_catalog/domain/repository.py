"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.domain.models import Product, Reservation


class ProductRepositoryProtocol(Protocol):
    async def get_by_id(self, db: AsyncSession, product_id: str) -> Product | None: ...

    async def reserve(
        self, db: AsyncSession, product_id: str, quantity: int
    ) -> Reservation: ...

    async def release(self, db: AsyncSession, product_id: str, quantity: int) -> None: ...
