"""StockReservationService: the only write path to product stock.

reserve/release run inside the caller's transaction; the caller commits.
"""

import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.domain.models import Product, Reservation
from src.ft_catalog.domain.repository import ProductRepositoryProtocol
from src.ft_catalog.infrastructure.persistence import ProductRepository
from src.ft_common.errors import ProductNotFoundError

logger = logging.getLogger("ft.stock")


class StockReservationService:
    def __init__(self, repo: ProductRepositoryProtocol | None = None) -> None:
        self._repo: ProductRepositoryProtocol = repo or ProductRepository()

    async def get_product(self, db: AsyncSession, product_id: str) -> Product:
        product = await self._repo.get_by_id(db, product_id)
        if product is None or not product.is_active:
            raise ProductNotFoundError(product_id)
        return product

    async def reserve(
        self, db: AsyncSession, product_id: str, quantity: int
    ) -> Reservation:
        reservation = await self._repo.reserve(db, product_id, quantity)
        logger.debug(
            "Reserved %d x %s (remaining %d)",
            quantity, product_id, reservation.remaining_stock,
        )
        return reservation

    async def release(self, db: AsyncSession, product_id: str, quantity: int) -> None:
        await self._repo.release(db, product_id, quantity)
        logger.debug("Released %d x %s", quantity, product_id)

    async def release_all(
        self, db: AsyncSession, lines: Iterable[tuple[str, int]]
    ) -> None:
        """Compensating release of (product_id, quantity) pairs.

        A product removed from the catalog since reservation has no stock to
        restore; it is logged and skipped so the remaining lines still go back.
        """
        for product_id, quantity in lines:
            try:
                await self.release(db, product_id, quantity)
            except ProductNotFoundError:
                logger.warning(
                    "Stock release skipped, product no longer exists: %s (%d)",
                    product_id, quantity,
                )
