"""ProductRepository: concrete implementation of ProductRepositoryProtocol.

Stock-mutating operations use atomic PostgreSQL UPDATE ... RETURNING with the
availability check in the WHERE clause, so two concurrent orders for the last
unit cannot both succeed. A result of 0 rows means the constraint was violated;
a follow-up read tells "gone/inactive" apart from "not enough stock".

Transaction ownership: The CALLER (application service) is responsible for
committing or rolling back.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.domain.models import Product, Reservation
from src.ft_common.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
)

_GET_PRODUCT_SQL = text("""
    SELECT id, vendor_id, name, price, quantity, is_active, created_at, updated_at
    FROM products
    WHERE id = :product_id
""")

_RESERVE_SQL = text("""
    UPDATE products
    SET quantity = quantity - :quantity,
        updated_at = NOW()
    WHERE id = :product_id
      AND is_active
      AND quantity >= :quantity
    RETURNING id, vendor_id, name, price, quantity
""")

_RELEASE_SQL = text("""
    UPDATE products
    SET quantity = quantity + :quantity,
        updated_at = NOW()
    WHERE id = :product_id
    RETURNING id
""")


def _row_to_product(row: Any) -> Product:
    return Product(
        id=row.id,
        vendor_id=row.vendor_id,
        name=row.name,
        price=row.price,
        quantity=row.quantity,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ProductRepository:
    """Concrete repository: all stock operations atomic at the SQL level."""

    async def get_by_id(self, db: AsyncSession, product_id: str) -> Product | None:
        result = await db.execute(_GET_PRODUCT_SQL, {"product_id": product_id})
        row = result.fetchone()
        return _row_to_product(row) if row else None

    async def reserve(
        self, db: AsyncSession, product_id: str, quantity: int
    ) -> Reservation:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        result = await db.execute(
            _RESERVE_SQL, {"product_id": product_id, "quantity": quantity}
        )
        row = result.fetchone()
        if row is None:
            product = await self.get_by_id(db, product_id)
            if product is None or not product.is_active:
                raise ProductNotFoundError(product_id)
            raise InsufficientStockError(product_id, quantity, product.quantity)
        return Reservation(
            product_id=row.id,
            vendor_id=row.vendor_id,
            name=row.name,
            quantity=quantity,
            price=row.price,
            remaining_stock=row.quantity,
        )

    async def release(self, db: AsyncSession, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        result = await db.execute(
            _RELEASE_SQL, {"product_id": product_id, "quantity": quantity}
        )
        if result.fetchone() is None:
            # Product deleted from the catalog after the order; nothing to restore.
            raise ProductNotFoundError(product_id)
