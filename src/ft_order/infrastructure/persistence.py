# src/ft_order/infrastructure/persistence.py
"""OrderRepository: raw SQL persistence implementation.

items, delivery and payment are JSONB documents; payment lookups match the
merchant reference as well as the provider's own identifiers.
"""
import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_order.domain.models import DeliveryAddress, Order, OrderItem, PaymentRecord

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, buyer_id, items, delivery, payment,
        total, client_total, currency, status, payment_status)
    VALUES (:id, :order_number, :buyer_id,
        CAST(:items AS JSONB), CAST(:delivery AS JSONB), CAST(:payment AS JSONB),
        :total, :client_total, :currency, :status, :payment_status)
""")

_UPDATE_ORDER_SQL = text("""
    UPDATE orders
    SET status = :status,
        payment_status = :payment_status,
        payment = CAST(:payment AS JSONB),
        cancel_reason = :cancel_reason,
        dispute_reason = :dispute_reason,
        confirmed_at = :confirmed_at,
        delivered_at = :delivered_at,
        completed_at = :completed_at,
        cancelled_at = :cancelled_at,
        updated_at = NOW()
    WHERE id = :id
""")

_SELECT_COLUMNS = """
    id, order_number, buyer_id, items, delivery, payment, total, client_total,
    currency, status, payment_status, cancel_reason, dispute_reason,
    confirmed_at, delivered_at, completed_at, cancelled_at, created_at, updated_at
"""

_GET_ORDER_BY_ID_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE id = :id
""")

_GET_ORDER_BY_ID_FOR_UPDATE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE id = :id
    FOR UPDATE
""")

_PAYMENT_REF_WHERE = """
    payment IS NOT NULL
    AND (payment->>'reference' = :ref
         OR payment->>'transaction_id' = :ref
         OR payment->>'provider_payment_id' = :ref)
"""

_GET_ORDER_BY_PAYMENT_REF_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE {_PAYMENT_REF_WHERE}
    LIMIT 1
""")

_GET_ORDER_BY_PAYMENT_REF_FOR_UPDATE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE {_PAYMENT_REF_WHERE}
    LIMIT 1
    FOR UPDATE
""")

_LIST_ORDERS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE (CAST(:buyer_id AS TEXT) IS NULL OR buyer_id = :buyer_id)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
      AND (CAST(:statuses_csv AS TEXT) IS NULL
           OR status = ANY(string_to_array(CAST(:statuses_csv AS TEXT), ',')))
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_PAYMENTS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE payment IS NOT NULL
      AND (CAST(:buyer_id AS TEXT) IS NULL OR buyer_id = :buyer_id)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_STALE_PAYMENTS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE payment_status IN ('pending', 'processing')
      AND CAST(payment->>'initiated_at' AS TIMESTAMPTZ) < :before
    ORDER BY id
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _load_json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_order(row: Any) -> Order:
    """Convert a DB result row to an Order domain object."""
    payment = _load_json(row.payment)
    return Order(
        id=row.id,
        order_number=row.order_number,
        buyer_id=row.buyer_id,
        items=[OrderItem.from_dict(i) for i in _load_json(row.items)],
        delivery=DeliveryAddress.from_dict(_load_json(row.delivery)),
        payment=PaymentRecord.from_dict(payment) if payment else None,
        total=row.total,
        client_total=row.client_total,
        currency=row.currency,
        status=row.status,
        payment_status=row.payment_status,
        cancel_reason=row.cancel_reason,
        dispute_reason=row.dispute_reason,
        confirmed_at=row.confirmed_at,
        delivered_at=row.delivered_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _dump_payment(order: Order) -> str | None:
    return json.dumps(order.payment.to_dict()) if order.payment else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def save(self, order: Order, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "buyer_id": order.buyer_id,
                "items": json.dumps([i.to_dict() for i in order.items]),
                "delivery": json.dumps(order.delivery.to_dict()),
                "payment": _dump_payment(order),
                "total": order.total,
                "client_total": order.client_total,
                "currency": order.currency,
                "status": order.status,
                "payment_status": order.payment_status,
            },
        )

    async def get_by_id(
        self, order_id: str, db: AsyncSession, for_update: bool = False
    ) -> Order | None:
        sql = _GET_ORDER_BY_ID_FOR_UPDATE_SQL if for_update else _GET_ORDER_BY_ID_SQL
        result = await db.execute(sql, {"id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def get_by_payment_ref(
        self, ref: str, db: AsyncSession, for_update: bool = False
    ) -> Order | None:
        sql = (
            _GET_ORDER_BY_PAYMENT_REF_FOR_UPDATE_SQL
            if for_update
            else _GET_ORDER_BY_PAYMENT_REF_SQL
        )
        result = await db.execute(sql, {"ref": ref})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def update(self, order: Order, db: AsyncSession) -> None:
        await db.execute(
            _UPDATE_ORDER_SQL,
            {
                "id": order.id,
                "status": order.status,
                "payment_status": order.payment_status,
                "payment": _dump_payment(order),
                "cancel_reason": order.cancel_reason,
                "dispute_reason": order.dispute_reason,
                "confirmed_at": order.confirmed_at,
                "delivered_at": order.delivered_at,
                "completed_at": order.completed_at,
                "cancelled_at": order.cancelled_at,
            },
        )

    async def list_orders(
        self,
        buyer_id: str | None,
        statuses: list[str] | None,
        limit: int,
        cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]:
        statuses_csv = ",".join(statuses) if statuses else None
        result = await db.execute(
            _LIST_ORDERS_SQL,
            {
                "buyer_id": buyer_id,
                "cursor_id": cursor_id,
                "limit": limit,
                "statuses_csv": statuses_csv,
            },
        )
        return [_row_to_order(row) for row in result.fetchall()]

    async def list_stale_payments(
        self, initiated_before: datetime, limit: int, db: AsyncSession
    ) -> list[Order]:
        result = await db.execute(
            _LIST_STALE_PAYMENTS_SQL, {"before": initiated_before, "limit": limit}
        )
        return [_row_to_order(row) for row in result.fetchall()]

    async def list_payments(
        self,
        buyer_id: str | None,
        limit: int,
        cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]:
        """Orders that reached payment initiation, newest first."""
        result = await db.execute(
            _LIST_PAYMENTS_SQL,
            {"buyer_id": buyer_id, "cursor_id": cursor_id, "limit": limit},
        )
        return [_row_to_order(row) for row in result.fetchall()]
