"""EscrowRepository: concrete implementation of EscrowRepositoryProtocol.

Every status change is a single guarded UPDATE ... WHERE status = <expected>
RETURNING. Zero rows back means the escrow is missing or a concurrent
transition won; the ledger re-reads the row to report which.

Transaction ownership: The CALLER (application service) is responsible for
committing or rolling back.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_escrow.domain.models import Escrow, EscrowEvent

_COLUMNS = """
    id, order_id, buyer_id, amount, currency, status, payment_reference,
    provider_payment_id, funded_at, released_at, refunded_at, release_reason,
    refund_reason, admin_notes, created_at, updated_at
"""

_INSERT_SQL = text(f"""
    INSERT INTO escrows (id, order_id, buyer_id, amount, currency, status,
        payment_reference, provider_payment_id)
    VALUES (:id, :order_id, :buyer_id, :amount, :currency, 'pending',
        :payment_reference, :provider_payment_id)
    RETURNING {_COLUMNS}
""")

_GET_BY_ID_SQL = text(f"SELECT {_COLUMNS} FROM escrows WHERE id = :id")

_GET_BY_ID_FOR_UPDATE_SQL = text(f"SELECT {_COLUMNS} FROM escrows WHERE id = :id FOR UPDATE")

_GET_BY_ORDER_SQL = text(f"SELECT {_COLUMNS} FROM escrows WHERE order_id = :order_id")

_RELINK_SQL = text(f"""
    UPDATE escrows
    SET payment_reference = :reference,
        provider_payment_id = :provider_payment_id,
        updated_at = NOW()
    WHERE id = :id AND status = 'pending'
    RETURNING {_COLUMNS}
""")

_FUND_SQL = text(f"""
    UPDATE escrows
    SET status = 'funded',
        funded_at = NOW(),
        provider_payment_id = COALESCE(:provider_payment_id, provider_payment_id),
        updated_at = NOW()
    WHERE id = :id AND status = 'pending'
    RETURNING {_COLUMNS}
""")

_RELEASE_SQL = text(f"""
    UPDATE escrows
    SET status = 'released_to_vendor',
        released_at = NOW(),
        release_reason = :reason,
        admin_notes = COALESCE(:notes, admin_notes),
        updated_at = NOW()
    WHERE id = :id AND status = 'funded'
    RETURNING {_COLUMNS}
""")

_REFUND_SQL = text(f"""
    UPDATE escrows
    SET status = 'refunded_to_buyer',
        refunded_at = NOW(),
        refund_reason = :reason,
        admin_notes = COALESCE(:notes, admin_notes),
        updated_at = NOW()
    WHERE id = :id AND status IN ('pending', 'funded')
    RETURNING {_COLUMNS}
""")

_INSERT_EVENT_SQL = text("""
    INSERT INTO escrow_events (escrow_id, order_id, from_status, to_status, actor, reason)
    VALUES (:escrow_id, :order_id, :from_status, :to_status, :actor, :reason)
""")

_LIST_EVENTS_SQL = text("""
    SELECT id, escrow_id, order_id, from_status, to_status, actor, reason, created_at
    FROM escrow_events
    WHERE escrow_id = :escrow_id
    ORDER BY id
""")

# Buyer scope reads escrows.buyer_id; vendor scope matches the order's line
# items, passed as a JSONB containment document like [{"vendor_id": "v-1"}].
_SCOPE_WHERE = """
    (CAST(:buyer_id AS TEXT) IS NULL OR escrows.buyer_id = :buyer_id)
    AND (CAST(:vendor_items AS TEXT) IS NULL OR EXISTS (
        SELECT 1 FROM orders o
        WHERE o.id = escrows.order_id
          AND o.items @> CAST(:vendor_items AS JSONB)
    ))
"""

_LIST_ESCROWS_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM escrows
    WHERE (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
      AND {_SCOPE_WHERE}
    ORDER BY id DESC
    LIMIT :limit
""")

_RELEASE_CANDIDATES_SQL = text("""
    SELECT e.id, e.order_id, e.buyer_id, e.amount, e.currency, e.status,
        e.payment_reference, e.provider_payment_id, e.funded_at, e.released_at,
        e.refunded_at, e.release_reason, e.refund_reason, e.admin_notes,
        e.created_at, e.updated_at
    FROM escrows e
    JOIN orders o ON o.id = e.order_id
    WHERE e.status = 'funded'
      AND o.status = 'delivered'
      AND o.delivered_at < :delivered_before
    ORDER BY o.delivered_at
    LIMIT :limit
""")

_STATUS_TOTALS_SQL = text(f"""
    SELECT status, COUNT(*) AS count, COALESCE(SUM(amount), 0) AS amount
    FROM escrows
    WHERE {_SCOPE_WHERE}
    GROUP BY status
""")


def _row_to_escrow(row: Any) -> Escrow:
    return Escrow(
        id=row.id,
        order_id=row.order_id,
        buyer_id=row.buyer_id,
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        payment_reference=row.payment_reference,
        provider_payment_id=row.provider_payment_id,
        funded_at=row.funded_at,
        released_at=row.released_at,
        refunded_at=row.refunded_at,
        release_reason=row.release_reason,
        refund_reason=row.refund_reason,
        admin_notes=row.admin_notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_event(row: Any) -> EscrowEvent:
    return EscrowEvent(
        id=row.id,
        escrow_id=row.escrow_id,
        order_id=row.order_id,
        from_status=row.from_status,
        to_status=row.to_status,
        actor=row.actor,
        reason=row.reason,
        created_at=row.created_at,
    )


def _scope_params(buyer_id: str | None, vendor_id: str | None) -> dict[str, Any]:
    vendor_items = json.dumps([{"vendor_id": vendor_id}]) if vendor_id else None
    return {"buyer_id": buyer_id, "vendor_items": vendor_items}


class EscrowRepository:
    """Concrete repository: each transition is one atomic statement."""

    async def insert(self, db: AsyncSession, escrow: Escrow) -> Escrow:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": escrow.id,
                "order_id": escrow.order_id,
                "buyer_id": escrow.buyer_id,
                "amount": escrow.amount,
                "currency": escrow.currency,
                "payment_reference": escrow.payment_reference,
                "provider_payment_id": escrow.provider_payment_id,
            },
        )
        return _row_to_escrow(result.fetchone())

    async def get_by_id(
        self, db: AsyncSession, escrow_id: str, for_update: bool = False
    ) -> Escrow | None:
        sql = _GET_BY_ID_FOR_UPDATE_SQL if for_update else _GET_BY_ID_SQL
        result = await db.execute(sql, {"id": escrow_id})
        row = result.fetchone()
        return _row_to_escrow(row) if row else None

    async def get_by_order(self, db: AsyncSession, order_id: str) -> Escrow | None:
        result = await db.execute(_GET_BY_ORDER_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_escrow(row) if row else None

    async def _guarded(self, db: AsyncSession, sql: Any, params: dict) -> Escrow | None:
        result = await db.execute(sql, params)
        row = result.fetchone()
        return _row_to_escrow(row) if row else None

    async def relink_pending(
        self, db: AsyncSession, escrow_id: str, reference: str,
        provider_payment_id: str | None,
    ) -> Escrow | None:
        return await self._guarded(
            db, _RELINK_SQL,
            {"id": escrow_id, "reference": reference, "provider_payment_id": provider_payment_id},
        )

    async def mark_funded(
        self, db: AsyncSession, escrow_id: str, provider_payment_id: str | None
    ) -> Escrow | None:
        return await self._guarded(
            db, _FUND_SQL, {"id": escrow_id, "provider_payment_id": provider_payment_id}
        )

    async def mark_released(
        self, db: AsyncSession, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None:
        return await self._guarded(
            db, _RELEASE_SQL, {"id": escrow_id, "reason": reason, "notes": notes}
        )

    async def mark_refunded(
        self, db: AsyncSession, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None:
        return await self._guarded(
            db, _REFUND_SQL, {"id": escrow_id, "reason": reason, "notes": notes}
        )

    async def append_event(self, db: AsyncSession, event: EscrowEvent) -> None:
        await db.execute(
            _INSERT_EVENT_SQL,
            {
                "escrow_id": event.escrow_id,
                "order_id": event.order_id,
                "from_status": event.from_status,
                "to_status": event.to_status,
                "actor": event.actor,
                "reason": event.reason,
            },
        )

    async def list_events(self, db: AsyncSession, escrow_id: str) -> list[EscrowEvent]:
        result = await db.execute(_LIST_EVENTS_SQL, {"escrow_id": escrow_id})
        return [_row_to_event(row) for row in result.fetchall()]

    async def list_escrows(
        self,
        db: AsyncSession,
        status: str | None,
        limit: int,
        cursor_id: str | None,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Escrow]:
        result = await db.execute(
            _LIST_ESCROWS_SQL,
            {
                "status": status,
                "limit": limit,
                "cursor_id": cursor_id,
                **_scope_params(buyer_id, vendor_id),
            },
        )
        return [_row_to_escrow(row) for row in result.fetchall()]

    async def list_release_candidates(
        self, db: AsyncSession, delivered_before: datetime, limit: int
    ) -> list[Escrow]:
        result = await db.execute(
            _RELEASE_CANDIDATES_SQL, {"delivered_before": delivered_before, "limit": limit}
        )
        return [_row_to_escrow(row) for row in result.fetchall()]

    async def status_totals(
        self,
        db: AsyncSession,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Any]:
        result = await db.execute(_STATUS_TOTALS_SQL, _scope_params(buyer_id, vendor_id))
        return list(result.fetchall())
