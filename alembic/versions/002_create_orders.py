"""002: create orders table

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id              VARCHAR(32)     PRIMARY KEY,
            order_number    VARCHAR(32)     NOT NULL,
            buyer_id        VARCHAR(64)     NOT NULL,
            items           JSONB           NOT NULL,
            delivery        JSONB           NOT NULL,
            payment         JSONB,
            total           BIGINT          NOT NULL,
            client_total    BIGINT,
            currency        VARCHAR(3)      NOT NULL DEFAULT 'SLE',
            status          VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_status  VARCHAR(20),
            cancel_reason   VARCHAR(500),
            dispute_reason  VARCHAR(500),
            confirmed_at    TIMESTAMPTZ,
            delivered_at    TIMESTAMPTZ,
            completed_at    TIMESTAMPTZ,
            cancelled_at    TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number   UNIQUE (order_number),
            CONSTRAINT ck_orders_total_positive CHECK (total > 0),
            CONSTRAINT ck_orders_status         CHECK (
                status IN ('pending', 'pending_payment', 'paid', 'confirmed', 'processing',
                           'shipped', 'delivered', 'completed', 'cancelled',
                           'payment_failed', 'disputed', 'refunded')
            ),
            CONSTRAINT ck_orders_payment_status CHECK (
                payment_status IS NULL OR
                payment_status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, id DESC);")
    op.execute("CREATE INDEX idx_orders_payment_reference ON orders ((payment->>'reference'));")
    op.execute("CREATE INDEX idx_orders_transaction_id ON orders ((payment->>'transaction_id'));")
    op.execute("""
        CREATE INDEX idx_orders_payment_in_flight
        ON orders (id)
        WHERE payment_status IN ('pending', 'processing');
    """)
    op.execute("""
        CREATE INDEX idx_orders_delivered
        ON orders (delivered_at)
        WHERE status = 'delivered';
    """)
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE orders IS 'Buyer orders; items, delivery and payment are embedded documents';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
