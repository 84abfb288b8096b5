"""003: create escrows and escrow_events tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE escrows (
            id                  VARCHAR(32)     PRIMARY KEY,
            order_id            VARCHAR(32)     NOT NULL REFERENCES orders (id),
            buyer_id            VARCHAR(64)     NOT NULL,
            amount              BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL DEFAULT 'SLE',
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_reference   VARCHAR(64),
            provider_payment_id VARCHAR(128),
            funded_at           TIMESTAMPTZ,
            released_at         TIMESTAMPTZ,
            refunded_at         TIMESTAMPTZ,
            release_reason      VARCHAR(32),
            refund_reason       VARCHAR(500),
            admin_notes         VARCHAR(1000),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_escrows_order_id        UNIQUE (order_id),
            CONSTRAINT ck_escrows_amount_positive CHECK (amount > 0),
            CONSTRAINT ck_escrows_status          CHECK (
                status IN ('pending', 'funded', 'released_to_vendor', 'refunded_to_buyer')
            ),
            CONSTRAINT ck_escrows_release_reason  CHECK (
                release_reason IS NULL OR release_reason IN
                ('buyer_confirmation', 'auto_release', 'admin_release', 'dispute_resolution')
            ),
            CONSTRAINT ck_escrows_funded_at       CHECK (status = 'pending' OR status = 'refunded_to_buyer' OR funded_at IS NOT NULL),
            CONSTRAINT ck_escrows_released_at     CHECK (status <> 'released_to_vendor' OR released_at IS NOT NULL),
            CONSTRAINT ck_escrows_refunded_at     CHECK (status <> 'refunded_to_buyer' OR refunded_at IS NOT NULL)
        );
    """)
    op.execute("CREATE INDEX idx_escrows_status ON escrows (status, id DESC);")
    op.execute("""
        CREATE TRIGGER trg_escrows_updated_at
            BEFORE UPDATE ON escrows
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE TABLE escrow_events (
            id              BIGSERIAL       PRIMARY KEY,
            escrow_id       VARCHAR(32)     NOT NULL REFERENCES escrows (id),
            order_id        VARCHAR(32)     NOT NULL,
            from_status     VARCHAR(20),
            to_status       VARCHAR(20)     NOT NULL,
            actor           VARCHAR(64)     NOT NULL,
            reason          VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_escrow_events_escrow ON escrow_events (escrow_id, id);")
    op.execute("COMMENT ON TABLE escrow_events IS 'Append-only audit trail of escrow transitions';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS escrow_events CASCADE;")
    op.execute("DROP TABLE IF EXISTS escrows CASCADE;")
