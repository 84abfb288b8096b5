"""001: create products table and the updated_at trigger function

The catalog service owns products; this service only decrements and
restores quantity. fn_update_timestamp backs the updated_at trigger on
every table.

Revision ID: 001
Revises: 
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE products (
            id              VARCHAR(64)     PRIMARY KEY,
            vendor_id       VARCHAR(64)     NOT NULL,
            name            VARCHAR(200)    NOT NULL,
            price           BIGINT          NOT NULL,
            quantity        INT             NOT NULL DEFAULT 0,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_products_price_positive   CHECK (price > 0),
            CONSTRAINT ck_products_quantity_gte_0   CHECK (quantity >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_products_vendor ON products (vendor_id);")
    op.execute("""
        CREATE TRIGGER trg_products_updated_at
            BEFORE UPDATE ON products
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS products CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
