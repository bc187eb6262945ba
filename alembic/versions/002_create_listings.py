"""002: create listings

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE listings (
            id              VARCHAR(64)     PRIMARY KEY,
            title           VARCHAR(200)    NOT NULL,
            description     TEXT            NOT NULL DEFAULT '',
            seller_id       VARCHAR(64)     NOT NULL,
            starting_price  BIGINT          NOT NULL,
            current_price   BIGINT          NOT NULL,
            end_time        TIMESTAMPTZ     NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            image_url       TEXT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_starting_price_gte_0 CHECK (starting_price >= 0),
            CONSTRAINT ck_listings_price_not_below_start CHECK (current_price >= starting_price),
            CONSTRAINT ck_listings_status CHECK (
                status IN ('ACTIVE', 'ENDED', 'SOLD', 'CANCELLED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_listings_status_created ON listings (status, created_at, id);")
    op.execute("CREATE INDEX idx_listings_seller ON listings (seller_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("COMMENT ON TABLE listings IS 'Auction listings; current_price only ever rises';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
