"""004: create purchases

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE purchases (
            id                  VARCHAR(64)     PRIMARY KEY,
            listing_id          VARCHAR(64)     NOT NULL REFERENCES listings (id),
            buyer_id            VARCHAR(64)     NOT NULL,
            seller_id           VARCHAR(64)     NOT NULL,
            winning_bid_amount  BIGINT          NOT NULL,
            payment_status      VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            purchase_date       TIMESTAMPTZ     NOT NULL,
            product_title       VARCHAR(200)    NOT NULL,
            product_image_url   TEXT,
            payment_reference   VARCHAR(64),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_purchases_listing UNIQUE (listing_id),
            CONSTRAINT ck_purchases_amount_gt_0 CHECK (winning_bid_amount > 0),
            CONSTRAINT ck_purchases_payment_status CHECK (
                payment_status IN ('PENDING', 'COMPLETED', 'FAILED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_purchases_buyer ON purchases (buyer_id, purchase_date DESC);")
    op.execute("""
        CREATE TRIGGER trg_purchases_updated_at
            BEFORE UPDATE ON purchases
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("COMMENT ON TABLE purchases IS 'At most one purchase per listing (uq_purchases_listing)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS purchases CASCADE;")
