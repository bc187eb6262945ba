"""003: create bids

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # sequence: arrival order, the last tie-breaker after amount and placed_at
    op.execute("""
        CREATE TABLE bids (
            id          VARCHAR(64)     PRIMARY KEY,
            listing_id  VARCHAR(64)     NOT NULL REFERENCES listings (id),
            bidder_id   VARCHAR(64)     NOT NULL,
            amount      BIGINT          NOT NULL,
            placed_at   TIMESTAMPTZ     NOT NULL,
            sequence    BIGSERIAL       NOT NULL UNIQUE,
            CONSTRAINT ck_bids_amount_gt_0 CHECK (amount > 0)
        );
    """)
    op.execute(
        "CREATE INDEX idx_bids_listing_rank ON bids (listing_id, amount DESC, placed_at, sequence);"
    )
    op.execute("CREATE INDEX idx_bids_bidder ON bids (bidder_id, placed_at DESC);")
    op.execute("COMMENT ON TABLE bids IS 'Append-only bid log';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bids CASCADE;")
