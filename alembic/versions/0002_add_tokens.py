"""Add tokens

Revision ID: 0002_add_tokens
Revises: 0001_initial_pipeline_schema
Create Date: 2026-10-17

This migration adds the tokens table, enriched from addresses whose
fetched data carries token metadata.
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0002_add_tokens"
down_revision = "0001_initial_pipeline_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("address_hash", sa.String(42), nullable=False),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tokens_address_hash", "tokens", ["address_hash"], unique=True)
    op.create_index("ix_tokens_status", "tokens", ["status"])


def downgrade() -> None:
    op.drop_index("ix_tokens_status", table_name="tokens")
    op.drop_index("ix_tokens_address_hash", table_name="tokens")
    op.drop_table("tokens")
