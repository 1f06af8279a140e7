"""Initial pipeline schema

Revision ID: 0001_initial_pipeline_schema
Revises:
Create Date: 2026-10-17

This migration adds:
1. blocks, transactions, addresses, smart_contracts (enrichable entities)
2. address_transactions participation edges
3. alert_subscriptions read by the webhook task
4. task_runs ledger and stream_checkpoints
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_pipeline_schema"
down_revision = None
branch_labels = None
depends_on = None


def _enrichment_columns() -> list[sa.Column]:
    return [
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "blocks",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        *_enrichment_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_blocks_block_number", "blocks", ["block_number"], unique=True)
    op.create_index("ix_blocks_status", "blocks", ["status"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("block_id", sa.BigInteger(), sa.ForeignKey("blocks.id", ondelete="CASCADE"), nullable=False),
        *_enrichment_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_transaction_hash", "transactions", ["transaction_hash"], unique=True)
    op.create_index("ix_transactions_block_id", "transactions", ["block_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])

    op.create_table(
        "addresses",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("address_hash", sa.String(42), nullable=False),
        *_enrichment_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_addresses_address_hash", "addresses", ["address_hash"], unique=True)
    op.create_index("ix_addresses_status", "addresses", ["status"])

    op.create_table(
        "smart_contracts",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("address_hash", sa.String(42), nullable=False),
        *_enrichment_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_smart_contracts_address_hash", "smart_contracts", ["address_hash"], unique=True)
    op.create_index("ix_smart_contracts_status", "smart_contracts", ["status"])

    op.create_table(
        "address_transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("address_id", sa.BigInteger(), sa.ForeignKey("addresses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("transaction_id", sa.BigInteger(), sa.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address_id", "transaction_id", name="uq_address_transaction_pair"),
    )
    op.create_index("ix_address_transactions_address_id", "address_transactions", ["address_id"])
    op.create_index("ix_address_transactions_transaction_id", "address_transactions", ["transaction_id"])

    op.create_table(
        "alert_subscriptions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("address_hash", sa.String(42), nullable=False),
        sa.Column("webhook_url", sa.String(2048), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alert_subscriptions_address_hash", "alert_subscriptions", ["address_hash"])

    op.create_table(
        "task_runs",
        sa.Column("run_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("entity_key", sa.String(100), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_task_runs_kind", "task_runs", ["kind"])
    op.create_index("ix_task_runs_entity_key", "task_runs", ["entity_key"])

    op.create_table(
        "stream_checkpoints",
        sa.Column("stream_name", sa.String(64), nullable=False),
        sa.Column("last_block_number", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("stream_name"),
    )


def downgrade() -> None:
    op.drop_table("stream_checkpoints")
    op.drop_index("ix_task_runs_entity_key", table_name="task_runs")
    op.drop_index("ix_task_runs_kind", table_name="task_runs")
    op.drop_table("task_runs")
    op.drop_index("ix_alert_subscriptions_address_hash", table_name="alert_subscriptions")
    op.drop_table("alert_subscriptions")
    op.drop_table("address_transactions")
    op.drop_table("smart_contracts")
    op.drop_table("addresses")
    op.drop_table("transactions")
    op.drop_table("blocks")
