"""Chain entities enriched by the pipeline, keyed by their natural identifier."""

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from chainstream.models.base import Base, BigIntPK, JSONPayload

# Enrichment lifecycle
STATUS_PENDING = "pending"
STATUS_FETCHING = "fetching"
STATUS_ENRICHED = "enriched"
STATUS_FAILED = "failed"


class EnrichmentState:
    """Columns every enrichable entity carries.

    ``raw_data`` is replaced wholesale on each successful fetch and left
    untouched when a fetch fails.
    """

    raw_data: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=STATUS_PENDING,
        server_default=STATUS_PENDING,
        index=True,
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class Block(EnrichmentState, Base):
    __tablename__ = "blocks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True, index=True)

    summary: Mapped[str | None] = mapped_column(Text, nullable=True)


class Transaction(EnrichmentState, Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False, unique=True, index=True)

    block_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("blocks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class Address(EnrichmentState, Base):
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    address_hash: Mapped[str] = mapped_column(String(42), nullable=False, unique=True, index=True)


class SmartContract(EnrichmentState, Base):
    """One-to-one shadow of an address whose fetched data flags contract code."""

    __tablename__ = "smart_contracts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    address_hash: Mapped[str] = mapped_column(String(42), nullable=False, unique=True, index=True)


class Token(EnrichmentState, Base):
    """Token contract discovered through an address whose data carries token metadata."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    address_hash: Mapped[str] = mapped_column(String(42), nullable=False, unique=True, index=True)
