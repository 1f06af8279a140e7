"""Address-to-transaction participation edges."""

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from chainstream.models.base import Base, BigIntPK


class AddressTransaction(Base):
    """Created idempotently, never updated or deleted."""

    __tablename__ = "address_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    address_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("addresses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    transaction_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (UniqueConstraint("address_id", "transaction_id", name="uq_address_transaction_pair"),)
