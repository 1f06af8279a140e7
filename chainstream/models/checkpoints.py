"""Last block seen per stream; lets the listener report gaps across reconnects and restarts."""

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from chainstream.models.base import Base


class StreamCheckpoint(Base):
    __tablename__ = "stream_checkpoints"

    stream_name: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    last_block_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
