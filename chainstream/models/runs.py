"""Task-run ledger backing /stats and manual replay."""

import uuid
from sqlalchemy import DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from chainstream.models.base import Base

RUN_RUNNING = "running"
RUN_SUCCESS = "success"
# Raw data persisted, summary/embedding step failed
RUN_PARTIAL = "partial"
RUN_FAILURE = "failure"


class TaskRun(Base):
    __tablename__ = "task_runs"

    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    entity_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,  # running | success | partial | failure
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    ended_at: Mapped[DateTime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
