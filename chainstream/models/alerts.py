"""Webhook alert subscriptions. Managed elsewhere; the pipeline only reads them."""

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from chainstream.models.base import Base, BigIntPK

ALERT_ACTIVE = "active"
ALERT_INACTIVE = "inactive"


class AlertSubscription(Base):
    __tablename__ = "alert_subscriptions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    address_hash: Mapped[str] = mapped_column(String(42), nullable=False, index=True)

    webhook_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ALERT_ACTIVE,
        server_default=ALERT_ACTIVE,
    )

    last_triggered_at: Mapped[DateTime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
