from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_sales.db.base_class import Base, utcnow


class WebhookAttemptLog(Base):
    """One row per outbound webhook delivery attempt. Append-only."""

    __tablename__ = "webhook_attempt_logs"

    # SQLite only autoincrements INTEGER primary keys
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    sale_id: Mapped[str] = mapped_column(String(36), ForeignKey("sales.id", ondelete="CASCADE"), index=True)
    url: Mapped[str] = mapped_column(String(500))
    payload: Mapped[str] = mapped_column(Text)
    status_code: Mapped[int] = mapped_column(Integer, default=0, comment="0 when no response was received")
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    success: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
