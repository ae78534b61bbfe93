import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_sales.db.base_class import Base, TimestampMixin
from vehicle_sales.schemas.sale import PaymentMethod, SaleStatus


def _in_clause(column: str, enum_cls) -> str:
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} in ({values})"


class SaleRecord(Base, TimestampMixin):
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint(_in_clause("status", SaleStatus), name="ck_sales_status"),
        CheckConstraint(_in_clause("payment_method", PaymentMethod), name="ck_sales_payment_method"),
        Index("ix_sales_webhook_pending", "webhook_notified", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vehicle_id: Mapped[str] = mapped_column(String(50), index=True)
    buyer_tax_id: Mapped[str] = mapped_column(String(11), index=True, comment="11-digit buyer tax id, digits only")
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_method: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=SaleStatus.PENDING.value, index=True,
                                        comment="pending, processing, approved, rejected, canceled")
    payment_code: Mapped[str] = mapped_column(String(100), unique=True, comment="Idempotency key for payment callbacks")
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    webhook_notified: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_attempts: Mapped[int] = mapped_column(Integer, default=0)
