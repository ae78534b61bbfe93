from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from .sale import PaymentMethod, PaymentOutcome


class CreateSaleRequest(BaseModel):
    vehicle_id: str = Field(min_length=1, max_length=50)
    buyer_tax_id: str = Field(description="CPF, digits or formatted")
    amount_paid: Decimal
    payment_method: PaymentMethod


class PaymentCallbackRequest(BaseModel):
    """
    Payment provider callback, same field names as the outbound notification.
    Only codigoPagamento and status drive the state machine; the rest is
    accepted for tracing.
    """
    codigoPagamento: str = Field(min_length=1)
    status: Literal["aprovado", "rejeitado", "processando"]
    veiculoId: str | None = None
    cpfComprador: str | None = None
    valorPago: Decimal | None = None
    metodoPagamento: str | None = None
    dataTransacao: str | None = None

    @property
    def outcome(self) -> PaymentOutcome | None:
        return {
            "aprovado": PaymentOutcome.APPROVED,
            "rejeitado": PaymentOutcome.REJECTED,
        }.get(self.status)


class SchedulerStatusResponse(BaseModel):
    active: bool
    interval_seconds: int | None = None
    approval_policy: str
