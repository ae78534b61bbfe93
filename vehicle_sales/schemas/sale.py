from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class SaleStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELED = "canceled"


# Statuses from which a payment result may still be applied
RESOLVABLE_STATUSES = (SaleStatus.PENDING, SaleStatus.PROCESSING)


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BOLETO = "boleto"
    BANK_TRANSFER = "bank_transfer"


class PaymentOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class Sale(BaseModel):
    """A purchase order for one vehicle, tracked through its payment lifecycle."""

    id: str
    vehicle_id: str
    buyer_tax_id: str
    amount_paid: Decimal
    payment_method: PaymentMethod
    status: SaleStatus
    payment_code: str
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None = None
    webhook_notified: bool = False
    webhook_attempts: int = 0


class WebhookAttemptLogEntry(BaseModel):
    id: int
    sale_id: str
    url: str
    payload: str
    status_code: int
    response: str | None = None
    attempted_at: datetime
    success: bool


class ApprovedSaleNotification(BaseModel):
    """
    Body of the outbound webhook sent once a sale is approved.
    Expected shape:
    {
      "codigoPagamento": "PAG-...",
      "status": "aprovado",
      "veiculoId": "...",
      "cpfComprador": "11 digits",
      "valorPago": 85000.0,
      "metodoPagamento": "pix",
      "dataTransacao": "ISO-8601"
    }
    """
    codigoPagamento: str
    status: str = Field(default="aprovado", pattern="^aprovado$")
    veiculoId: str
    cpfComprador: str
    valorPago: float
    metodoPagamento: str
    dataTransacao: str


class SweepReport(BaseModel):
    pending_resolved: int = 0
    webhooks_delivered: int = 0
    webhooks_failed: int = 0
