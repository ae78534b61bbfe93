"""Storage contract the sales core depends on."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from vehicle_sales.schemas.sale import (
    PaymentMethod,
    Sale,
    SaleStatus,
    WebhookAttemptLogEntry,
)


@runtime_checkable
class SaleStore(Protocol):
    """Durable keyed storage for sales and their webhook attempt log."""

    async def create(
        self,
        *,
        vehicle_id: str,
        buyer_tax_id: str,
        amount_paid: Decimal,
        payment_method: PaymentMethod,
        payment_code: str,
        status: SaleStatus = SaleStatus.PENDING,
    ) -> Sale: ...

    async def get_by_id(self, sale_id: str) -> Sale | None: ...

    async def get_by_payment_code(self, payment_code: str) -> Sale | None: ...

    async def list_by_vehicle(self, vehicle_id: str) -> list[Sale]: ...

    async def list_by_tax_id(self, buyer_tax_id: str) -> list[Sale]: ...

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Sale]: ...

    async def list_by_status(self, status: SaleStatus, limit: int) -> list[Sale]: ...

    async def update_fields(self, sale_id: str, **fields: Any) -> Sale | None: ...

    async def set_status(
        self,
        sale_id: str,
        status: SaleStatus,
        approved_at: datetime | None = None,
        *,
        expected_statuses: Iterable[SaleStatus] | None = None,
    ) -> bool: ...

    async def list_approved_unnotified(
        self, limit: int, max_attempts: int
    ) -> list[Sale]: ...

    async def increment_attempts(self, sale_id: str) -> bool: ...

    async def mark_notified(self, sale_id: str) -> bool: ...

    async def insert_attempt_log(
        self,
        *,
        sale_id: str,
        url: str,
        payload: str,
        status_code: int,
        response: str | None,
        success: bool,
    ) -> WebhookAttemptLogEntry: ...

    async def list_attempt_logs(
        self, sale_id: str
    ) -> list[WebhookAttemptLogEntry]: ...
