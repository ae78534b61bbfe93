import json
import logging
import time

import httpx

from vehicle_sales.core.config import settings
from vehicle_sales.core.logging import LOG_BODY_MAX
from vehicle_sales.db.base_class import utcnow
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.schemas.sale import ApprovedSaleNotification, Sale

logger = logging.getLogger("webhooks")


class WebhookDeliveryService:
    """
    Notifies the third-party system that a sale was approved.

    One call is one attempt: a single POST, one attempt-log row, a boolean
    result. Retry budgeting and the sale's notification flags belong to the
    caller (see ReconciliationService.deliver_webhooks).
    """

    USER_AGENT = "Vehicle-Sales-Webhook/1.0"

    def __init__(self, store: SaleStore, url: str | None = None, timeout: float | None = None,
                 client: httpx.AsyncClient | None = None):
        self.store = store
        self.url = url or settings.webhook_url
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

    def build_payload(self, sale: Sale) -> ApprovedSaleNotification:
        transaction_at = sale.approved_at or utcnow()
        return ApprovedSaleNotification(
            codigoPagamento=sale.payment_code,
            status="aprovado",
            veiculoId=sale.vehicle_id,
            cpfComprador=sale.buyer_tax_id,
            valorPago=float(sale.amount_paid),
            metodoPagamento=sale.payment_method.value,
            dataTransacao=transaction_at.isoformat(),
        )

    async def notify_approved_sale(self, sale: Sale) -> bool:
        payload = self.build_payload(sale)
        body = json.dumps(payload.model_dump(), ensure_ascii=False)
        headers = {"Content-Type": "application/json", "User-Agent": self.USER_AGENT}

        t0 = time.perf_counter()
        try:
            response = await self.client.post(
                self.url, content=body.encode("utf-8"), headers=headers, timeout=self.timeout
            )
            status_code = response.status_code
            response_text = response.text
            success = 200 <= status_code < 300
        except httpx.TimeoutException as e:
            status_code, success = 0, False
            response_text = f"Timeout after {self.timeout}s: {e!r}"
        except httpx.HTTPError as e:
            status_code, success = 0, False
            response_text = f"Network error: {e!r}"
        dt = round((time.perf_counter() - t0) * 1000)

        await self.store.insert_attempt_log(
            sale_id=sale.id,
            url=self.url,
            payload=body,
            status_code=status_code,
            response=response_text,
            success=success,
        )

        log_extra = {"extra": {"sale_id": sale.id, "url": self.url, "status_code": status_code,
                               "elapsed_ms": dt, "response_preview": (response_text or "")[:LOG_BODY_MAX]}}
        if success:
            logger.info("Webhook delivered for sale %s -> %d in %dms", sale.id, status_code, dt, extra=log_extra)
        elif status_code:
            logger.warning("Webhook rejected for sale %s -> %d", sale.id, status_code, extra=log_extra)
        else:
            logger.warning("Webhook got no response for sale %s: %s", sale.id, response_text, extra=log_extra)
        return success

    async def close(self):
        if self._owns_client:
            await self.client.aclose()
