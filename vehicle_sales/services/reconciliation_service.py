import asyncio
import logging

from vehicle_sales.core.config import settings
from vehicle_sales.core.observability import log_step
from vehicle_sales.db.base_class import utcnow
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.schemas.sale import PaymentOutcome, SaleStatus, SweepReport
from .approval_policy import ManualConfirmationPolicy, PendingApprovalPolicy
from .webhook_service import WebhookDeliveryService

logger = logging.getLogger(__name__)


class ReconciliationService:
    """The two batch sweeps run by the scheduler: pending resolution, then webhook delivery."""

    def __init__(
        self,
        store: SaleStore,
        delivery: WebhookDeliveryService,
        approval_policy: PendingApprovalPolicy | None = None,
        *,
        pending_batch_size: int | None = None,
        webhook_batch_size: int | None = None,
        max_attempts: int | None = None,
        delivery_delay_seconds: float | None = None,
    ):
        self.store = store
        self.delivery = delivery
        self.approval_policy = approval_policy or ManualConfirmationPolicy()
        self.pending_batch_size = pending_batch_size or settings.PENDING_BATCH_SIZE
        self.webhook_batch_size = webhook_batch_size or settings.WEBHOOK_BATCH_SIZE
        self.max_attempts = max_attempts or settings.WEBHOOK_MAX_ATTEMPTS
        self.delivery_delay_seconds = (
            delivery_delay_seconds if delivery_delay_seconds is not None
            else settings.WEBHOOK_DELIVERY_DELAY_SECONDS
        )

    @log_step("reconciliation.resolve_pending")
    async def resolve_pending(self) -> int:
        """Applies the approval policy to the oldest pending sales. Returns how many moved."""
        sales = await self.store.list_by_status(SaleStatus.PENDING, self.pending_batch_size)
        if not sales:
            return 0
        logger.info("Found %d pending sales", len(sales),
                    extra={"extra": {"policy": self.approval_policy.name, "count": len(sales)}})

        resolved = 0
        for sale in sales:
            try:
                outcome = await self.approval_policy.decide(sale)
                if outcome is None:
                    continue
                if outcome is PaymentOutcome.APPROVED:
                    moved = await self.store.set_status(
                        sale.id, SaleStatus.APPROVED, utcnow(), expected_statuses=(SaleStatus.PENDING,)
                    )
                else:
                    moved = await self.store.set_status(
                        sale.id, SaleStatus.REJECTED, expected_statuses=(SaleStatus.PENDING,)
                    )
                if moved:
                    resolved += 1
                    logger.info("Pending sale %s resolved as %s", sale.id, outcome.value,
                                extra={"extra": {"sale_id": sale.id, "policy": self.approval_policy.name}})
            except Exception as e:
                logger.error("Failed to resolve pending sale %s: %s", sale.id, e,
                             extra={"extra": {"sale_id": sale.id}}, exc_info=True)
        return resolved

    @log_step("reconciliation.deliver_webhooks")
    async def deliver_webhooks(self) -> tuple[int, int]:
        """
        Notifies approved sales still owed a webhook. Returns (delivered, failed).

        The attempt counter is bumped before the call: a crash in the middle of
        a delivery still spends one of the max_attempts. Sales that run out of
        attempts stay unnotified and are no longer selected; the attempt log is
        the only trace of that.
        """
        sales = await self.store.list_approved_unnotified(self.webhook_batch_size, self.max_attempts)
        if not sales:
            return 0, 0
        logger.info("Found %d approved sales awaiting webhook", len(sales),
                    extra={"extra": {"count": len(sales)}})

        delivered, failed = 0, 0
        for index, sale in enumerate(sales):
            if index and self.delivery_delay_seconds > 0:
                await asyncio.sleep(self.delivery_delay_seconds)
            try:
                await self.store.increment_attempts(sale.id)
                attempt = sale.webhook_attempts + 1
                if await self.delivery.notify_approved_sale(sale):
                    await self.store.mark_notified(sale.id)
                    delivered += 1
                else:
                    failed += 1
                    logger.warning("Webhook attempt %d/%d failed for sale %s", attempt, self.max_attempts, sale.id,
                                   extra={"extra": {"sale_id": sale.id, "attempt": attempt,
                                                    "exhausted": attempt >= self.max_attempts}})
            except Exception as e:
                failed += 1
                logger.error("Webhook processing crashed for sale %s: %s", sale.id, e,
                             extra={"extra": {"sale_id": sale.id}}, exc_info=True)
        return delivered, failed

    async def run_sweeps(self) -> SweepReport:
        """Both sweeps in order; errors from either propagate."""
        resolved = await self.resolve_pending()
        delivered, failed = await self.deliver_webhooks()
        return SweepReport(pending_resolved=resolved, webhooks_delivered=delivered, webhooks_failed=failed)
