"""What the pending sweep does with a sale still waiting for its payment result."""

import logging
from typing import Protocol, runtime_checkable

from vehicle_sales.schemas.sale import PaymentOutcome, Sale

logger = logging.getLogger(__name__)


@runtime_checkable
class PendingApprovalPolicy(Protocol):
    name: str

    async def decide(self, sale: Sale) -> PaymentOutcome | None:
        """Outcome to apply now, or None to leave the sale pending."""
        ...


class ManualConfirmationPolicy:
    """Pending sales wait for the payment provider's callback."""

    name = "manual"

    async def decide(self, sale: Sale) -> PaymentOutcome | None:
        return None


class UnconditionalApprovalPolicy:
    """Approves every pending sale without any payment confirmation.

    Demo/test behaviour only: a sale gets approved whether or not it was paid.
    """

    name = "unconditional"

    def __init__(self):
        logger.warning(
            "Unconditional auto-approval is enabled: pending sales will be approved "
            "without payment confirmation. Not safe for production."
        )

    async def decide(self, sale: Sale) -> PaymentOutcome | None:
        return PaymentOutcome.APPROVED


_POLICIES = {
    ManualConfirmationPolicy.name: ManualConfirmationPolicy,
    UnconditionalApprovalPolicy.name: UnconditionalApprovalPolicy,
}


def build_approval_policy(name: str) -> PendingApprovalPolicy:
    try:
        return _POLICIES[name.strip().lower()]()
    except KeyError:
        raise ValueError(f"Unknown auto-approval policy {name!r}; expected one of {sorted(_POLICIES)}") from None
