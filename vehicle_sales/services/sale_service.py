import logging
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any

from vehicle_sales.core.exceptions import (
    AmountMismatchError,
    InvalidAmountError,
    InvalidTaxIdError,
    PriceConversionError,
    SaleAlreadyProcessedError,
    SaleNotFoundError,
    SaleValidationError,
    VehicleAlreadySoldError,
    VehicleNotFoundError,
    VehicleUnavailableError,
)
from vehicle_sales.core.observability import log_step
from vehicle_sales.integrations.vehicle_client import VehicleLookup
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.schemas.sale import (
    RESOLVABLE_STATUSES,
    PaymentMethod,
    PaymentOutcome,
    Sale,
    SaleStatus,
)
from .tax_id import is_valid_tax_id, normalize_tax_id

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = Decimal("0.01")
PAYMENT_CODE_PREFIX = "PAG"


def generate_payment_code() -> str:
    """PAG-<epoch millis>-<8 hex chars>; 32 random bits per millisecond."""
    millis = int(time.time() * 1000)
    return f"{PAYMENT_CODE_PREFIX}-{millis}-{secrets.token_hex(4).upper()}"


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


class SaleService:
    """Creates sales and applies payment results to them."""

    def __init__(self, store: SaleStore, vehicle_lookup: VehicleLookup):
        self.store = store
        self.vehicle_lookup = vehicle_lookup

    @log_step("sales.create")
    async def create_sale(
        self,
        vehicle_id: str,
        buyer_tax_id: str,
        amount_paid: Decimal | float | str,
        payment_method: PaymentMethod | str,
    ) -> Sale:
        # 1) Validation that needs no lookups
        if not is_valid_tax_id(buyer_tax_id):
            raise InvalidTaxIdError()

        amount = _to_decimal(amount_paid)
        if amount is None or amount <= 0:
            raise InvalidAmountError()

        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise SaleValidationError(f"Unsupported payment method: {payment_method!r}") from None

        # 2) Vehicle checks
        vehicle = await self.vehicle_lookup.get_vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(vehicle_id)
        if not vehicle.is_available:
            raise VehicleUnavailableError(vehicle_id, vehicle.status)

        price = _to_decimal(vehicle.price)
        if price is None:
            raise PriceConversionError(vehicle.price)
        if abs(amount - price) > PRICE_TOLERANCE:
            raise AmountMismatchError(amount, price)

        # 3) A vehicle can only be sold once; rejected/pending/canceled attempts do not count
        existing = await self.store.list_by_vehicle(vehicle_id)
        if any(s.status is SaleStatus.APPROVED for s in existing):
            raise VehicleAlreadySoldError(vehicle_id)

        sale = await self.store.create(
            vehicle_id=vehicle_id,
            buyer_tax_id=normalize_tax_id(buyer_tax_id),
            amount_paid=amount,
            payment_method=method,
            payment_code=generate_payment_code(),
            status=SaleStatus.PENDING,
        )
        logger.info("Sale created", extra={"extra": {"sale_id": sale.id, "vehicle_id": vehicle_id,
                                                      "payment_code": sale.payment_code}})
        return sale

    async def get_by_id(self, sale_id: str) -> Sale | None:
        return await self.store.get_by_id(sale_id)

    async def list_by_vehicle(self, vehicle_id: str) -> list[Sale]:
        return await self.store.list_by_vehicle(vehicle_id)

    async def list_by_tax_id(self, buyer_tax_id: str) -> list[Sale]:
        if not is_valid_tax_id(buyer_tax_id):
            raise InvalidTaxIdError()
        return await self.store.list_by_tax_id(normalize_tax_id(buyer_tax_id))

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Sale]:
        return await self.store.list_all(limit, offset)

    @log_step("sales.resolve_payment")
    async def resolve_payment(self, payment_code: str, outcome: PaymentOutcome | str) -> Sale:
        """
        Applies a payment provider result. Only pending/processing sales can be
        resolved, so a duplicate callback gets SaleAlreadyProcessedError.
        """
        try:
            outcome = PaymentOutcome(outcome)
        except ValueError:
            raise SaleValidationError(f"Unsupported payment outcome: {outcome!r}") from None

        sale = await self.store.get_by_payment_code(payment_code)
        if sale is None:
            raise SaleNotFoundError(payment_code)
        if sale.status not in RESOLVABLE_STATUSES:
            raise SaleAlreadyProcessedError(payment_code, sale.status.value)

        new_status = SaleStatus.APPROVED if outcome is PaymentOutcome.APPROVED else SaleStatus.REJECTED
        # Conditional write: a concurrent callback that got there first wins
        updated = await self.store.set_status(sale.id, new_status, expected_statuses=RESOLVABLE_STATUSES)
        if not updated:
            current = await self.store.get_by_id(sale.id)
            raise SaleAlreadyProcessedError(payment_code, current.status.value if current else None)

        logger.info("Payment resolved", extra={"extra": {"sale_id": sale.id, "payment_code": payment_code,
                                                          "status": new_status.value}})
        refreshed = await self.store.get_by_id(sale.id)
        if refreshed is None:
            raise SaleNotFoundError(payment_code)
        return refreshed

    async def mark_processing(self, payment_code: str) -> Sale:
        """pending -> processing, reported by the provider while the payment is in flight."""
        sale = await self.store.get_by_payment_code(payment_code)
        if sale is None:
            raise SaleNotFoundError(payment_code)
        if sale.status is SaleStatus.PROCESSING:
            return sale
        if sale.status is not SaleStatus.PENDING:
            raise SaleAlreadyProcessedError(payment_code, sale.status.value)

        updated = await self.store.set_status(
            sale.id, SaleStatus.PROCESSING, expected_statuses=(SaleStatus.PENDING,)
        )
        refreshed = await self.store.get_by_id(sale.id)
        if not updated and (refreshed is None or refreshed.status is not SaleStatus.PROCESSING):
            raise SaleAlreadyProcessedError(payment_code, refreshed.status.value if refreshed else None)
        return refreshed
