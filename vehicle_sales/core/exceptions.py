"""Sales error taxonomy and their HTTP mapping."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class SalesError(Exception):
    """Base class for every error raised by the sales core."""

    code = "sales_error"
    status_code = 400


# --- Validation errors: raised before any lookup or mutation ---

class SaleValidationError(SalesError):
    code = "validation_error"
    status_code = 400


class InvalidTaxIdError(SaleValidationError):
    code = "invalid_tax_id"

    def __init__(self, message: str = "Invalid buyer tax id"):
        super().__init__(message)


class InvalidAmountError(SaleValidationError):
    code = "invalid_amount"

    def __init__(self, message: str = "Amount paid must be greater than zero"):
        super().__init__(message)


class AmountMismatchError(SaleValidationError):
    code = "amount_mismatch"

    def __init__(self, amount_paid, vehicle_price):
        self.amount_paid = amount_paid
        self.vehicle_price = vehicle_price
        super().__init__(
            f"Amount paid ({amount_paid:.2f}) does not match the vehicle price ({vehicle_price:.2f})"
        )


class PriceConversionError(SaleValidationError):
    code = "price_conversion_error"

    def __init__(self, raw_price):
        self.raw_price = raw_price
        super().__init__(f"Vehicle price is not a number: {raw_price!r}")


# --- Not found ---

class ResourceNotFoundError(SalesError):
    code = "not_found"
    status_code = 404


class VehicleNotFoundError(ResourceNotFoundError):
    code = "vehicle_not_found"

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} not found")


class SaleNotFoundError(ResourceNotFoundError):
    code = "sale_not_found"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Sale {reference} not found")


# --- Conflicts: raised after lookups, before mutation ---

class SaleConflictError(SalesError):
    code = "conflict"
    status_code = 409


class VehicleUnavailableError(SaleConflictError):
    code = "vehicle_unavailable"

    def __init__(self, vehicle_id: str, status: str | None = None):
        self.vehicle_id = vehicle_id
        self.vehicle_status = status
        super().__init__(f"Vehicle {vehicle_id} is not available for sale (status={status})")


class VehicleAlreadySoldError(SaleConflictError):
    code = "vehicle_already_sold"

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} has already been sold")


class SaleAlreadyProcessedError(SaleConflictError):
    code = "sale_already_processed"

    def __init__(self, payment_code: str, status: str | None = None):
        self.payment_code = payment_code
        self.sale_status = status
        super().__init__(f"Sale with payment code {payment_code} was already processed (status={status})")


# --- External collaborators ---

class VehicleLookupError(SalesError):
    """The vehicle catalogue could not be reached."""

    code = "vehicle_service_unavailable"
    status_code = 502


def register_exception_handlers(app: FastAPI) -> None:
    """Register one handler for the whole taxonomy.

    Every subclass carries its own ``status_code`` and ``code``:
    validation → 400, not found → 404, conflict → 409,
    vehicle service unreachable → 502.
    """

    @app.exception_handler(SalesError)
    async def _sales_error(request: Request, exc: SalesError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc), "code": exc.code},
        )
