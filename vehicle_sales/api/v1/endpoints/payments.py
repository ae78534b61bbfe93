import logging

from fastapi import APIRouter, Depends

from vehicle_sales.api.dependencies import get_sale_service
from vehicle_sales.schemas.api import PaymentCallbackRequest
from vehicle_sales.schemas.sale import Sale, SaleStatus
from vehicle_sales.services.sale_service import SaleService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/payments/callback", response_model=Sale, summary="Payment provider callback")
async def payment_callback(
    body: PaymentCallbackRequest,
    service: SaleService = Depends(get_sale_service),
):
    """
    Applies the provider's result to the sale identified by ``codigoPagamento``.

    A second callback for an already resolved sale answers 409. Approved sales
    are notified downstream by the reconciliation scheduler, not here.
    """
    if body.outcome is None:
        return await service.mark_processing(body.codigoPagamento)

    sale = await service.resolve_payment(body.codigoPagamento, body.outcome)
    if sale.status is SaleStatus.APPROVED:
        logger.info("Sale %s approved, webhook will go out on the next sweep", sale.id)
    return sale
