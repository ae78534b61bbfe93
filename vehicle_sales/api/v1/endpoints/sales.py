from fastapi import APIRouter, Depends, HTTPException, Query

from vehicle_sales.api.dependencies import get_sale_service, get_store
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.schemas.api import CreateSaleRequest
from vehicle_sales.schemas.sale import Sale, WebhookAttemptLogEntry
from vehicle_sales.services.sale_service import SaleService


router = APIRouter()


@router.post("/sales", status_code=201, response_model=Sale, summary="Create a sale")
async def create_sale(
    body: CreateSaleRequest,
    service: SaleService = Depends(get_sale_service),
):
    """
    Creates a pending sale once the tax id, the amount and the vehicle check out.

    The amount must match the vehicle's listed price (0.01 tolerance) and the
    vehicle must not have an approved sale already.
    """
    return await service.create_sale(
        vehicle_id=body.vehicle_id,
        buyer_tax_id=body.buyer_tax_id,
        amount_paid=body.amount_paid,
        payment_method=body.payment_method,
    )


@router.get("/sales", response_model=list[Sale], summary="List sales")
async def list_sales(
    vehicle_id: str | None = Query(default=None, description="Only sales of this vehicle"),
    tax_id: str | None = Query(default=None, description="Only sales of this buyer"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: SaleService = Depends(get_sale_service),
):
    if vehicle_id and tax_id:
        sales = await service.list_by_tax_id(tax_id)
        return [s for s in sales if s.vehicle_id == vehicle_id]
    if vehicle_id:
        return await service.list_by_vehicle(vehicle_id)
    if tax_id:
        return await service.list_by_tax_id(tax_id)
    return await service.list_all(limit, offset)


@router.get("/sales/{sale_id}", response_model=Sale, summary="Get a sale")
async def get_sale(sale_id: str, service: SaleService = Depends(get_sale_service)):
    sale = await service.get_by_id(sale_id)
    if sale is None:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale


@router.get("/sales/{sale_id}/webhook-attempts", response_model=list[WebhookAttemptLogEntry],
            summary="Webhook delivery attempts of a sale")
async def list_webhook_attempts(sale_id: str, store: SaleStore = Depends(get_store)):
    if await store.get_by_id(sale_id) is None:
        raise HTTPException(status_code=404, detail="Sale not found")
    return await store.list_attempt_logs(sale_id)
