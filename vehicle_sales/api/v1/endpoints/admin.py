from uuid import uuid4

from fastapi import APIRouter, Depends

from vehicle_sales.api.dependencies import get_scheduler
from vehicle_sales.background.scheduler import ReconciliationScheduler
from vehicle_sales.core.logging import set_request_id
from vehicle_sales.schemas.api import SchedulerStatusResponse
from vehicle_sales.schemas.sale import SweepReport


router = APIRouter()


@router.post(
    "/admin/reconciliation/run",
    response_model=SweepReport,
    summary="Run the reconciliation sweeps now",
)
async def run_reconciliation(scheduler: ReconciliationScheduler = Depends(get_scheduler)):
    """
    Runs the pending resolution and webhook sweeps synchronously and returns
    their counts. Waits if a scheduled sweep is in progress.
    """
    set_request_id(str(uuid4()))
    return await scheduler.run_once()


@router.get(
    "/admin/reconciliation/status",
    response_model=SchedulerStatusResponse,
    summary="Reconciliation scheduler state",
)
async def reconciliation_status(scheduler: ReconciliationScheduler = Depends(get_scheduler)):
    return SchedulerStatusResponse(
        active=scheduler.is_active(),
        interval_seconds=scheduler.interval_seconds,
        approval_policy=scheduler.reconciliation.approval_policy.name,
    )
