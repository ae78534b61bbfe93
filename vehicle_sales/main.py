import asyncio
import logging

import httpx
from fastapi import FastAPI, HTTPException

from vehicle_sales.api.v1.endpoints import admin, payments, sales
from vehicle_sales.background.scheduler import ReconciliationScheduler
from vehicle_sales.core.config import settings
from vehicle_sales.core.exceptions import register_exception_handlers
from vehicle_sales.core.logging import configure_logging, set_run_id
from vehicle_sales.integrations.vehicle_client import VehicleApiClient, VehicleLookup
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.services.approval_policy import PendingApprovalPolicy, build_approval_policy
from vehicle_sales.services.reconciliation_service import ReconciliationService
from vehicle_sales.services.sale_service import SaleService
from vehicle_sales.services.webhook_service import WebhookDeliveryService

# Initialize logging before anything else
configure_logging()
set_run_id()  # Set unique run ID for this application instance

logger = logging.getLogger(__name__)


def create_app(
    *,
    store: SaleStore | None = None,
    vehicle_lookup: VehicleLookup | None = None,
    webhook_client: httpx.AsyncClient | None = None,
    approval_policy: PendingApprovalPolicy | None = None,
    start_scheduler: bool | None = None,
    run_migrations: bool | None = None,
) -> FastAPI:
    """
    Builds the application with its collaborators on ``app.state``.

    Anything not passed in is built from settings: the SQL store on the
    configured database, the vehicle catalogue client and the approval policy
    named by AUTO_APPROVAL_POLICY. Migrations only run for the default store.
    """
    owns_store = store is None
    if store is None:
        from vehicle_sales.db.session import async_session_factory
        from vehicle_sales.repositories.sale_repository import SQLAlchemySaleRepository

        store = SQLAlchemySaleRepository(async_session_factory)

    owned_vehicle_client = None
    if vehicle_lookup is None:
        owned_vehicle_client = VehicleApiClient()
        vehicle_lookup = owned_vehicle_client

    if approval_policy is None:
        approval_policy = build_approval_policy(settings.AUTO_APPROVAL_POLICY)
    if start_scheduler is None:
        start_scheduler = settings.SCHEDULER_ENABLED
    if run_migrations is None:
        run_migrations = settings.RUN_MIGRATIONS_ON_STARTUP and owns_store

    delivery = WebhookDeliveryService(store, client=webhook_client)
    reconciliation = ReconciliationService(store, delivery, approval_policy)
    scheduler = ReconciliationScheduler(reconciliation)

    async def startup_event():
        if run_migrations:
            from vehicle_sales.db.migrations import upgrade_to_head

            await asyncio.to_thread(upgrade_to_head)
        if start_scheduler:
            logger.info("Starting reconciliation scheduler...")
            scheduler.start(settings.SCHEDULER_INTERVAL_SECONDS)
        else:
            logger.info("Reconciliation scheduler disabled")

    async def shutdown_event():
        logger.info("Shutting down reconciliation scheduler...")
        scheduler.stop()
        await scheduler.join()
        await delivery.close()
        if owned_vehicle_client is not None:
            await owned_vehicle_client.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        on_startup=[startup_event],
        on_shutdown=[shutdown_event],
    )
    app.state.sale_store = store
    app.state.sale_service = SaleService(store, vehicle_lookup)
    app.state.reconciliation_scheduler = scheduler

    @app.get("/", tags=["Health Check"])
    def read_root():
        return {"status": "ok", "project_name": settings.PROJECT_NAME}

    @app.get("/health/db", tags=["Health Check"])
    async def health_db():
        """Database connectivity check."""
        from sqlalchemy import text
        from vehicle_sales.db.session import get_session

        try:
            async for session in get_session():
                await session.execute(text("SELECT 1"))
                return {"db": "ok"}
        except Exception as e:
            raise HTTPException(status_code=503, detail={"db": "error", "message": str(e)})

    register_exception_handlers(app)
    app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
    app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
    app.include_router(admin.router, prefix="/api/v1", tags=["Admin"])
    return app


app = create_app()
