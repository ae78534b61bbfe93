"""Dependency providers for request handlers."""

from fastapi import Request

from vehicle_sales.background.scheduler import ReconciliationScheduler
from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.services.sale_service import SaleService


def get_store(request: Request) -> SaleStore:
    """Read the sale store from app state."""
    return request.app.state.sale_store


def get_sale_service(request: Request) -> SaleService:
    """Read the sale service from app state."""
    return request.app.state.sale_service


def get_scheduler(request: Request) -> ReconciliationScheduler:
    """Read the reconciliation scheduler from app state."""
    return request.app.state.reconciliation_scheduler
