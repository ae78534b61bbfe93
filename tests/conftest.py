"""Shared fixtures: in-memory SQLite store and a fake vehicle catalogue."""

from __future__ import annotations

import os

# Settings are read at import time; keep tests off Postgres and the real scheduler
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("LOG_FORMAT", "text")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from vehicle_sales.db.base_class import Base  # noqa: E402
from vehicle_sales.integrations.vehicle_client import AVAILABLE_FOR_SALE, VehicleInfo  # noqa: E402
from vehicle_sales.repositories.sale_repository import SQLAlchemySaleRepository  # noqa: E402
from vehicle_sales.schemas.sale import PaymentMethod, SaleStatus  # noqa: E402
from vehicle_sales.services.sale_service import SaleService, generate_payment_code  # noqa: E402

VALID_TAX_ID = "52998224725"
OTHER_VALID_TAX_ID = "11144477735"


class FakeVehicleCatalog:
    """Vehicle lookup backed by a dict; records every id it was asked for."""

    def __init__(self) -> None:
        self.vehicles: dict[str, VehicleInfo] = {}
        self.calls: list[str] = []

    def add(self, vehicle_id: str, price="85000.00", status: str = AVAILABLE_FOR_SALE) -> VehicleInfo:
        vehicle = VehicleInfo(id=vehicle_id, price=price, status=status)
        self.vehicles[vehicle_id] = vehicle
        return vehicle

    async def get_vehicle(self, vehicle_id: str) -> VehicleInfo | None:
        self.calls.append(vehicle_id)
        return self.vehicles.get(vehicle_id)


@pytest.fixture()
async def async_engine():
    """Create an in-memory aiosqlite async engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def async_session_factory(async_engine):
    """Create an async session factory bound to the in-memory engine."""
    factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    yield factory


@pytest.fixture()
def repository(async_session_factory) -> SQLAlchemySaleRepository:
    return SQLAlchemySaleRepository(async_session_factory)


@pytest.fixture()
def vehicle_catalog() -> FakeVehicleCatalog:
    catalog = FakeVehicleCatalog()
    catalog.add("v-1", price="85000.00")
    return catalog


@pytest.fixture()
def sale_service(repository, vehicle_catalog) -> SaleService:
    return SaleService(repository, vehicle_catalog)


@pytest.fixture()
def make_sale(repository):
    """Insert a sale straight into the store, bypassing the vehicle checks."""

    async def _make(
        vehicle_id: str = "v-1",
        status: SaleStatus = SaleStatus.PENDING,
        buyer_tax_id: str = VALID_TAX_ID,
        amount_paid: Decimal = Decimal("85000.00"),
        payment_method: PaymentMethod = PaymentMethod.PIX,
    ):
        sale = await repository.create(
            vehicle_id=vehicle_id,
            buyer_tax_id=buyer_tax_id,
            amount_paid=amount_paid,
            payment_method=payment_method,
            payment_code=generate_payment_code(),
        )
        if status is not SaleStatus.PENDING:
            await repository.set_status(sale.id, status)
            sale = await repository.get_by_id(sale.id)
        return sale

    return _make
