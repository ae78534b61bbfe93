"""
Sale repository (persistence).

Persistence operations only: business rules such as "one approved sale per
vehicle" live in the sale service. The few guards kept here are the ones the
data model itself requires (approved_at only on approved sales, notified only
when approved, attempts never decrease).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vehicle_sales.db.base_class import utcnow
from vehicle_sales.models.sale import SaleRecord
from vehicle_sales.models.webhook_attempt_log import WebhookAttemptLog
from vehicle_sales.schemas.sale import (
    PaymentMethod,
    Sale,
    SaleStatus,
    WebhookAttemptLogEntry,
)

_CENTS = Decimal("0.01")

# Columns update_fields may touch; counters and flags have dedicated operations
_UPDATABLE_FIELDS = frozenset({"status", "approved_at", "payment_method"})

_sales = SaleRecord.__table__
_attempt_logs = WebhookAttemptLog.__table__


def _parse_utc_datetime(value: Any) -> datetime:
    """Parse a driver timestamp into a timezone-aware UTC datetime.

    Drivers without timezone support (SQLite, MySQL DATETIME) hand back naive
    values or ISO strings; both are taken as UTC.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_utc_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    return _parse_utc_datetime(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value.quantize(_CENTS)
    # Floats go through str() so 0.1 stays 0.1
    return Decimal(str(value)).quantize(_CENTS)


_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y"})
_FALSE_STRINGS = frozenset({"0", "false", "f", "no", "n", ""})


def _to_bool(value: Any) -> bool:
    """Driver booleans: real bools, 0/1 integers, or their text forms."""
    if value is None:
        return False
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"Unrecognised boolean value: {value!r}")
    return bool(value)


def row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a ``sales`` row (any mapping of column name to value) into a Sale."""

    return Sale(
        id=str(row["id"]),
        vehicle_id=str(row["vehicle_id"]),
        buyer_tax_id=str(row["buyer_tax_id"]),
        amount_paid=_to_decimal(row["amount_paid"]),
        payment_method=PaymentMethod(str(row["payment_method"])),
        status=SaleStatus(str(row["status"])),
        payment_code=str(row["payment_code"]),
        created_at=_parse_utc_datetime(row["created_at"]),
        updated_at=_parse_utc_datetime(row["updated_at"]),
        approved_at=_optional_utc_datetime(row.get("approved_at")),
        webhook_notified=_to_bool(row.get("webhook_notified")),
        webhook_attempts=int(row.get("webhook_attempts") or 0),
    )


def row_to_attempt_log(row: Mapping[str, Any]) -> WebhookAttemptLogEntry:
    """Convert a ``webhook_attempt_logs`` row into a WebhookAttemptLogEntry."""

    return WebhookAttemptLogEntry(
        id=int(row["id"]),
        sale_id=str(row["sale_id"]),
        url=str(row["url"]),
        payload=str(row["payload"]),
        status_code=int(row.get("status_code") or 0),
        response=row.get("response"),
        attempted_at=_parse_utc_datetime(row["attempted_at"]),
        success=_to_bool(row.get("success")),
    )


def _status_values(status: SaleStatus, approved_at: datetime | None) -> dict[str, Any]:
    """Values written with a status change: approved_at only lives on approved sales."""

    status = SaleStatus(status)
    if status is SaleStatus.APPROVED:
        return {"status": status.value, "approved_at": approved_at or utcnow()}
    return {"status": status.value, "approved_at": None}


class SQLAlchemySaleRepository:
    """Sale store backed by SQLAlchemy async sessions."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def _fetch_one(self, stmt) -> Sale | None:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
            return row_to_sale(row) if row is not None else None

    async def _fetch_all(self, stmt) -> list[Sale]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [row_to_sale(row) for row in result.mappings().all()]

    async def _execute_update(self, stmt) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0

    async def create(
        self,
        *,
        vehicle_id: str,
        buyer_tax_id: str,
        amount_paid: Decimal,
        payment_method: PaymentMethod,
        payment_code: str,
        status: SaleStatus = SaleStatus.PENDING,
    ) -> Sale:
        record = SaleRecord(
            vehicle_id=vehicle_id,
            buyer_tax_id=buyer_tax_id,
            amount_paid=_to_decimal(amount_paid),
            payment_method=PaymentMethod(payment_method).value,
            status=SaleStatus(status).value,
            payment_code=payment_code,
            webhook_notified=False,
            webhook_attempts=0,
        )
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
            sale_id = record.id

        sale = await self.get_by_id(sale_id)
        if sale is None:
            raise RuntimeError(f"Sale {sale_id} vanished right after insert")
        return sale

    async def get_by_id(self, sale_id: str) -> Sale | None:
        return await self._fetch_one(select(_sales).where(_sales.c.id == sale_id))

    async def get_by_payment_code(self, payment_code: str) -> Sale | None:
        return await self._fetch_one(
            select(_sales).where(_sales.c.payment_code == payment_code)
        )

    async def list_by_vehicle(self, vehicle_id: str) -> list[Sale]:
        return await self._fetch_all(
            select(_sales)
            .where(_sales.c.vehicle_id == vehicle_id)
            .order_by(_sales.c.created_at.desc())
        )

    async def list_by_tax_id(self, buyer_tax_id: str) -> list[Sale]:
        return await self._fetch_all(
            select(_sales)
            .where(_sales.c.buyer_tax_id == buyer_tax_id)
            .order_by(_sales.c.created_at.desc())
        )

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Sale]:
        return await self._fetch_all(
            select(_sales)
            .order_by(_sales.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

    async def list_by_status(self, status: SaleStatus, limit: int) -> list[Sale]:
        """Oldest first."""
        return await self._fetch_all(
            select(_sales)
            .where(_sales.c.status == SaleStatus(status).value)
            .order_by(_sales.c.created_at.asc())
            .limit(limit)
        )

    async def update_fields(self, sale_id: str, **fields: Any) -> Sale | None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated directly: {sorted(unknown)}")
        if not fields:
            return await self.get_by_id(sale_id)

        values: dict[str, Any] = {}
        if "payment_method" in fields:
            values["payment_method"] = PaymentMethod(fields["payment_method"]).value
        if "status" in fields:
            values.update(_status_values(fields["status"], fields.get("approved_at")))
        elif "approved_at" in fields:
            # approved_at alone is only meaningful on an approved sale
            current = await self.get_by_id(sale_id)
            if current is None:
                return None
            if current.status is not SaleStatus.APPROVED:
                raise ValueError("approved_at can only be set on an approved sale")
            values["approved_at"] = fields["approved_at"]

        values["updated_at"] = utcnow()
        await self._execute_update(
            update(_sales).where(_sales.c.id == sale_id).values(**values)
        )
        return await self.get_by_id(sale_id)

    async def set_status(
        self,
        sale_id: str,
        status: SaleStatus,
        approved_at: datetime | None = None,
        *,
        expected_statuses: Iterable[SaleStatus] | None = None,
    ) -> bool:
        """Write a status; with ``expected_statuses`` this is a compare-and-set.

        Returns False when no row matched (unknown id or status already moved on).
        """
        stmt = update(_sales).where(_sales.c.id == sale_id)
        if expected_statuses is not None:
            stmt = stmt.where(
                _sales.c.status.in_([SaleStatus(s).value for s in expected_statuses])
            )
        stmt = stmt.values(**_status_values(status, approved_at), updated_at=utcnow())
        return await self._execute_update(stmt)

    async def list_approved_unnotified(
        self, limit: int, max_attempts: int
    ) -> list[Sale]:
        """Approved sales still owed a webhook, oldest approval first."""
        return await self._fetch_all(
            select(_sales)
            .where(
                _sales.c.status == SaleStatus.APPROVED.value,
                _sales.c.webhook_notified.is_(False),
                _sales.c.webhook_attempts < max_attempts,
            )
            .order_by(_sales.c.approved_at.asc(), _sales.c.created_at.asc())
            .limit(limit)
        )

    async def increment_attempts(self, sale_id: str) -> bool:
        return await self._execute_update(
            update(_sales)
            .where(_sales.c.id == sale_id)
            .values(
                webhook_attempts=_sales.c.webhook_attempts + 1,
                updated_at=utcnow(),
            )
        )

    async def mark_notified(self, sale_id: str) -> bool:
        return await self._execute_update(
            update(_sales)
            .where(
                _sales.c.id == sale_id,
                _sales.c.status == SaleStatus.APPROVED.value,
            )
            .values(webhook_notified=True, updated_at=utcnow())
        )

    async def insert_attempt_log(
        self,
        *,
        sale_id: str,
        url: str,
        payload: str,
        status_code: int,
        response: str | None,
        success: bool,
    ) -> WebhookAttemptLogEntry:
        entry = WebhookAttemptLog(
            sale_id=sale_id,
            url=url,
            payload=payload,
            status_code=status_code,
            response=response,
            success=success,
            attempted_at=utcnow(),
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
        return row_to_attempt_log({c.key: getattr(entry, c.key) for c in _attempt_logs.c})

    async def list_attempt_logs(
        self, sale_id: str
    ) -> list[WebhookAttemptLogEntry]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(_attempt_logs)
                .where(_attempt_logs.c.sale_id == sale_id)
                .order_by(_attempt_logs.c.id.asc())
            )
            return [row_to_attempt_log(row) for row in result.mappings().all()]
