from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from vehicle_sales.repositories.base import SaleStore
from vehicle_sales.repositories.sale_repository import row_to_attempt_log, row_to_sale
from vehicle_sales.schemas.sale import PaymentMethod, SaleStatus

from conftest import OTHER_VALID_TAX_ID, VALID_TAX_ID


def _row(**overrides):
    row = {
        "id": "s-1",
        "vehicle_id": 42,
        "buyer_tax_id": VALID_TAX_ID,
        "amount_paid": 85000,
        "payment_method": "pix",
        "status": "approved",
        "payment_code": "PAG-1700000000000-ABCDEF01",
        "created_at": "2024-05-01 12:00:00",
        "updated_at": datetime(2024, 5, 1, 12, 0, 1),
        "approved_at": "2024-05-01T12:00:02Z",
        "webhook_notified": 0,
        "webhook_attempts": None,
    }
    row.update(overrides)
    return row


def test_row_to_sale_normalizes_driver_values():
    sale = row_to_sale(_row())

    assert sale.vehicle_id == "42"
    assert sale.amount_paid == Decimal("85000.00")
    assert sale.payment_method is PaymentMethod.PIX
    assert sale.status is SaleStatus.APPROVED
    assert sale.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert sale.updated_at.tzinfo is not None
    assert sale.approved_at == datetime(2024, 5, 1, 12, 0, 2, tzinfo=timezone.utc)
    assert sale.webhook_notified is False
    assert sale.webhook_attempts == 0

    assert row_to_sale(_row(webhook_notified="0")).webhook_notified is False
    assert row_to_sale(_row(webhook_notified="false")).webhook_notified is False
    assert row_to_sale(_row(webhook_notified=None)).webhook_notified is False
    assert row_to_sale(_row(webhook_notified="1")).webhook_notified is True
    assert row_to_sale(_row(webhook_notified="TRUE")).webhook_notified is True
    assert row_to_sale(_row(webhook_notified=1)).webhook_notified is True
    with pytest.raises(ValueError):
        row_to_sale(_row(webhook_notified="maybe"))


def test_row_to_sale_converts_offsets_to_utc():
    local = datetime(2024, 5, 1, 9, 0, tzinfo=timezone(timedelta(hours=-3)))
    sale = row_to_sale(_row(created_at=local, approved_at=None))

    assert sale.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert sale.approved_at is None


def test_row_to_sale_keeps_float_amounts_exact():
    assert row_to_sale(_row(amount_paid=0.1)).amount_paid == Decimal("0.10")


def test_row_to_attempt_log():
    entry = row_to_attempt_log({
        "id": 7,
        "sale_id": "s-1",
        "url": "https://partner.example.com/hook",
        "payload": "{}",
        "status_code": None,
        "response": None,
        "attempted_at": "2024-05-01 12:00:00",
        "success": 0,
    })
    assert entry.status_code == 0
    assert entry.success is False
    assert entry.attempted_at.tzinfo is timezone.utc


@pytest.mark.parametrize("raw, expected", [("0", False), ("false", False), ("1", True), ("true", True), (True, True)])
def test_row_to_attempt_log_parses_text_booleans(raw, expected):
    entry = row_to_attempt_log({
        "id": 8,
        "sale_id": "s-1",
        "url": "https://partner.example.com/hook",
        "payload": "{}",
        "status_code": 200,
        "response": "ok",
        "attempted_at": "2024-05-01 12:00:00",
        "success": raw,
    })
    assert entry.success is expected


def test_repository_satisfies_store_contract(repository):
    assert isinstance(repository, SaleStore)


async def test_create_and_lookups(repository, make_sale):
    sale = await make_sale(vehicle_id="v-1")

    assert await repository.get_by_id(sale.id) == sale
    assert await repository.get_by_payment_code(sale.payment_code) == sale
    assert await repository.get_by_id("nope") is None
    assert await repository.get_by_payment_code("PAG-0-00000000") is None


async def test_lists_are_newest_first(repository, make_sale):
    older = await make_sale(vehicle_id="v-1", buyer_tax_id=VALID_TAX_ID)
    newer = await make_sale(vehicle_id="v-1", buyer_tax_id=OTHER_VALID_TAX_ID)

    assert [s.id for s in await repository.list_by_vehicle("v-1")] == [newer.id, older.id]
    assert [s.id for s in await repository.list_by_tax_id(VALID_TAX_ID)] == [older.id]
    assert [s.id for s in await repository.list_all(limit=1)] == [newer.id]
    assert [s.id for s in await repository.list_all(limit=1, offset=1)] == [older.id]


async def test_list_by_status_oldest_first(repository, make_sale):
    first = await make_sale(vehicle_id="v-1")
    second = await make_sale(vehicle_id="v-2")
    await make_sale(vehicle_id="v-3", status=SaleStatus.REJECTED)

    pending = await repository.list_by_status(SaleStatus.PENDING, limit=10)
    assert [s.id for s in pending] == [first.id, second.id]


async def test_set_status_is_compare_and_set(repository, make_sale):
    sale = await make_sale()

    assert await repository.set_status(
        sale.id, SaleStatus.APPROVED, expected_statuses=(SaleStatus.PENDING,)
    ) is True
    assert await repository.set_status(
        sale.id, SaleStatus.REJECTED, expected_statuses=(SaleStatus.PENDING,)
    ) is False

    stored = await repository.get_by_id(sale.id)
    assert stored.status is SaleStatus.APPROVED
    assert stored.approved_at is not None
    assert stored.updated_at >= stored.created_at


async def test_set_status_uses_given_approval_time(repository, make_sale):
    sale = await make_sale()
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    await repository.set_status(sale.id, SaleStatus.APPROVED, when)
    assert (await repository.get_by_id(sale.id)).approved_at == when


async def test_leaving_approved_clears_approval_time(repository, make_sale):
    sale = await make_sale(status=SaleStatus.APPROVED)

    await repository.set_status(sale.id, SaleStatus.CANCELED, datetime.now(timezone.utc))
    stored = await repository.get_by_id(sale.id)
    assert stored.status is SaleStatus.CANCELED
    assert stored.approved_at is None


async def test_set_status_unknown_sale(repository):
    assert await repository.set_status("missing", SaleStatus.APPROVED) is False


async def test_update_fields(repository, make_sale):
    sale = await make_sale()

    updated = await repository.update_fields(sale.id, payment_method=PaymentMethod.BOLETO)
    assert updated.payment_method is PaymentMethod.BOLETO

    with pytest.raises(ValueError):
        await repository.update_fields(sale.id, webhook_notified=True)
    with pytest.raises(ValueError):
        await repository.update_fields(sale.id, approved_at=datetime.now(timezone.utc))

    approved = await repository.update_fields(sale.id, status=SaleStatus.APPROVED)
    assert approved.approved_at is not None
    assert await repository.update_fields("missing", status=SaleStatus.APPROVED) is None


async def test_approved_unnotified_selection(repository, make_sale):
    due = await make_sale(vehicle_id="v-1", status=SaleStatus.APPROVED)
    notified = await make_sale(vehicle_id="v-2", status=SaleStatus.APPROVED)
    exhausted = await make_sale(vehicle_id="v-3", status=SaleStatus.APPROVED)
    await make_sale(vehicle_id="v-4", status=SaleStatus.PENDING)

    await repository.mark_notified(notified.id)
    for _ in range(5):
        await repository.increment_attempts(exhausted.id)

    selected = await repository.list_approved_unnotified(limit=50, max_attempts=5)
    assert [s.id for s in selected] == [due.id]
    assert (await repository.get_by_id(exhausted.id)).webhook_attempts == 5


async def test_mark_notified_requires_approval(repository, make_sale):
    pending = await make_sale(vehicle_id="v-1")
    approved = await make_sale(vehicle_id="v-2", status=SaleStatus.APPROVED)

    assert await repository.mark_notified(pending.id) is False
    assert await repository.mark_notified(approved.id) is True
    assert (await repository.get_by_id(pending.id)).webhook_notified is False
    assert (await repository.get_by_id(approved.id)).webhook_notified is True


async def test_attempt_log_is_append_only_and_ordered(repository, make_sale):
    sale = await make_sale(status=SaleStatus.APPROVED)

    first = await repository.insert_attempt_log(
        sale_id=sale.id, url="https://x/hook", payload="{}", status_code=500, response="boom", success=False
    )
    second = await repository.insert_attempt_log(
        sale_id=sale.id, url="https://x/hook", payload="{}", status_code=200, response="ok", success=True
    )

    assert second.id > first.id
    logs = await repository.list_attempt_logs(sale.id)
    assert [(log.status_code, log.success) for log in logs] == [(500, False), (200, True)]
    assert await repository.list_attempt_logs("other") == []
