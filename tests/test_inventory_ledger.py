"""Tests for stock consumption and the movement ledger."""

import asyncio
import uuid

import pytest
from sqlalchemy import select

from app.core.errors import InsufficientStock, InvalidQuantity, InventoryItemNotFound, ServiceNotFound
from app.models.appointment import AppointmentStatus
from app.models.inventory import InventoryItem, MovementType, StockMovement
from app.services.booking import create_booking, transition_status
from app.services.inventory_ledger import (
    AdjustmentType,
    adjust_stock,
    consume_for_service,
    create_inventory_item,
    get_low_stock_items,
    get_service_requirements,
    get_stock_movements,
    ledger_balance,
    link_service_item,
)
from tests.helpers import at, booking_request, caller_for, stocked_item


async def _stock(db, item_id) -> int:
    return await db.scalar(select(InventoryItem.current_stock).where(InventoryItem.id == item_id))


async def _movements(db, item_id, movement_type):
    result = await db.execute(
        select(StockMovement).where(StockMovement.item_id == item_id, StockMovement.movement_type == movement_type)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_opening_stock_is_a_movement(db):
    item = await create_inventory_item(db, name="Gloves", current_stock=40, minimum_stock=5)
    assert item.current_stock == 40
    assert await ledger_balance(db, item.id) == 40
    assert len(await _movements(db, item.id, MovementType.OPENING)) == 1


@pytest.mark.asyncio
async def test_negative_opening_stock_rejected(db):
    with pytest.raises(InvalidQuantity):
        await create_inventory_item(db, name="Gloves", current_stock=-1)


@pytest.mark.asyncio
async def test_consumption_decrements_each_linked_item(db, service):
    serum = await stocked_item(db, service, "Serum", stock=10, quantity_used=2)
    pads = await stocked_item(db, service, "Cotton pads", stock=50, quantity_used=5)

    result = await consume_for_service(db, service.id)

    assert {c.item_name: c.remaining_stock for c in result.consumed} == {"Serum": 8, "Cotton pads": 45}
    assert await _stock(db, serum.id) == 8
    assert await _stock(db, pads.id) == 45
    for item in (serum, pads):
        assert await ledger_balance(db, item.id) == await _stock(db, item.id)
        assert len(await _movements(db, item.id, MovementType.CONSUMPTION)) == 1


@pytest.mark.asyncio
async def test_consumption_is_all_or_nothing(db, service):
    plenty = await stocked_item(db, service, "Serum", stock=10, quantity_used=2)
    short = await stocked_item(db, service, "Mask", stock=1, quantity_used=2)
    plenty_id, short_id = plenty.id, short.id

    with pytest.raises(InsufficientStock) as exc_info:
        await consume_for_service(db, service.id)

    assert exc_info.value.required == 2
    assert exc_info.value.available == 1
    assert await _stock(db, plenty_id) == 10
    assert await _stock(db, short_id) == 1
    assert await _movements(db, plenty_id, MovementType.CONSUMPTION) == []
    assert await ledger_balance(db, plenty_id) == 10


@pytest.mark.asyncio
async def test_service_without_links_consumes_nothing(db, service):
    result = await consume_for_service(db, service.id)
    assert result.consumed == []
    assert result.low_stock_alerts == []


@pytest.mark.asyncio
async def test_unknown_service_rejected(db):
    with pytest.raises(ServiceNotFound):
        await consume_for_service(db, uuid.uuid4())


@pytest.mark.asyncio
async def test_low_stock_alert_does_not_block(db, service):
    item = await stocked_item(db, service, "Serum", stock=5, quantity_used=2, minimum=3)

    result = await consume_for_service(db, service.id)

    assert await _stock(db, item.id) == 3
    assert [(a.item_name, a.current_stock, a.minimum_stock) for a in result.low_stock_alerts] == [("Serum", 3, 3)]
    assert [a.item_id for a in await get_low_stock_items(db)] == [item.id]


@pytest.mark.asyncio
async def test_concurrent_consumers_never_oversell(session_factory, db, service):
    item = await stocked_item(db, service, "Serum", stock=3, quantity_used=2)

    async def consume():
        async with session_factory() as session:
            return await consume_for_service(session, service.id)

    results = await asyncio.gather(consume(), consume(), return_exceptions=True)

    assert sum(1 for r in results if isinstance(r, InsufficientStock)) == 1
    assert await _stock(db, item.id) == 1
    assert await ledger_balance(db, item.id) == 1


@pytest.mark.asyncio
async def test_completion_with_short_stock_still_completes(db, practitioner, client_user, service, channels):
    """Stock 1, service needs 2: completion succeeds with a warning and no consumption."""
    item = await stocked_item(db, service, "Serum", stock=1, quantity_used=2)
    item_id = item.id
    booked = await create_booking(db, booking_request(practitioner, [service], at(9), client=client_user))

    result = await transition_status(db, booked.appointment_id, AppointmentStatus.COMPLETED, caller_for(practitioner))

    assert result.appointment.status == AppointmentStatus.COMPLETED
    assert any("Insufficient stock for Serum" in w for w in result.warnings)
    assert await _stock(db, item_id) == 1
    assert await _movements(db, item_id, MovementType.CONSUMPTION) == []


@pytest.mark.asyncio
async def test_completion_consumes_per_service_occurrence(db, practitioner, client_user, service, channels):
    item = await stocked_item(db, service, "Serum", stock=10, quantity_used=2, minimum=6)
    booked = await create_booking(db, booking_request(practitioner, [service, service], at(9), client=client_user))

    result = await transition_status(db, booked.appointment_id, AppointmentStatus.COMPLETED, caller_for(practitioner))

    assert await _stock(db, item.id) == 6
    movements = await _movements(db, item.id, MovementType.CONSUMPTION)
    assert len(movements) == 2
    assert all(m.appointment_id == booked.appointment_id for m in movements)
    assert [a.current_stock for a in result.low_stock_alerts] == [6]
    assert any(w.startswith("Low stock: Serum") for w in result.warnings)


@pytest.mark.asyncio
async def test_adjustments_write_movements(db, admin):
    item = await create_inventory_item(db, name="Gloves", current_stock=10)

    await adjust_stock(db, item.id, AdjustmentType.PURCHASE, 15, "Supplier delivery", actor_id=admin.id)
    await adjust_stock(db, item.id, AdjustmentType.WASTE, 3, "Expired")
    item = await adjust_stock(db, item.id, AdjustmentType.DECREASE, 2, "Stock count", notes="box damaged")

    assert item.current_stock == 20
    assert await ledger_balance(db, item.id) == 20
    movements = await get_stock_movements(db, item.id)
    assert sorted(m.quantity for m in movements) == [-3, -2, 10, 15]
    assert any(m.reason == "Stock count - box damaged" for m in movements)


@pytest.mark.asyncio
async def test_adjustment_cannot_go_negative(db):
    item = await create_inventory_item(db, name="Gloves", current_stock=2)
    item_id = item.id

    with pytest.raises(InsufficientStock):
        await adjust_stock(db, item_id, AdjustmentType.WASTE, 3, "Spill")
    with pytest.raises(InvalidQuantity):
        await adjust_stock(db, item_id, AdjustmentType.INCREASE, 0, "Nothing")
    with pytest.raises(InventoryItemNotFound):
        await adjust_stock(db, uuid.uuid4(), AdjustmentType.INCREASE, 1, "Missing")

    assert await _stock(db, item_id) == 2
    assert await ledger_balance(db, item_id) == 2


@pytest.mark.asyncio
async def test_service_requirements(db, service):
    item = await stocked_item(db, service, "Serum", stock=1, quantity_used=2)
    await link_service_item(db, service.id, item.id, 1)  # upsert

    [requirement] = await get_service_requirements(db, service.id)
    assert requirement["quantity_required"] == 1
    assert requirement["is_available"] is True
