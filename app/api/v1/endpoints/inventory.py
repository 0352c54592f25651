"""Inventory endpoints: items, service links, manual adjustments and consumption."""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_staff
from app.models.user import Caller
from app.schemas.inventory import (
    ConsumeRequest,
    ConsumptionResponse,
    ConsumedItemOut,
    InventoryItemCreate,
    InventoryItemOut,
    LowStockItemOut,
    ServiceItemLink,
    ServiceItemLinkOut,
    ServiceRequirementOut,
    StockAdjustmentRequest,
    StockMovementOut,
)
from app.services import inventory_ledger

router = APIRouter()


@router.post("/items", response_model=InventoryItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: InventoryItemCreate,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await inventory_ledger.create_inventory_item(
        db,
        name=payload.name,
        sku=payload.sku,
        unit_of_measure=payload.unit_of_measure,
        current_stock=payload.current_stock,
        minimum_stock=payload.minimum_stock,
        unit_cost=payload.unit_cost,
        actor_id=caller.id,
    )


@router.post("/items/{item_id}/adjust", response_model=InventoryItemOut)
async def adjust_item_stock(
    item_id: UUID,
    payload: StockAdjustmentRequest,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Manual stock change; cannot take stock below zero."""
    return await inventory_ledger.adjust_stock(
        db,
        item_id,
        adjustment_type=payload.adjustment_type,
        quantity=payload.quantity,
        reason=payload.reason,
        notes=payload.notes,
        actor_id=caller.id,
    )


@router.get("/items/{item_id}/movements", response_model=list[StockMovementOut])
async def item_movements(
    item_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await inventory_ledger.get_stock_movements(db, item_id, limit=limit)


@router.get("/low-stock", response_model=list[LowStockItemOut])
async def low_stock(
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Items at or below their minimum. Alert only; bookings are never blocked."""
    alerts = await inventory_ledger.get_low_stock_items(db)
    return [LowStockItemOut(**vars(a)) for a in alerts]


@router.put("/service-links", response_model=ServiceItemLinkOut)
async def link_service_item(
    payload: ServiceItemLink,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await inventory_ledger.link_service_item(
        db, payload.service_id, payload.inventory_item_id, payload.quantity_used
    )


@router.get("/services/{service_id}/requirements", response_model=list[ServiceRequirementOut])
async def service_requirements(
    service_id: UUID,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await inventory_ledger.get_service_requirements(db, service_id)


@router.post("/consume", response_model=ConsumptionResponse)
async def consume_for_service(
    payload: ConsumeRequest,
    caller: Caller = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Take one service's worth of stock, all items or none."""
    result = await inventory_ledger.consume_for_service(
        db, payload.service_id, payload.appointment_id, caller.id
    )
    return ConsumptionResponse(
        service_id=result.service_id,
        appointment_id=result.appointment_id,
        consumed=[ConsumedItemOut(**vars(c)) for c in result.consumed],
        low_stock_alerts=[LowStockItemOut(**vars(a)) for a in result.low_stock_alerts],
    )
