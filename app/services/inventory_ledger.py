"""Inventory stock ledger.

Every change to `InventoryItem.current_stock` is made together with exactly one
`StockMovement` row in the same transaction, so the per-item sum of movements
always equals current stock. Decrements are conditional UPDATEs
(``WHERE current_stock >= :qty``): the row lock they take serializes concurrent
consumers of the same item, and a zero rowcount means the stock is not there.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AppointmentNotFound,
    InsufficientStock,
    InvalidQuantity,
    InventoryItemNotFound,
    ServiceNotFound,
)
from app.models.appointment import Appointment
from app.models.inventory import InventoryItem, MovementType, ServiceInventoryRelationship, StockMovement
from app.models.service import Service

logger = logging.getLogger(__name__)


class AdjustmentType(str, enum.Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    PURCHASE = "purchase"
    WASTE = "waste"


_ADJUSTMENT_MOVEMENT = {
    AdjustmentType.INCREASE: (1, MovementType.ADJUSTMENT),
    AdjustmentType.DECREASE: (-1, MovementType.ADJUSTMENT),
    AdjustmentType.PURCHASE: (1, MovementType.PURCHASE),
    AdjustmentType.WASTE: (-1, MovementType.WASTE),
}


@dataclass
class ConsumedItem:
    item_id: UUID
    item_name: str
    quantity: int
    remaining_stock: int


@dataclass
class LowStockAlert:
    item_id: UUID
    item_name: str
    current_stock: int
    minimum_stock: int


@dataclass
class ConsumptionResult:
    service_id: UUID
    appointment_id: Optional[UUID]
    consumed: list[ConsumedItem] = field(default_factory=list)
    low_stock_alerts: list[LowStockAlert] = field(default_factory=list)


def is_low_stock(item: InventoryItem) -> bool:
    return item.current_stock <= item.minimum_stock


def _alert_for(item: InventoryItem) -> LowStockAlert:
    return LowStockAlert(
        item_id=item.id,
        item_name=item.name,
        current_stock=item.current_stock,
        minimum_stock=item.minimum_stock,
    )


def _conditional_decrement(item_id: UUID, quantity: int):
    return (
        update(InventoryItem)
        .where(InventoryItem.id == item_id, InventoryItem.current_stock >= quantity)
        .values(current_stock=InventoryItem.current_stock - quantity, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


async def _get_item(db: AsyncSession, item_id: UUID) -> InventoryItem:
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.is_deleted == False,  # noqa: E712
        )
    )
    item = result.scalar_one_or_none()
    if not item:
        raise InventoryItemNotFound(item_id)
    return item


async def _service_links(db: AsyncSession, service_id: UUID):
    # Fixed item order so two consumers touching the same items lock them in the same sequence
    result = await db.execute(
        select(ServiceInventoryRelationship, InventoryItem)
        .join(InventoryItem, InventoryItem.id == ServiceInventoryRelationship.inventory_item_id)
        .where(
            ServiceInventoryRelationship.service_id == service_id,
            ServiceInventoryRelationship.is_active == True,  # noqa: E712
            ServiceInventoryRelationship.is_deleted == False,  # noqa: E712
            InventoryItem.is_deleted == False,  # noqa: E712
        )
        .order_by(InventoryItem.id)
    )
    return result.all()


async def consume_for_service(
    db: AsyncSession,
    service_id: UUID,
    appointment_id: Optional[UUID] = None,
    actor_id: Optional[UUID] = None,
) -> ConsumptionResult:
    """Decrement every item linked to a service by its quantity_used, all or nothing.

    Raises InsufficientStock (after rolling back every decrement of this call) if
    any item is short. Items left at or below their minimum are reported as
    low-stock alerts but never block the consumption.
    """
    if await db.get(Service, service_id) is None:
        raise ServiceNotFound([service_id])
    if appointment_id is not None and await db.get(Appointment, appointment_id) is None:
        raise AppointmentNotFound(appointment_id)

    result = ConsumptionResult(service_id=service_id, appointment_id=appointment_id)
    links = await _service_links(db, service_id)
    if not links:
        return result

    try:
        for link, item in links:
            outcome = await db.execute(_conditional_decrement(item.id, link.quantity_used))
            if outcome.rowcount != 1:
                available = await db.scalar(
                    select(InventoryItem.current_stock).where(InventoryItem.id == item.id)
                )
                raise InsufficientStock(item.id, item.name, link.quantity_used, available or 0)

            db.add(StockMovement(
                item_id=item.id,
                quantity=-link.quantity_used,
                movement_type=MovementType.CONSUMPTION,
                reason=f"Consumed by service {service_id}",
                appointment_id=appointment_id,
                created_by=actor_id,
            ))

        await db.flush()
        refreshed = await db.execute(
            select(InventoryItem)
            .where(InventoryItem.id.in_([item.id for _, item in links]))
            .execution_options(populate_existing=True)
        )
        items = {item.id: item for item in refreshed.scalars().all()}
        await db.commit()
    except InsufficientStock as e:
        await db.rollback()
        logger.warning(
            "Stock consumption for service %s (appointment %s) rolled back: %s",
            service_id, appointment_id, e.message,
        )
        raise
    except Exception:
        await db.rollback()
        logger.exception("Stock consumption for service %s failed", service_id)
        raise

    for link, _ in links:
        item = items[link.inventory_item_id]
        result.consumed.append(ConsumedItem(
            item_id=item.id,
            item_name=item.name,
            quantity=link.quantity_used,
            remaining_stock=item.current_stock,
        ))
        if is_low_stock(item):
            result.low_stock_alerts.append(_alert_for(item))
            logger.warning(
                "Low stock: %s at %s (minimum %s)", item.name, item.current_stock, item.minimum_stock
            )

    logger.info(
        "Consumed %d item(s) for service %s on appointment %s",
        len(result.consumed), service_id, appointment_id,
    )
    return result


async def create_inventory_item(
    db: AsyncSession,
    name: str,
    current_stock: int = 0,
    minimum_stock: int = 0,
    unit_cost: Decimal = Decimal("0"),
    sku: Optional[str] = None,
    unit_of_measure: str = "unit",
    actor_id: Optional[UUID] = None,
) -> InventoryItem:
    """Create an item; its opening stock is written as an OPENING movement."""
    if current_stock < 0:
        raise InvalidQuantity("current_stock", current_stock)
    if minimum_stock < 0:
        raise InvalidQuantity("minimum_stock", minimum_stock)

    item = InventoryItem(
        name=name,
        sku=sku,
        unit_of_measure=unit_of_measure,
        current_stock=current_stock,
        minimum_stock=minimum_stock,
        unit_cost=unit_cost,
    )
    db.add(item)
    await db.flush()
    if current_stock:
        db.add(StockMovement(
            item_id=item.id,
            quantity=current_stock,
            movement_type=MovementType.OPENING,
            reason="Opening stock",
            created_by=actor_id,
        ))
    await db.commit()
    await db.refresh(item)
    return item


async def adjust_stock(
    db: AsyncSession,
    item_id: UUID,
    adjustment_type: AdjustmentType,
    quantity: int,
    reason: str,
    notes: Optional[str] = None,
    actor_id: Optional[UUID] = None,
) -> InventoryItem:
    """Manual stock change. Decreases that would go below zero raise InsufficientStock."""
    if quantity <= 0:
        raise InvalidQuantity("quantity", quantity)

    item = await _get_item(db, item_id)
    sign, movement_type = _ADJUSTMENT_MOVEMENT[AdjustmentType(adjustment_type)]
    delta = sign * quantity

    try:
        if delta < 0:
            outcome = await db.execute(_conditional_decrement(item.id, quantity))
            if outcome.rowcount != 1:
                raise InsufficientStock(item.id, item.name, quantity, item.current_stock)
        else:
            await db.execute(
                update(InventoryItem)
                .where(InventoryItem.id == item.id)
                .values(current_stock=InventoryItem.current_stock + quantity, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )

        db.add(StockMovement(
            item_id=item.id,
            quantity=delta,
            movement_type=movement_type,
            reason=f"{reason} - {notes}" if notes else reason,
            created_by=actor_id,
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(item)
    logger.info("Adjusted stock of %s by %+d (%s): now %s", item.name, delta, movement_type.value, item.current_stock)
    return item


async def link_service_item(
    db: AsyncSession, service_id: UUID, item_id: UUID, quantity_used: int
) -> ServiceInventoryRelationship:
    """Create or update how much of an item one performance of a service uses."""
    if quantity_used <= 0:
        raise InvalidQuantity("quantity_used", quantity_used)
    if await db.get(Service, service_id) is None:
        raise ServiceNotFound([service_id])
    await _get_item(db, item_id)

    result = await db.execute(
        select(ServiceInventoryRelationship).where(
            ServiceInventoryRelationship.service_id == service_id,
            ServiceInventoryRelationship.inventory_item_id == item_id,
        )
    )
    link = result.scalar_one_or_none()
    if link:
        link.quantity_used = quantity_used
        link.is_active = True
        link.is_deleted = False
    else:
        link = ServiceInventoryRelationship(
            service_id=service_id, inventory_item_id=item_id, quantity_used=quantity_used
        )
        db.add(link)
    await db.commit()
    await db.refresh(link)
    return link


async def get_service_requirements(db: AsyncSession, service_id: UUID) -> list[dict]:
    """What one performance of a service needs, and whether stock covers it now."""
    return [
        {
            "inventory_item_id": item.id,
            "item_name": item.name,
            "quantity_required": link.quantity_used,
            "current_stock": item.current_stock,
            "unit_of_measure": item.unit_of_measure,
            "is_available": item.current_stock >= link.quantity_used,
        }
        for link, item in await _service_links(db, service_id)
    ]


async def get_low_stock_items(db: AsyncSession) -> list[LowStockAlert]:
    result = await db.execute(
        select(InventoryItem)
        .where(
            InventoryItem.is_deleted == False,  # noqa: E712
            InventoryItem.is_active == True,  # noqa: E712
            InventoryItem.current_stock <= InventoryItem.minimum_stock,
        )
        .order_by(InventoryItem.name)
    )
    return [_alert_for(item) for item in result.scalars().all()]


async def get_stock_movements(db: AsyncSession, item_id: UUID, limit: int = 50) -> list[StockMovement]:
    await _get_item(db, item_id)
    result = await db.execute(
        select(StockMovement)
        .where(StockMovement.item_id == item_id)
        .order_by(StockMovement.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def ledger_balance(db: AsyncSession, item_id: UUID) -> int:
    """Sum of every movement for an item; equals its current_stock."""
    total = await db.scalar(
        select(func.coalesce(func.sum(StockMovement.quantity), 0)).where(StockMovement.item_id == item_id)
    )
    return int(total)
