"""Pydantic schemas for inventory and stock movements."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.inventory import MovementType
from app.services.inventory_ledger import AdjustmentType


class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: Optional[str] = None
    unit_of_measure: str = "unit"
    current_stock: int = 0
    minimum_stock: int = 0
    unit_cost: Decimal = Decimal("0")


class InventoryItemOut(BaseModel):
    id: UUID
    name: str
    sku: Optional[str] = None
    unit_of_measure: str
    current_stock: int
    minimum_stock: int
    unit_cost: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockAdjustmentRequest(BaseModel):
    adjustment_type: AdjustmentType
    quantity: int
    reason: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = None


class ServiceItemLink(BaseModel):
    service_id: UUID
    inventory_item_id: UUID
    quantity_used: int


class ServiceItemLinkOut(ServiceItemLink):
    id: UUID

    class Config:
        from_attributes = True


class ConsumeRequest(BaseModel):
    service_id: UUID
    appointment_id: Optional[UUID] = None


class ConsumedItemOut(BaseModel):
    item_id: UUID
    item_name: str
    quantity: int
    remaining_stock: int


class LowStockItemOut(BaseModel):
    item_id: UUID
    item_name: str
    current_stock: int
    minimum_stock: int


class ConsumptionResponse(BaseModel):
    service_id: UUID
    appointment_id: Optional[UUID] = None
    consumed: list[ConsumedItemOut]
    low_stock_alerts: list[LowStockItemOut]


class StockMovementOut(BaseModel):
    id: UUID
    item_id: UUID
    quantity: int
    movement_type: MovementType
    reason: Optional[str] = None
    appointment_id: Optional[UUID] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ServiceRequirementOut(BaseModel):
    inventory_item_id: UUID
    item_name: str
    quantity_required: int
    current_stock: int
    unit_of_measure: str
    is_available: bool
