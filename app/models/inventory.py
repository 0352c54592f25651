"""Inventory models: stock items, service consumption links and the movement ledger."""

from sqlalchemy import (
    Column, String, DateTime, Integer, Numeric, Boolean, Text, ForeignKey,
    Enum as SQLEnum, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from datetime import datetime
from app.core.database import Base


class MovementType(str, enum.Enum):
    OPENING = "opening"
    CONSUMPTION = "consumption"
    ADJUSTMENT = "adjustment"
    PURCHASE = "purchase"
    WASTE = "waste"


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True, index=True)
    unit_of_measure = Column(String, nullable=False, default="unit")
    current_stock = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ServiceInventoryRelationship(Base):
    __tablename__ = "service_inventory_relationships"
    __table_args__ = (
        UniqueConstraint("service_id", "inventory_item_id", name="uq_service_inventory_item"),
        CheckConstraint("quantity_used > 0", name="ck_service_inventory_quantity_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    inventory_item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity_used = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StockMovement(Base):
    """Append-only ledger row. Sum of `quantity` per item == item.current_stock."""
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # signed delta
    movement_type = Column(
        SQLEnum(MovementType, name="movement_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    reason = Column(Text, nullable=True)
    appointment_id = Column(UUID(as_uuid=True), ForeignKey("appointments.id"), nullable=True, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
