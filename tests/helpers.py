"""Small builders shared by the test modules."""

from datetime import date, time
from decimal import Decimal
from typing import Optional

from app.models.inventory import InventoryItem
from app.models.user import Caller, Role, User
from app.schemas.appointment import AppointmentCreate, ExternalClientInfo
from app.services.auth import create_access_token
from app.services.inventory_ledger import create_inventory_item, link_service_item

BOOKING_DAY = date(2030, 6, 3)  # a Monday, far enough ahead for reminders


async def make_user(db, role: Role, first_name: str, phone: Optional[str] = None, email: Optional[str] = None) -> User:
    user = User(first_name=first_name, last_name="Test", role=role.value, phone=phone, email=email)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def caller_for(user: User) -> Caller:
    return Caller.from_user(user)


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def at(hour: int, minute: int = 0) -> time:
    return time(hour, minute)


def booking_request(
    practitioner,
    services,
    start: time,
    client=None,
    external: Optional[dict] = None,
    day: date = BOOKING_DAY,
    **extra,
) -> AppointmentCreate:
    return AppointmentCreate(
        practitioner_id=practitioner.id if practitioner else None,
        service_ids=[s.id for s in services],
        client_id=client.id if client else None,
        is_external_client=external is not None,
        external_client=ExternalClientInfo(**external) if external is not None else None,
        appointment_date=day,
        start_time=start,
        **extra,
    )


async def stocked_item(db, service, name: str, stock: int, quantity_used: int, minimum: int = 0) -> InventoryItem:
    item = await create_inventory_item(
        db, name=name, current_stock=stock, minimum_stock=minimum, unit_cost=Decimal("10.00")
    )
    await link_service_item(db, service.id, item.id, quantity_used)
    return item
