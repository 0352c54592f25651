from fastapi import APIRouter
from app.api.v1.endpoints import appointments, inventory, schedules, reminders

api_router = APIRouter()
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(schedules.router, prefix="/schedules", tags=["schedules"])
api_router.include_router(reminders.router, prefix="/reminders", tags=["reminders"])
