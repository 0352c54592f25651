"""Scheduled reminder job, triggered by an external cron with a shared secret."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import verify_cron_secret
from app.schemas.notification import ReminderRunResponse
from app.services.notification_orchestrator import process_due_reminders

router = APIRouter()


@router.post("/process", response_model=ReminderRunResponse, dependencies=[Depends(verify_cron_secret)])
async def process_reminders(db: AsyncSession = Depends(get_db)):
    summary = await process_due_reminders(db)
    return ReminderRunResponse(
        processed=summary.processed,
        sent=summary.sent,
        failed=summary.failed,
        suppressed=summary.suppressed,
    )
