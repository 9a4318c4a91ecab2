"""
Notification endpoints:
  GET  /notifications?user_id=       — latest notifications, newest first
  POST /notifications/read?user_id=  — mark all as read
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bydbio import notifications
from bydbio.database import get_db, get_session_factory
from bydbio.schemas import NotificationView

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[NotificationView])
async def list_notifications(
    user_id: str = Query(...),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await notifications.list_notifications(session_factory, user_id)


@router.post("/read")
async def mark_read(user_id: str = Query(...), db: AsyncSession = Depends(get_db)):
    updated = await notifications.mark_notifications_read(db, user_id)
    return {"user_id": user_id, "updated": updated}
