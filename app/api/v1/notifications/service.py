"""
In-app notification fan-out. Invoked after a workflow transaction has committed:
a failure here is logged and swallowed and never rolls back the triggering operation.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.enums import NotificationType
from app.core.logging import get_logger
from app.core.models import Notification

from .schemas import NotificationResponse

logger = get_logger(__name__)


@dataclass
class OutgoingNotification:
    """One message addressed to a user or to every active user holding a role."""

    title: str
    message: str
    type: str = NotificationType.INFO.value
    user_id: Optional[UUID] = None
    role: Optional[str] = None


class NotificationService:
    """Writes notification rows in the caller's session. Caller commits."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def notify(self, user_id: UUID, title: str, message: str, type: str = NotificationType.INFO.value) -> None:
        self.db.add(Notification(user_id=user_id, title=title, message=message, type=type))

    async def notify_role(self, role: str, title: str, message: str, type: str = NotificationType.INFO.value) -> int:
        result = await self.db.execute(
            select(User.id).where(User.role == role, User.status == "ACTIVE")
        )
        user_ids = list(result.scalars().all())
        for user_id in user_ids:
            await self.notify(user_id, title, message, type)
        return len(user_ids)


async def deliver(db: AsyncSession, *messages: OutgoingNotification) -> bool:
    """Persist messages in their own commit. Returns False (after logging) if anything failed."""
    service = NotificationService(db)
    try:
        for m in messages:
            if m.role is not None:
                await service.notify_role(m.role, m.title, m.message, m.type)
            elif m.user_id is not None:
                await service.notify(m.user_id, m.title, m.message, m.type)
        await db.commit()
        return True
    except Exception:
        logger.warning("notification_delivery_failed", titles=[m.title for m in messages], exc_info=True)
        await db.rollback()
        return False


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        user_id=n.user_id,
        title=n.title,
        message=n.message,
        type=n.type,
        is_read=n.is_read,
        created_at=n.created_at,
    )


async def list_notifications(
    db: AsyncSession,
    user_id: UUID,
    unread_only: bool = False,
) -> List[NotificationResponse]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc())
    result = await db.execute(stmt)
    return [_to_response(n) for n in result.scalars().all()]


async def mark_read(db: AsyncSession, user_id: UUID, notification_id: UUID) -> bool:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    await db.commit()
    return result.rowcount > 0
