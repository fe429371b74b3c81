"""
In-app notifications. Staff share role-scoped inboxes (JEFE, ADMIN); students use their own key.
Writers flush only; the caller commits together with the change that triggered the notification.
"""

from typing import List, Optional

from fastapi import status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.enums import NotificationType, UserRole
from app.core.exceptions import ServiceError
from app.core.models import Notification

DEPARTMENT_HEAD_KEY = "JEFE"
ADMIN_KEY = "ADMIN"
REVIEWER_KEYS = (DEPARTMENT_HEAD_KEY, ADMIN_KEY)

STREAM_BATCH_LIMIT = 20


def resolve_notification_target(user: CurrentUser) -> str:
    if user.role == UserRole.DEPARTMENT_HEAD:
        return DEPARTMENT_HEAD_KEY
    if user.role == UserRole.ADMIN:
        return ADMIN_KEY
    return user.student_key or user.user_key


async def insert_notification(
    db: AsyncSession,
    recipient: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    application_id: Optional[int] = None,
) -> Notification:
    notification = Notification(
        recipient=recipient,
        message=message,
        type=type.value,
        application_id=application_id,
        read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def notify_reviewers(db: AsyncSession, message: str, application_id: Optional[int] = None) -> None:
    for key in REVIEWER_KEYS:
        await insert_notification(db, key, message, NotificationType.INFO, application_id)


async def count_pending(db: AsyncSession, recipient: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient == recipient,
            Notification.read.is_(False),
        )
    )
    return int(result.scalar_one() or 0)


async def fetch_all(db: AsyncSession, recipient: str) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.recipient == recipient)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    return list(result.scalars().all())


async def fetch_unread(db: AsyncSession, recipient: str, limit: int = STREAM_BATCH_LIMIT) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.recipient == recipient, Notification.read.is_(False))
        .order_by(Notification.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def delete_notification(db: AsyncSession, recipient: str, notification_id: int) -> None:
    """Recipients can only delete their own notifications."""
    result = await db.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.recipient == recipient,
        )
    )
    if not result.rowcount:
        raise ServiceError("Notification not found", status.HTTP_404_NOT_FOUND)
    await db.commit()


async def mark_read(db: AsyncSession, recipient: str, notification_id: Optional[int] = None) -> int:
    """Mark one notification (or the whole inbox) as read. Returns the number of rows updated."""
    stmt = update(Notification).where(Notification.recipient == recipient, Notification.read.is_(False))
    if notification_id is not None:
        stmt = stmt.where(Notification.id == notification_id)
    result = await db.execute(stmt.values(read=True))
    await db.commit()
    return result.rowcount or 0
