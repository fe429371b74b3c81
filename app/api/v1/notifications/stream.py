"""
Server-Sent Events feed for one inbox. Polls the table and pushes unread rows this channel has not sent yet.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.models import Notification

from . import service

logger = logging.getLogger(__name__)


def format_event(notification: Notification) -> str:
    data = {
        "id": notification.id,
        "solicitud_id": notification.application_id,
        "type": notification.type,
        "message": notification.message,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
    return f"event: notification\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


async def notification_events(
    recipient: str,
    session_factory: async_sessionmaker,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval: Optional[float] = None,
) -> AsyncIterator[str]:
    interval = settings.notification_poll_interval_seconds if poll_interval is None else poll_interval
    sent: Set[int] = set()
    yield ": connected\n\n"
    try:
        while not await is_disconnected():
            try:
                async with session_factory() as db:
                    rows = await service.fetch_unread(db, recipient)
            except Exception as e:
                logger.warning("Notification poll failed for %s: %s", recipient, e)
                rows = []
            for row in rows:
                if row.id in sent:
                    continue
                sent.add(row.id)
                yield format_event(row)
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.debug("Notification stream for %s cancelled", recipient)
        raise
