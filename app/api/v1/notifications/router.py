from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db, get_session_factory

from .schemas import MarkReadResponse, NotificationCount, NotificationResponse
from . import service
from .stream import notification_events

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[NotificationResponse]:
    target = service.resolve_notification_target(current_user)
    rows = await service.fetch_all(db, target)
    return [NotificationResponse.model_validate(r) for r in rows]


@router.get("/count", response_model=NotificationCount)
async def count_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationCount:
    target = service.resolve_notification_target(current_user)
    return NotificationCount(count=await service.count_pending(db, target))


@router.post("/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    notification_id: Optional[int] = Query(None, alias="id"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> MarkReadResponse:
    """Mark one notification (?id=) or the whole inbox as read."""
    target = service.resolve_notification_target(current_user)
    return MarkReadResponse(updated=await service.mark_read(db, target, notification_id))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    target = service.resolve_notification_target(current_user)
    try:
        await service.delete_notification(db, target, notification_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: CurrentUser = Depends(get_current_user),
) -> StreamingResponse:
    """Server-Sent Events; one channel per connection, closed when the client goes away."""
    target = service.resolve_notification_target(current_user)
    return StreamingResponse(
        notification_events(target, session_factory, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
