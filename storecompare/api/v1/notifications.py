import logging
from typing import Dict

from fastapi import APIRouter, Depends, Path, Query

from storecompare.api.deps import get_current_user_id, get_notification_store, http_error
from storecompare.errors import EngineError, NotificationNotFound
from storecompare.schemas.notifications import NotificationListResponse, UnreadCountResponse
from storecompare.services.async_query_service import async_query_service
from storecompare.services.stores import NotificationStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    store: NotificationStore = Depends(get_notification_store),
) -> NotificationListResponse:
    """The signed-in shopper's most recent notifications, newest first."""
    try:
        notifications = await async_query_service.run(store.list_recent, user_id, limit, operation="list_notifications")
    except EngineError as e:
        raise http_error(e)
    return NotificationListResponse(notifications=notifications)


@router.get("/unread", response_model=NotificationListResponse)
async def list_unread_notifications(
    user_id: str = Depends(get_current_user_id),
    store: NotificationStore = Depends(get_notification_store),
) -> NotificationListResponse:
    try:
        notifications = await async_query_service.run(store.list_unread, user_id, operation="list_unread")
    except EngineError as e:
        raise http_error(e)
    return NotificationListResponse(notifications=notifications)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    store: NotificationStore = Depends(get_notification_store),
) -> UnreadCountResponse:
    try:
        unread = await async_query_service.run(store.unread_count, user_id, operation="unread_count")
    except EngineError as e:
        raise http_error(e)
    return UnreadCountResponse(unread=unread)


@router.post("/read-all")
async def mark_all_notifications_read(
    user_id: str = Depends(get_current_user_id),
    store: NotificationStore = Depends(get_notification_store),
) -> Dict:
    """Mark every unread notification of the shopper as read."""
    try:
        updated = await async_query_service.run(store.mark_all_read, user_id, operation="mark_all_read")
    except EngineError as e:
        raise http_error(e)
    return {"status": "ok", "updated": updated}


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str = Path(..., description="Notification id"),
    user_id: str = Depends(get_current_user_id),
    store: NotificationStore = Depends(get_notification_store),
) -> Dict:
    try:
        updated = await async_query_service.run(store.mark_read, notification_id, user_id, operation="mark_read")
        if not updated:
            raise NotificationNotFound(f"Notification {notification_id} not found")
    except EngineError as e:
        raise http_error(e)
    return {"status": "ok"}
