"""
Notification endpoints.

Every query is scoped to the calling actor. A notification belonging to
someone else behaves as if it did not exist.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from ..actors.models import Actor
from ..notifications.models import Notification
from ..notifications.store import NotificationStore
from .dependencies import get_current_actor

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationListResponse(BaseModel):
    success: bool = True
    data: List[Notification]
    unread: int


class UnreadCountResponse(BaseModel):
    success: bool = True
    count: int


class MarkReadResponse(BaseModel):
    success: bool = True
    updated: int


def get_notification_store(request: Request) -> NotificationStore:
    return request.app.state.notification_store


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=500),
    store: NotificationStore = Depends(get_notification_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    List the caller's notifications, newest first.

    unread counts every unread notification, not just this page.
    """
    items = store.list_notifications(actor.id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(data=items, unread=store.count_unread(actor.id))


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    store: NotificationStore = Depends(get_notification_store),
    actor: Actor = Depends(get_current_actor),
):
    return UnreadCountResponse(count=store.count_unread(actor.id))


@router.patch("/read-all", response_model=MarkReadResponse)
def mark_all_read(
    store: NotificationStore = Depends(get_notification_store),
    actor: Actor = Depends(get_current_actor),
):
    return MarkReadResponse(updated=store.mark_all_read(actor.id))


@router.patch("/{notification_id}/read", response_model=MarkReadResponse)
def mark_read(
    notification_id: str,
    store: NotificationStore = Depends(get_notification_store),
    actor: Actor = Depends(get_current_actor),
):
    if not store.mark_read(notification_id, actor.id):
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return MarkReadResponse(updated=1)
