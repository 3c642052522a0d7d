"""Notification API routes: list, mark read, dismiss."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from deploywatch.notifications.store import NotificationStore

notification_router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_store(request: Request) -> NotificationStore:
    return request.app.state.notifications  # type: ignore[no-any-return]


@notification_router.get("/")
def list_notifications(
    limit: int = 50, include_dismissed: bool = False, request: Request = None,
) -> dict[str, Any]:
    store = _get_store(request)
    items = store.list_recent(limit, include_dismissed)
    return {
        "notifications": [n.to_dict() for n in items],
        "unread": store.unread_count(),
    }


@notification_router.post("/{notification_id}/read")
def mark_read(notification_id: str, request: Request) -> dict[str, Any]:
    if not _get_store(request).mark_read(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return {"id": notification_id, "read": True}


@notification_router.post("/{notification_id}/dismiss")
def dismiss(notification_id: str, request: Request) -> dict[str, Any]:
    if not _get_store(request).dismiss(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return {"id": notification_id, "dismissed": True}
