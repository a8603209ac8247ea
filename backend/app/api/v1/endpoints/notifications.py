"""
Notification endpoints.

WHAT: Inbox list, unread count, mark-all-read, and a live SSE stream
WHY: The list is the source of truth; the stream is a best-effort push
HOW: notification_service for reads/writes, EventSourceResponse over a hub
     subscription to notification_<userId>
"""

import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ....core.config import settings
from ....core.realtime import RealtimeHub, Subscriber
from ....models.events import notification_topic
from ....services import notification_service
from ....utils.logger import get_logger
from ...deps import CurrentUser, get_current_user, get_hub

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications")


@router.get("")
def list_notifications(user: CurrentUser = Depends(get_current_user)):
    """All of the caller's notifications, newest first."""
    return notification_service.list_for(user.id)


@router.get("/unread-count")
def unread_count(user: CurrentUser = Depends(get_current_user)):
    return {"unread": notification_service.unread_count(user.id)}


@router.put("/read")
def mark_all_read(user: CurrentUser = Depends(get_current_user)):
    updated = notification_service.mark_all_read(user.id)
    return {"Status": "Success", "updated": updated}


async def notification_event_generator(request: Request, hub: RealtimeHub,
                                       subscriber: Subscriber) -> AsyncIterator[dict]:
    """
    Relay hub events for one user as SSE events.

    WHAT: Forward every frame queued for this subscriber
    WHY: Live inbox updates for clients without a WebSocket
    HOW: Await the subscriber queue; stop on hub shutdown or disconnect
    """
    logger.info(f"SSE notification stream opened for user {subscriber.user_id}")
    try:
        while True:
            envelope = await subscriber.next_event()
            if envelope is None or await request.is_disconnected():
                break
            yield {
                "event": envelope["event"],
                "data": json.dumps(envelope["data"]),
            }
    finally:
        hub.unsubscribe(subscriber)
        logger.info(f"SSE notification stream closed for user {subscriber.user_id}")


@router.get("/stream")
async def notification_stream(request: Request,
                              user: CurrentUser = Depends(get_current_user),
                              hub: RealtimeHub = Depends(get_hub)):
    """
    Server-Sent Events feed of the caller's notifications.

    Heartbeat comments every SSE_HEARTBEAT_INTERVAL seconds keep proxies open.
    """
    subscriber = hub.subscribe(user.id, [notification_topic(user.id)])
    return EventSourceResponse(
        notification_event_generator(request, hub, subscriber),
        ping=settings.SSE_HEARTBEAT_INTERVAL,
    )
