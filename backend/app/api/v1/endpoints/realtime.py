"""
WebSocket endpoint for the realtime channel.

WHAT: One bidirectional socket per client at /ws
WHY: Live chat rooms, notification pushes and story counters
HOW: Frames are {"event": name, "data": payload}. A pump task drains the
     connection's hub subscription into the socket while the receive loop
     handles join_room / leave_room / send_message
"""

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from ....core.realtime import RealtimeHub, Subscriber
from ....middleware.error_handler import GENERIC_ERROR
from ....models.events import (
    ERROR, JOIN_ROOM, LEAVE_ROOM, SEND_MESSAGE, STORIES_TOPIC, notification_topic,
)
from ....services import chat_service
from ....utils.exceptions import AuthError, ThriftlyError, ValidationError
from ....utils.logger import get_logger
from ...deps import authenticate, extract_token

logger = get_logger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


def _room_from(data: Any) -> str:
    """join_room carries either the bare room id or {"room": id}."""
    room = data.get("room") if isinstance(data, dict) else data
    if not isinstance(room, str) or not room:
        raise ValidationError("Room id is required")
    return room


def _error_frame(message: str, frame: Any) -> dict:
    event = frame.get("event") if isinstance(frame, dict) else None
    return {"event": ERROR, "data": {"error": message, "event": event}}


async def _pump(websocket: WebSocket, subscriber: Subscriber):
    """Forward queued events to the socket until the hub closes the subscriber."""
    try:
        while True:
            envelope = await subscriber.next_event()
            if envelope is None:
                await websocket.close()
                return
            await websocket.send_json(envelope)
    except (WebSocketDisconnect, RuntimeError) as e:
        # Socket went away mid-send; the receive loop does the cleanup
        logger.debug(f"Pump stopped for {subscriber}: {e}")


async def _handle_frame(hub: RealtimeHub, subscriber: Subscriber, user_id: int, frame: Any):
    if not isinstance(frame, dict) or "event" not in frame:
        raise ValidationError("Frames must look like {\"event\": ..., \"data\": ...}")

    event, data = frame["event"], frame.get("data")

    if event == JOIN_ROOM:
        room = _room_from(data)
        chat_service.resolve_room(user_id, room)
        hub.join(subscriber, room)
        logger.debug(f"User {user_id} joined {room}")

    elif event == LEAVE_ROOM:
        hub.leave(subscriber, _room_from(data))

    elif event == SEND_MESSAGE:
        if not isinstance(data, dict):
            raise ValidationError("send_message needs an object payload")
        if data.get("room"):
            product_id, receiver_id = chat_service.resolve_room(user_id, data["room"])
        else:
            try:
                product_id, receiver_id = int(data["product_id"]), int(data["receiver_id"])
            except (KeyError, TypeError, ValueError):
                raise ValidationError("send_message needs room or receiver_id and product_id")
        text = data.get("message", "")
        if not isinstance(text, str):
            raise ValidationError("Message must be text")
        await chat_service.send(hub, user_id, receiver_id, product_id, text, origin=subscriber)

    else:
        raise ValidationError(f"Unknown event '{event}'")


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """
    Authenticated realtime connection.

    The connection is subscribed to its own notification topic and the
    stories topic on connect; chat rooms are joined explicitly.
    """
    hub: RealtimeHub = websocket.app.state.hub
    token: Optional[str] = extract_token(websocket.cookies, websocket.headers, websocket.query_params)
    try:
        user = await run_in_threadpool(authenticate, token)
    except AuthError as e:
        logger.info(f"Rejected WebSocket connection: {e.message}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    subscriber = hub.subscribe(user.id, [notification_topic(user.id), STORIES_TOPIC])
    pump = asyncio.create_task(_pump(websocket, subscriber))
    logger.info(f"WebSocket connected for user {user.id}")

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                subscriber.offer({"event": ERROR, "data": {"error": "Invalid JSON"}})
                continue
            try:
                await _handle_frame(hub, subscriber, user.id, frame)
            except ThriftlyError as e:
                subscriber.offer(_error_frame(e.message, frame))
            except Exception as e:
                logger.exception(f"Unhandled error on socket frame from user {user.id}: {e}")
                subscriber.offer(_error_frame(GENERIC_ERROR, frame))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user.id}")
    finally:
        hub.unsubscribe(subscriber)
        pump.cancel()
