"""
Chat message store, conversation aggregation and live relay.

WHAT: Persist buyer/seller messages, read history, list conversations
WHY: The message log is the durable record behind the realtime rooms
HOW: SQLAlchemy queries keyed by room id; send() persists under a per-room
     lock and only then publishes receive_message to the room
"""

from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.models import Message, NotificationType, Product, User
from ..core.realtime import RealtimeHub, Subscriber
from ..core.security import make_room_id, parse_room_id
from ..models.events import RECEIVE_MESSAGE
from ..utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..utils.logger import get_logger
from . import notification_service

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000


def serialize_message(message: Message) -> dict:
    return {
        "id": message.id,
        "room": message.room_id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "product_id": message.product_id,
        "message": message.message,
        "created_at": message.created_at.isoformat(),
    }


def append_message(db: Session, sender_id: int, receiver_id: int,
                   product_id: int, text: str) -> Message:
    """
    Persist one chat message inside the caller's transaction.

    Args:
        db: Database session
        sender_id: Author
        receiver_id: Other participant
        product_id: Listing the conversation is about
        text: Message body

    Returns:
        The flushed Message (id and created_at assigned)

    Raises:
        ValidationError: Empty or oversized text
        ConflictError: sender_id == receiver_id
        NotFoundError: Unknown sender, receiver or product
    """
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")
    if sender_id == receiver_id:
        raise ConflictError("You cannot message yourself")

    for user_id in (sender_id, receiver_id):
        if db.get(User, user_id) is None:
            raise NotFoundError("User", user_id)
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)

    message = Message(
        room_id=make_room_id(sender_id, receiver_id, product_id),
        sender_id=sender_id,
        receiver_id=receiver_id,
        product_id=product_id,
        message=text,
    )
    db.add(message)
    db.flush()
    return message


def history(user_a: int, user_b: int, product_id: int) -> List[dict]:
    """
    Messages between two users about one product, oldest first.

    Symmetric in user_a/user_b. An empty conversation is an empty list.
    """
    room_id = make_room_id(user_a, user_b, product_id)
    with get_db() as db:
        rows = (
            db.query(Message)
            .filter(Message.room_id == room_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [serialize_message(m) for m in rows]


def conversations_for(user_id: int) -> List[dict]:
    """
    One entry per {other participant, product} the user has messages in.

    WHAT: Deduplicated conversation list, newest activity first
    WHY: Inbox view regardless of who wrote first
    HOW: CASE-derived "other party" column grouped with product id; the
         group's highest message id locates its latest message
    """
    with get_db() as db:
        other_party = case(
            (Message.sender_id == user_id, Message.receiver_id),
            else_=Message.sender_id,
        ).label("other_id")

        grouped = (
            db.query(
                other_party,
                Message.product_id.label("product_id"),
                func.max(Message.created_at).label("last_message_time"),
                func.max(Message.id).label("last_message_id"),
            )
            .filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .group_by(other_party, Message.product_id)
            .subquery()
        )

        rows = (
            db.query(grouped, User, Product, Message.message)
            .select_from(grouped)
            .join(User, User.id == grouped.c.other_id)
            .join(Product, Product.id == grouped.c.product_id)
            .join(Message, Message.id == grouped.c.last_message_id)
            .order_by(grouped.c.last_message_time.desc(), grouped.c.last_message_id.desc())
            .all()
        )

        conversations = []
        for row in rows:
            other, product = row.User, row.Product
            conversations.append({
                "room": make_room_id(user_id, other.id, product.id),
                "other_user": {
                    "id": other.id,
                    "username": other.username,
                    "profile_pic": other.profile_pic,
                },
                "product": {
                    "id": product.id,
                    "title": product.title,
                    "image_url": product.image_url,
                    "price": product.price,
                    "seller_id": product.seller_id,
                },
                "last_message": row.message,
                "last_message_time": row.last_message_time.isoformat(),
            })
        return conversations


def resolve_room(user_id: int, room_id: str) -> tuple[int, int]:
    """
    Check that a user participates in a room.

    Returns:
        (product_id, other participant id)

    Raises:
        ValidationError: Malformed room id
        PermissionDeniedError: User is not one of the two participants
    """
    product_id, low, high = parse_room_id(room_id)
    if user_id not in (low, high):
        raise PermissionDeniedError("Not a participant of this room")
    return product_id, high if user_id == low else low


def _persist(sender_id: int, receiver_id: int, product_id: int, text: str) -> tuple[dict, str, str]:
    with get_db() as db:
        message = append_message(db, sender_id, receiver_id, product_id, text)
        sender_name = db.get(User, sender_id).username
        product_title = db.get(Product, product_id).title
        return serialize_message(message), sender_name, product_title


async def send(hub: RealtimeHub, sender_id: int, receiver_id: int, product_id: int,
               text: str, origin: Optional[Subscriber] = None) -> dict:
    """
    Persist a message, relay it to the room, notify the receiver.

    The room lock spans the insert and the publish, so every subscriber of
    a room sees messages in the order they were stored. A socket send
    (origin set) skips only that connection. A REST send already returns the
    message to its caller, so none of the sender's connections get it.

    Returns:
        The persisted message

    Raises:
        ValidationError, ConflictError, NotFoundError, StorageError
    """
    room_id = make_room_id(sender_id, receiver_id, product_id)
    async with hub.room_lock(room_id):
        payload, sender_name, product_title = await run_in_threadpool(
            _persist, sender_id, receiver_id, product_id, text
        )
        hub.publish(room_id, RECEIVE_MESSAGE, payload, exclude=origin,
                    exclude_user_id=sender_id if origin is None else None)

    logger.info(f"Message {payload['id']} in {room_id} from user {sender_id}")

    await run_in_threadpool(
        notification_service.notify,
        hub,
        receiver_id,
        NotificationType.MESSAGE,
        notification_service.render("message", sender=sender_name, product=product_title),
    )
    return payload
