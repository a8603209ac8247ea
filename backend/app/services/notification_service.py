"""
Notification store and fan-out.

WHAT: Persist user-directed notifications and push them live
WHY: Durable inbox (source of truth) plus best-effort realtime delivery
HOW: Insert in its own transaction, then publish on notification_<userId>
"""

from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.models import Notification, NotificationType, User, UserRole
from ..core.realtime import RealtimeHub
from ..models.events import NOTIFICATION, notification_topic
from ..utils.exceptions import NotFoundError, ValidationError
from ..utils.logger import get_logger, log_suppressed

logger = get_logger(__name__)


# Fixed text templates, keyed by producer
TEMPLATES: Dict[str, str] = {
    "message": "New message from {sender} about '{product}'",
    "offer_created": "{buyer} offered Rs. {amount:g} for '{product}'",
    "offer_accepted": "Your offer of Rs. {amount:g} for '{product}' was accepted",
    "offer_rejected": "Your offer of Rs. {amount:g} for '{product}' was rejected",
    "sale_seller": "Your item '{product}' was sold to {buyer} for Rs. {price:g}",
    "sale_buyer": "Order placed for '{product}' (Rs. {price:g})",
    "order_status": "Your order for '{product}' is now {status}",
    "follow": "{follower} started following you",
    "story_comment": "{commenter} commented on your story: {comment}",
    "report": "{reporter} reported story #{story_id}: {reason}",
}


def render(template: str, **values) -> str:
    return TEMPLATES[template].format(**values)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type.value,
        "text": notification.text,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat(),
    }


def insert_notification(db: Session, user_id: int, type: NotificationType, text: str) -> Notification:
    """
    Insert an unread notification inside the caller's transaction.

    Raises:
        ValidationError: Empty text
        NotFoundError: Unknown user
    """
    if not text or not text.strip():
        raise ValidationError("Notification text cannot be empty")
    if db.get(User, user_id) is None:
        raise NotFoundError("User", user_id)

    notification = Notification(user_id=user_id, type=NotificationType(type), text=text.strip())
    db.add(notification)
    db.flush()
    return notification


def publish_notification(hub: Optional[RealtimeHub], payload: dict) -> None:
    """Broadcast an already-committed notification. Nobody listening is fine."""
    if hub is None:
        return
    hub.publish(notification_topic(payload["user_id"]), NOTIFICATION, payload)


def create(hub: Optional[RealtimeHub], user_id: int, type: NotificationType, text: str) -> dict:
    """
    Persist a notification, then fan it out.

    Args:
        hub: Realtime hub (None skips the live push)
        user_id: Recipient
        type: Notification type
        text: Rendered text

    Returns:
        Serialized notification

    Raises:
        ValidationError, NotFoundError, StorageError
    """
    with get_db() as db:
        payload = serialize_notification(insert_notification(db, user_id, type, text))
    publish_notification(hub, payload)
    logger.debug(f"Notification {payload['id']} ({payload['type']}) for user {user_id}")
    return payload


def notify(hub: Optional[RealtimeHub], user_id: int, type: NotificationType, text: str) -> Optional[dict]:
    """
    Side-effect notification. Failures are logged and dropped.

    The mutation that triggered it has already committed, so nothing is
    rolled back and nothing is retried.
    """
    try:
        return create(hub, user_id, type, text)
    except Exception as e:
        log_suppressed(logger, f"{type} notification for user {user_id}", e)
        return None


def notify_admins(hub: Optional[RealtimeHub], text: str) -> int:
    """Send an admin-type notification to every admin. Returns how many were stored."""
    with get_db() as db:
        admin_ids = [row.id for row in db.query(User.id).filter(User.role == UserRole.ADMIN).all()]

    delivered = 0
    for admin_id in admin_ids:
        if notify(hub, admin_id, NotificationType.ADMIN, text) is not None:
            delivered += 1
    return delivered


def list_for(user_id: int) -> List[dict]:
    """All notifications for a user, newest first."""
    with get_db() as db:
        rows = (
            db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )
        return [serialize_notification(n) for n in rows]


def mark_all_read(user_id: int) -> int:
    """Flip every unread notification of one user. Idempotent."""
    with get_db() as db:
        updated = (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
    logger.info(f"Marked {updated} notifications read for user {user_id}")
    return updated


def unread_count(user_id: int) -> int:
    with get_db() as db:
        return (
            db.query(func.count(Notification.id))
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .scalar()
        ) or 0
