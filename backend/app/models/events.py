"""
Realtime event payloads.

WHAT: Shapes of the frames pushed over the WebSocket and SSE channels
WHY: Keep producers (services) and consumers (clients) agreeing on fields
HOW: TypedDicts, serialized as {"event": name, "data": payload}
"""

from typing import TypedDict, Optional, Any


# Event names
JOIN_ROOM = "join_room"
LEAVE_ROOM = "leave_room"
SEND_MESSAGE = "send_message"
RECEIVE_MESSAGE = "receive_message"
NOTIFICATION = "notification"
STORY_LIKE_UPDATE = "story_like_update"
NEW_COMMENT = "new_comment"
COMMENT_LIKE_UPDATE = "comment_like_update"
ERROR = "error"

# Topics every connection shares
STORIES_TOPIC = "stories"


def notification_topic(user_id: int) -> str:
    """Per-user notification topic name."""
    return f"notification_{user_id}"


class Envelope(TypedDict):
    """Frame written to clients."""
    event: str
    data: Any


class ChatMessagePayload(TypedDict, total=False):
    """receive_message payload (a persisted chat message)."""
    id: int
    room: str
    sender_id: int
    receiver_id: int
    product_id: int
    message: str
    created_at: str


class NotificationPayload(TypedDict):
    """notification payload."""
    id: int
    user_id: int
    type: str
    text: str
    is_read: bool
    created_at: str


class StoryLikePayload(TypedDict):
    storyId: int
    likes: int


class CommentLikePayload(TypedDict):
    commentId: int
    likes: int


class NewCommentPayload(TypedDict):
    storyId: int
    comment: dict


class ErrorPayload(TypedDict, total=False):
    error: str
    event: Optional[str]
