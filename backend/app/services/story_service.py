"""
Stories, comment threads, likes and reports.

WHAT: Short-lived media posts with threaded comments and like counters
WHY: Social layer of the marketplace, with live counters on the stories topic
HOW: Like row and counter change commit together; counters never drop
     below zero; events are published on "stories" after commit
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..core.config import settings
from ..core.database import get_db
from ..core.models import (
    CommentLike, MediaType, NotificationType, Report, Story, StoryComment, StoryLike, User
)
from ..core.realtime import RealtimeHub
from ..models.events import COMMENT_LIKE_UPDATE, NEW_COMMENT, STORIES_TOPIC, STORY_LIKE_UPDATE
from ..utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..utils.logger import get_logger
from . import notification_service

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 500


def _publish(hub: Optional[RealtimeHub], event: str, data: dict) -> None:
    if hub is not None:
        hub.publish(STORIES_TOPIC, event, data)


def _decrement_floored(column):
    return case((column > 0, column - 1), else_=0)


def serialize_comment(comment: StoryComment, author: User, liked: bool = False) -> dict:
    return {
        "id": comment.id,
        "story_id": comment.story_id,
        "user_id": comment.user_id,
        "parent_id": comment.parent_id,
        "comment": comment.comment,
        "likes": comment.likes,
        "username": author.username,
        "profile_pic": author.profile_pic,
        "is_liked_by_me": liked,
        "created_at": comment.created_at.isoformat(),
    }


def build_comment_tree(comments: List[dict], parent_id: Optional[int] = None) -> List[dict]:
    """
    Nest flat comments into a reply tree.

    WHAT: Recursive descent from the roots (parent_id None) to the leaves
    WHY: Threaded display of replies
    HOW: Index children by parent once, then recurse per level; a comment
         whose parent is not in the list is treated as a root

    Args:
        comments: Flat comments with "id" and "parent_id", in display order
        parent_id: Level to build (None for the roots)

    Returns:
        Comments of this level, each with a "replies" list
    """
    known_ids = {c["id"] for c in comments}
    children: Dict[Optional[int], List[dict]] = {}
    for comment in comments:
        parent = comment["parent_id"] if comment["parent_id"] in known_ids else None
        children.setdefault(parent, []).append(comment)

    def descend(level: Optional[int]) -> List[dict]:
        return [{**c, "replies": descend(c["id"])} for c in children.get(level, [])]

    return descend(parent_id)


# ---- stories ----------------------------------------------------------------

def list_stories(viewer_id: Optional[int] = None, media_type: Optional[str] = None) -> List[dict]:
    """Live stories, newest first, with author, comment count and viewer's like state."""
    with get_db() as db:
        comment_counts = (
            db.query(StoryComment.story_id, func.count(StoryComment.id).label("comment_count"))
            .group_by(StoryComment.story_id)
            .subquery()
        )
        query = (
            db.query(Story, User, func.coalesce(comment_counts.c.comment_count, 0))
            .join(User, User.id == Story.user_id)
            .outerjoin(comment_counts, comment_counts.c.story_id == Story.id)
        )
        if settings.STORY_TTL_HOURS > 0:
            cutoff = datetime.utcnow() - timedelta(hours=settings.STORY_TTL_HOURS)
            query = query.filter(Story.created_at >= cutoff)
        if media_type:
            query = query.filter(Story.media_type == MediaType(media_type))

        rows = query.order_by(Story.created_at.desc(), Story.id.desc()).all()

        liked = set()
        if viewer_id is not None and rows:
            liked = {
                row.story_id for row in db.query(StoryLike.story_id)
                .filter(StoryLike.user_id == viewer_id,
                        StoryLike.story_id.in_([story.id for story, _, _ in rows]))
                .all()
            }

        return [
            {
                "id": story.id,
                "user_id": story.user_id,
                "username": author.username,
                "profile_pic": author.profile_pic,
                "caption": story.caption,
                "image_url": story.image_url,
                "media_type": story.media_type.value,
                "likes": story.likes,
                "comment_count": count,
                "is_liked_by_me": story.id in liked,
                "created_at": story.created_at.isoformat(),
            }
            for story, author, count in rows
        ]


def create_story(user_id: int, media_url: str, media_type: str, caption: Optional[str] = None) -> dict:
    if not media_url:
        raise ValidationError("No file provided")
    with get_db() as db:
        story = Story(user_id=user_id, caption=(caption or "").strip() or None,
                      image_url=media_url, media_type=MediaType(media_type))
        db.add(story)
        db.flush()
        logger.info(f"Story {story.id} ({media_type}) posted by user {user_id}")
        return {
            "id": story.id,
            "user_id": user_id,
            "caption": story.caption,
            "image_url": story.image_url,
            "media_type": story.media_type.value,
            "likes": story.likes,
            "created_at": story.created_at.isoformat(),
        }


def delete_story(story_id: int, user_id: int, is_admin: bool = False) -> None:
    with get_db() as db:
        story = db.get(Story, story_id)
        if story is None:
            raise NotFoundError("Story", story_id)
        if story.user_id != user_id and not is_admin:
            raise PermissionDeniedError("You can only delete your own stories")
        db.query(Story).filter(Story.id == story_id).delete(synchronize_session=False)
    logger.info(f"Story {story_id} deleted by user {user_id} (admin={is_admin})")


def toggle_story_like(hub: Optional[RealtimeHub], user_id: int, story_id: int) -> dict:
    """
    Like or unlike a story.

    Returns:
        {"liked": bool, "likes": int} after the toggle

    Raises:
        NotFoundError: Unknown story
        ConflictError: A concurrent toggle by the same user won
    """
    try:
        with get_db() as db:
            if db.get(Story, story_id) is None:
                raise NotFoundError("Story", story_id)

            existing = (
                db.query(StoryLike)
                .filter(StoryLike.user_id == user_id, StoryLike.story_id == story_id)
                .first()
            )
            counter = db.query(Story).filter(Story.id == story_id)
            if existing:
                db.delete(existing)
                counter.update({Story.likes: _decrement_floored(Story.likes)}, synchronize_session=False)
                liked = False
            else:
                db.add(StoryLike(user_id=user_id, story_id=story_id))
                db.flush()
                counter.update({Story.likes: Story.likes + 1}, synchronize_session=False)
                liked = True

            likes = db.query(Story.likes).filter(Story.id == story_id).scalar()
    except IntegrityError:
        raise ConflictError("Like already recorded")

    _publish(hub, STORY_LIKE_UPDATE, {"storyId": story_id, "likes": likes})
    return {"liked": liked, "likes": likes}


# ---- comments ---------------------------------------------------------------

def list_comments(story_id: int, viewer_id: Optional[int] = None) -> List[dict]:
    """Flat comments of a story, oldest first."""
    with get_db() as db:
        if db.get(Story, story_id) is None:
            raise NotFoundError("Story", story_id)
        rows = (
            db.query(StoryComment, User)
            .join(User, User.id == StoryComment.user_id)
            .filter(StoryComment.story_id == story_id)
            .order_by(StoryComment.created_at.asc(), StoryComment.id.asc())
            .all()
        )
        liked = set()
        if viewer_id is not None and rows:
            liked = {
                row.comment_id for row in db.query(CommentLike.comment_id)
                .filter(CommentLike.user_id == viewer_id,
                        CommentLike.comment_id.in_([c.id for c, _ in rows]))
                .all()
            }
        return [serialize_comment(c, author, c.id in liked) for c, author in rows]


def comment_tree(story_id: int, viewer_id: Optional[int] = None) -> List[dict]:
    return build_comment_tree(list_comments(story_id, viewer_id))


def add_comment(hub: Optional[RealtimeHub], user_id: int, story_id: int,
                text: str, parent_id: Optional[int] = None) -> dict:
    """
    Comment on a story or reply to a comment.

    Broadcasts new_comment and notifies the story owner (unless they wrote it).

    Raises:
        ValidationError: Empty text, or parent from another story
        NotFoundError: Unknown story or parent comment
    """
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment exceeds {MAX_COMMENT_LENGTH} characters")

    with get_db() as db:
        story = db.get(Story, story_id)
        if story is None:
            raise NotFoundError("Story", story_id)
        if parent_id is not None:
            parent = db.get(StoryComment, parent_id)
            if parent is None:
                raise NotFoundError("Comment", parent_id)
            if parent.story_id != story_id:
                raise ValidationError("Parent comment belongs to a different story")

        comment = StoryComment(story_id=story_id, user_id=user_id, parent_id=parent_id, comment=text)
        db.add(comment)
        db.flush()
        author = db.get(User, user_id)
        payload = serialize_comment(comment, author)
        owner_id = story.user_id

    _publish(hub, NEW_COMMENT, {"storyId": story_id, "comment": payload})
    if owner_id != user_id:
        notification_service.notify(
            hub, owner_id, NotificationType.MESSAGE,
            notification_service.render("story_comment", commenter=payload["username"], comment=text[:80]),
        )
    return payload


def toggle_comment_like(hub: Optional[RealtimeHub], user_id: int, comment_id: int) -> dict:
    """Like or unlike a comment. Same rules as story likes."""
    try:
        with get_db() as db:
            if db.get(StoryComment, comment_id) is None:
                raise NotFoundError("Comment", comment_id)

            existing = (
                db.query(CommentLike)
                .filter(CommentLike.user_id == user_id, CommentLike.comment_id == comment_id)
                .first()
            )
            counter = db.query(StoryComment).filter(StoryComment.id == comment_id)
            if existing:
                db.delete(existing)
                counter.update({StoryComment.likes: _decrement_floored(StoryComment.likes)},
                               synchronize_session=False)
                liked = False
            else:
                db.add(CommentLike(user_id=user_id, comment_id=comment_id))
                db.flush()
                counter.update({StoryComment.likes: StoryComment.likes + 1}, synchronize_session=False)
                liked = True

            likes = db.query(StoryComment.likes).filter(StoryComment.id == comment_id).scalar()
    except IntegrityError:
        raise ConflictError("Like already recorded")

    _publish(hub, COMMENT_LIKE_UPDATE, {"commentId": comment_id, "likes": likes})
    return {"liked": liked, "likes": likes}


# ---- reports ----------------------------------------------------------------

def report_story(hub: Optional[RealtimeHub], reporter_id: int, story_id: int, reason: str) -> dict:
    """File an abuse report and notify every admin."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required")

    with get_db() as db:
        if db.get(Story, story_id) is None:
            raise NotFoundError("Story", story_id)
        report = Report(reporter_id=reporter_id, story_id=story_id, reason=reason)
        db.add(report)
        db.flush()
        reporter = db.get(User, reporter_id).username
        result = {"id": report.id, "story_id": story_id, "reason": reason, "status": report.status.value}

    logger.info(f"Report {result['id']} on story {story_id} by user {reporter_id}")
    notification_service.notify_admins(
        hub, notification_service.render("report", reporter=reporter, story_id=story_id, reason=reason)
    )
    return result
