"""
Reviews, wishlist and follows.

WHAT: Seller ratings, saved listings and the follower graph
WHY: Trust and discovery features around the catalog
HOW: Plain inserts guarded by unique/check constraints; duplicates and
     self-targeting surface as ConflictError
"""

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.models import Follow, NotificationType, Product, Review, User, Wishlist
from ..core.realtime import RealtimeHub
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logger import get_logger
from . import notification_service

logger = get_logger(__name__)


# ---- reviews ----------------------------------------------------------------

def add_review(reviewer_id: int, seller_id: int, rating: int, comment: Optional[str] = None) -> dict:
    """
    Rate a seller 1..5.

    Raises:
        ValidationError: Rating out of range
        ConflictError: Reviewing yourself
        NotFoundError: Unknown seller
    """
    if rating is None or not 1 <= int(rating) <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if reviewer_id == seller_id:
        raise ConflictError("You cannot review yourself")

    with get_db() as db:
        if db.get(User, seller_id) is None:
            raise NotFoundError("User", seller_id)
        review = Review(reviewer_id=reviewer_id, seller_id=seller_id,
                        rating=int(rating), comment=(comment or "").strip() or None)
        db.add(review)
        db.flush()
        logger.info(f"Review {review.id} ({rating}) for seller {seller_id} by {reviewer_id}")
        return {"id": review.id, "seller_id": seller_id, "rating": review.rating,
                "comment": review.comment, "created_at": review.created_at.isoformat()}


def rating_summary(db: Session, seller_id: int) -> dict:
    avg, count = (
        db.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.seller_id == seller_id)
        .one()
    )
    return {"avg": round(float(avg), 2) if avg is not None else 0, "count": count or 0}


def reviews_for(seller_id: int) -> dict:
    """Rating summary plus individual reviews, newest first."""
    with get_db() as db:
        rows = (
            db.query(Review, User.username)
            .join(User, User.id == Review.reviewer_id)
            .filter(Review.seller_id == seller_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )
        summary = rating_summary(db, seller_id)
        summary["reviews"] = [
            {
                "id": review.id,
                "reviewer_id": review.reviewer_id,
                "reviewer_name": username,
                "rating": review.rating,
                "comment": review.comment,
                "created_at": review.created_at.isoformat(),
            }
            for review, username in rows
        ]
        return summary


# ---- wishlist ---------------------------------------------------------------

def _wishlist_entry(db: Session, user_id: int, product_id: int) -> Optional[Wishlist]:
    return (
        db.query(Wishlist)
        .filter(Wishlist.user_id == user_id, Wishlist.product_id == product_id)
        .first()
    )


def toggle_wishlist(user_id: int, product_id: int) -> str:
    """
    Add or remove a listing. Returns "Added" or "Removed".

    Raises:
        NotFoundError: Unknown product
        ConflictError: A concurrent toggle added the same listing first
    """
    try:
        with get_db() as db:
            if db.get(Product, product_id) is None:
                raise NotFoundError("Product", product_id)
            existing = _wishlist_entry(db, user_id, product_id)
            if existing:
                db.delete(existing)
                return "Removed"
            db.add(Wishlist(user_id=user_id, product_id=product_id))
            return "Added"
    except IntegrityError:
        raise ConflictError("Already in wishlist")


def wishlist(user_id: int) -> List[dict]:
    with get_db() as db:
        rows = (
            db.query(Product)
            .join(Wishlist, Wishlist.product_id == Product.id)
            .filter(Wishlist.user_id == user_id)
            .order_by(Wishlist.created_at.desc())
            .all()
        )
        return [
            {"id": p.id, "title": p.title, "price": p.price, "image_url": p.image_url,
             "category": p.category, "is_sold": p.is_sold}
            for p in rows
        ]


# ---- follows ----------------------------------------------------------------

def follow(hub: Optional[RealtimeHub], follower_id: int, following_id: int) -> None:
    """
    Follow a user and notify them.

    Raises:
        ConflictError: Self-follow or already following
        NotFoundError: Unknown user
    """
    if follower_id == following_id:
        raise ConflictError("You cannot follow yourself")

    try:
        with get_db() as db:
            if db.get(User, following_id) is None:
                raise NotFoundError("User", following_id)
            already = (
                db.query(Follow)
                .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
                .first()
            )
            if already:
                raise ConflictError("Already following")
            db.add(Follow(follower_id=follower_id, following_id=following_id))
            follower_name = db.get(User, follower_id).username
    except IntegrityError:
        raise ConflictError("Already following")

    logger.info(f"User {follower_id} followed {following_id}")
    notification_service.notify(
        hub, following_id, NotificationType.FOLLOW,
        notification_service.render("follow", follower=follower_name),
    )


def unfollow(follower_id: int, following_id: int) -> None:
    with get_db() as db:
        deleted = (
            db.query(Follow)
            .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
            .delete(synchronize_session=False)
        )
    if not deleted:
        raise NotFoundError("Follow", following_id)


def follow_counts(db: Session, user_id: int) -> dict:
    followers = db.query(func.count(Follow.id)).filter(Follow.following_id == user_id).scalar()
    following = db.query(func.count(Follow.id)).filter(Follow.follower_id == user_id).scalar()
    return {"followers": followers or 0, "following": following or 0}


def is_following(db: Session, follower_id: int, following_id: int) -> bool:
    return db.query(Follow.id).filter(
        Follow.follower_id == follower_id, Follow.following_id == following_id
    ).first() is not None


def _people(query) -> List[dict]:
    return [{"id": u.id, "username": u.username, "profile_pic": u.profile_pic} for u in query.all()]


def followers(user_id: int) -> List[dict]:
    with get_db() as db:
        return _people(
            db.query(User).join(Follow, Follow.follower_id == User.id).filter(Follow.following_id == user_id)
        )


def following(user_id: int) -> List[dict]:
    with get_db() as db:
        return _people(
            db.query(User).join(Follow, Follow.following_id == User.id).filter(Follow.follower_id == user_id)
        )
