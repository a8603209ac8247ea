"""
Admin console operations.

WHAT: User and listing moderation, report triage, direct notices, stats
WHY: Admins keep the marketplace clean
HOW: Thin queries over the shared models; deletes rely on FK cascades
"""

from typing import List, Optional

from sqlalchemy import func

from ..core.database import get_db
from ..core.models import (
    NotificationType, Order, Product, Report, ReportStatus, Story, User
)
from ..core.realtime import RealtimeHub
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logger import get_logger
from . import marketplace_service, notification_service, story_service
from .account_service import serialize_user

logger = get_logger(__name__)


def list_users() -> List[dict]:
    with get_db() as db:
        return [serialize_user(u) for u in db.query(User).order_by(User.id).all()]


def delete_user(admin_id: int, user_id: int) -> None:
    """Remove an account and everything it owns."""
    if admin_id == user_id:
        raise ConflictError("Admins cannot delete themselves")
    with get_db() as db:
        deleted = db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
    if not deleted:
        raise NotFoundError("User", user_id)
    logger.info(f"Admin {admin_id} deleted user {user_id}")


def list_products() -> List[dict]:
    return marketplace_service.list_products(include_sold=True)


def delete_product(admin_id: int, product_id: int) -> None:
    marketplace_service.delete_product(product_id, admin_id, is_admin=True)


def list_orders() -> List[dict]:
    return marketplace_service.all_orders()


def list_reports(status: Optional[str] = None) -> List[dict]:
    with get_db() as db:
        query = (
            db.query(Report, User.username, Story.image_url, Story.caption)
            .join(User, User.id == Report.reporter_id)
            .join(Story, Story.id == Report.story_id)
        )
        if status:
            query = query.filter(Report.status == ReportStatus(status))
        rows = query.order_by(Report.created_at.desc(), Report.id.desc()).all()
        return [
            {
                "id": report.id,
                "story_id": report.story_id,
                "reporter_id": report.reporter_id,
                "reporter_name": reporter,
                "reason": report.reason,
                "status": report.status.value,
                "story_image": image_url,
                "story_caption": caption,
                "created_at": report.created_at.isoformat(),
            }
            for report, reporter, image_url, caption in rows
        ]


def resolve_report(report_id: int) -> None:
    with get_db() as db:
        report = db.get(Report, report_id)
        if report is None:
            raise NotFoundError("Report", report_id)
        report.status = ReportStatus.RESOLVED


def delete_reported_story(admin_id: int, story_id: int) -> None:
    """Take a story down. Its reports go with it."""
    story_service.delete_story(story_id, admin_id, is_admin=True)


def notify_user(hub: Optional[RealtimeHub], user_id: int, text: str) -> dict:
    """Direct admin notice. Unlike side-effect notifications, failures surface."""
    if not text or not text.strip():
        raise ValidationError("Notification text cannot be empty")
    return notification_service.create(hub, user_id, NotificationType.ADMIN, text)


def dashboard_stats() -> dict:
    with get_db() as db:
        revenue = (
            db.query(func.coalesce(func.sum(Product.price), 0.0))
            .join(Order, Order.product_id == Product.id)
            .scalar()
        )
        return {
            "users": db.query(func.count(User.id)).scalar(),
            "products": db.query(func.count(Product.id)).scalar(),
            "active_listings": db.query(func.count(Product.id)).filter(Product.is_sold.is_(False)).scalar(),
            "orders": db.query(func.count(Order.id)).scalar(),
            "open_reports": db.query(func.count(Report.id))
            .filter(Report.status == ReportStatus.OPEN).scalar(),
            "revenue": float(revenue or 0),
        }
