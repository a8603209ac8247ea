"""
Admin endpoints.

WHAT: Moderation and oversight for the admin role
WHY: Remove bad actors and content, answer reports
HOW: Every route depends on require_admin (403 otherwise)
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends

from ....core.realtime import RealtimeHub
from ....models.api_schemas import AdminNotifyRequest
from ....services import admin_service
from ...deps import CurrentUser, get_hub, require_admin

router = APIRouter(prefix="/admin")


@router.get("/stats")
def stats(admin: CurrentUser = Depends(require_admin)):
    return admin_service.dashboard_stats()


@router.get("/users")
def list_users(admin: CurrentUser = Depends(require_admin)):
    return admin_service.list_users()


@router.delete("/users/{user_id}")
def delete_user(user_id: int, admin: CurrentUser = Depends(require_admin)):
    admin_service.delete_user(admin.id, user_id)
    return {"Status": "Success"}


@router.get("/products")
def list_products(admin: CurrentUser = Depends(require_admin)):
    return admin_service.list_products()


@router.delete("/products/{product_id}")
def delete_product(product_id: int, admin: CurrentUser = Depends(require_admin)):
    admin_service.delete_product(admin.id, product_id)
    return {"Status": "Success"}


@router.get("/orders")
def list_orders(admin: CurrentUser = Depends(require_admin)):
    return admin_service.list_orders()


@router.get("/reports")
def list_reports(status: Optional[Literal["open", "resolved"]] = None,
                 admin: CurrentUser = Depends(require_admin)):
    return admin_service.list_reports(status)


@router.put("/reports/{report_id}/resolve")
def resolve_report(report_id: int, admin: CurrentUser = Depends(require_admin)):
    admin_service.resolve_report(report_id)
    return {"Status": "Success"}


@router.delete("/stories/{story_id}")
def delete_story(story_id: int, admin: CurrentUser = Depends(require_admin)):
    admin_service.delete_reported_story(admin.id, story_id)
    return {"Status": "Success"}


@router.post("/notify")
def notify(request: AdminNotifyRequest, admin: CurrentUser = Depends(require_admin),
           hub: RealtimeHub = Depends(get_hub)):
    notification = admin_service.notify_user(hub, request.user_id, request.text)
    return {"Status": "Success", "notification": notification}
