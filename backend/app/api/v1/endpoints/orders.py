"""
Order endpoints.

WHAT: Direct purchase, buyer orders, seller sales, fulfillment status
WHY: Post-sale bookkeeping between buyer and seller
HOW: marketplace_service; status changes are seller-only and forward-only
"""

from fastapi import APIRouter, Depends

from ....core.realtime import RealtimeHub
from ....models.api_schemas import OrderStatusRequest, PurchaseRequest
from ....services import marketplace_service
from ...deps import CurrentUser, get_current_user, get_hub

router = APIRouter(prefix="/orders")


@router.post("")
def purchase(request: PurchaseRequest, user: CurrentUser = Depends(get_current_user),
             hub: RealtimeHub = Depends(get_hub)):
    """Buy a listing at its list price; notifies both parties and emails the seller."""
    order = marketplace_service.purchase(hub, user.id, request.product_id)
    return {"Status": "Success", "order": order}


@router.get("/mine")
def my_orders(user: CurrentUser = Depends(get_current_user)):
    return marketplace_service.my_orders(user.id)


@router.get("/sales")
def my_sales(user: CurrentUser = Depends(get_current_user)):
    return marketplace_service.my_sales(user.id)


@router.put("/{order_id}/status")
def update_status(order_id: int, request: OrderStatusRequest,
                  user: CurrentUser = Depends(get_current_user),
                  hub: RealtimeHub = Depends(get_hub)):
    order = marketplace_service.update_order_status(hub, user.id, order_id, request.status)
    return {"Status": "Success", "order": order}
