"""
eSewa payment endpoints.

WHAT: Start a checkout, confirm the success redirect, record failures
WHY: Purchases and boosts are paid through the eSewa sandbox
HOW: payment_service signs forms and verifies callbacks; the frontend
     auto-submits the returned fields to the returned URL
"""

from fastapi import APIRouter, Depends

from ....core.realtime import RealtimeHub
from ....models.api_schemas import PaymentCompleteRequest, PaymentFailRequest, PaymentInitiateRequest
from ....services import payment_service
from ...deps import CurrentUser, get_current_user, get_hub

router = APIRouter(prefix="/payments/esewa")


@router.post("/initiate")
def initiate(request: PaymentInitiateRequest, user: CurrentUser = Depends(get_current_user)):
    """
    Build the signed eSewa form.

    Returns:
        {"url": ..., "fields": {...}, "transaction_uuid": ...}
    """
    return payment_service.initiate(user.id, request.product_id, request.purpose)


@router.post("/complete")
def complete(request: PaymentCompleteRequest, user: CurrentUser = Depends(get_current_user),
             hub: RealtimeHub = Depends(get_hub)):
    """Verify the success callback data and apply the purchase or boost once."""
    return payment_service.complete(hub, user.id, request.data)


@router.post("/fail")
def fail(request: PaymentFailRequest, user: CurrentUser = Depends(get_current_user)):
    return payment_service.fail(user.id, request.transaction_uuid)
