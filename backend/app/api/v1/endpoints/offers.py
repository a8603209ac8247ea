"""
Offer endpoints.

WHAT: Make offers, list received/sent offers, accept or reject
WHY: Price negotiation before checkout
HOW: offer_service; a second accept/reject answers 409
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends

from ....core.realtime import RealtimeHub
from ....models.api_schemas import OfferCreateRequest, OfferResolveRequest
from ....services import offer_service
from ...deps import CurrentUser, get_current_user, get_hub

router = APIRouter(prefix="/offers")


@router.post("")
def create_offer(request: OfferCreateRequest, user: CurrentUser = Depends(get_current_user),
                 hub: RealtimeHub = Depends(get_hub)):
    offer = offer_service.create_offer(hub, user.id, request.product_id, request.amount)
    return {"Status": "Success", "offer": offer}


@router.get("/received")
def received(status: Optional[Literal["pending", "accepted", "rejected"]] = None,
             user: CurrentUser = Depends(get_current_user)):
    return offer_service.received(user.id, status)


@router.get("/sent")
def sent(user: CurrentUser = Depends(get_current_user)):
    return offer_service.sent(user.id)


@router.put("/{offer_id}")
def resolve_offer(offer_id: int, request: OfferResolveRequest,
                  user: CurrentUser = Depends(get_current_user),
                  hub: RealtimeHub = Depends(get_hub)):
    offer = offer_service.resolve_offer(hub, user.id, offer_id, accept=request.action == "accept")
    return {"Status": "Success", "offer": offer}
