"""
Chat endpoints (REST side).

WHAT: Conversation history, inbox list, and sending without a socket
WHY: Clients load history over HTTP and then follow the room live
HOW: chat_service; POST goes through the same persist-then-relay path as
     the WebSocket send_message event
"""

from fastapi import APIRouter, Depends, Query

from ....core.realtime import RealtimeHub
from ....models.api_schemas import SendMessageRequest
from ....services import chat_service
from ...deps import CurrentUser, get_current_user, get_hub

router = APIRouter()


@router.get("/messages")
def history(
    other_id: int = Query(..., gt=0, description="The other participant"),
    product_id: int = Query(..., gt=0),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Messages between the caller and other_id about product_id, oldest first.

    Returns:
        List of messages (empty when they never talked)
    """
    return chat_service.history(user.id, other_id, product_id)


@router.post("/messages")
async def send_message(request: SendMessageRequest,
                       user: CurrentUser = Depends(get_current_user),
                       hub: RealtimeHub = Depends(get_hub)):
    message = await chat_service.send(hub, user.id, request.receiver_id,
                                      request.product_id, request.message)
    return {"Status": "Success", "message": message}


@router.get("/conversations")
def conversations(user: CurrentUser = Depends(get_current_user)):
    return chat_service.conversations_for(user.id)
