"""
Contact form endpoint.

WHAT: Forward visitor messages to the support inbox
WHY: Public support channel without an account
HOW: mailer.send_contact_email, best effort
"""

from fastapi import APIRouter

from ....models.api_schemas import ContactRequest
from ....utils.logger import get_logger
from ....utils.mailer import send_contact_email

logger = get_logger(__name__)

router = APIRouter()


@router.post("/contact")
def contact(request: ContactRequest):
    """Accept the message even when mail delivery fails; the attempt is logged."""
    sent = send_contact_email(request.name, request.email, request.message)
    if not sent:
        logger.warning(f"Contact message from {request.email} was not delivered")
    return {"Status": "Success"}
