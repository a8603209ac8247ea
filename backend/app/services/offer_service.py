"""
Offer state machine.

WHAT: Buyers propose prices on unsold listings; sellers accept or reject
WHY: Negotiation before payment; an accepted amount becomes the charged price
HOW: pending -> accepted | rejected via a conditional UPDATE on status,
     so an offer resolves at most once and notifies at most once
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.models import NotificationType, Offer, OfferStatus, Product, User
from ..core.realtime import RealtimeHub
from ..utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..utils.logger import get_logger
from . import notification_service

logger = get_logger(__name__)


def serialize_offer(offer: Offer, product: Optional[Product] = None,
                    buyer: Optional[User] = None) -> dict:
    data = {
        "id": offer.id,
        "product_id": offer.product_id,
        "buyer_id": offer.buyer_id,
        "seller_id": offer.seller_id,
        "amount": offer.amount,
        "status": offer.status.value,
        "created_at": offer.created_at.isoformat(),
        "resolved_at": offer.resolved_at.isoformat() if offer.resolved_at else None,
    }
    if product is not None:
        data["product_title"] = product.title
        data["product_image"] = product.image_url
        data["list_price"] = product.price
    if buyer is not None:
        data["buyer_name"] = buyer.username
    return data


def create_offer(hub: Optional[RealtimeHub], buyer_id: int, product_id: int, amount: float) -> dict:
    """
    Open a pending offer and notify the seller.

    Raises:
        ValidationError: Non-positive amount
        NotFoundError: Unknown product
        ConflictError: Own listing, or listing already sold
    """
    if amount is None or amount <= 0:
        raise ValidationError("Offer amount must be positive")

    with get_db() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.seller_id == buyer_id:
            raise ConflictError("You cannot make an offer on your own listing")
        if product.is_sold:
            raise ConflictError("Item already sold")

        offer = Offer(
            product_id=product.id,
            buyer_id=buyer_id,
            seller_id=product.seller_id,
            amount=float(amount),
        )
        db.add(offer)
        db.flush()

        buyer = db.get(User, buyer_id)
        result = serialize_offer(offer, product, buyer)
        text = notification_service.render(
            "offer_created", buyer=buyer.username, amount=offer.amount, product=product.title
        )

    logger.info(f"Offer {result['id']} of {amount} on product {product_id} by user {buyer_id}")
    notification_service.notify(hub, result["seller_id"], NotificationType.OFFER, text)
    return result


def resolve_offer(hub: Optional[RealtimeHub], seller_id: int, offer_id: int, accept: bool) -> dict:
    """
    Accept or reject a pending offer; the buyer is notified once.

    Raises:
        NotFoundError: Unknown offer
        PermissionDeniedError: Caller is not the listing's seller
        ConflictError: Offer already resolved, or accepting on a sold listing
    """
    new_status = OfferStatus.ACCEPTED if accept else OfferStatus.REJECTED

    with get_db() as db:
        offer = db.get(Offer, offer_id)
        if offer is None:
            raise NotFoundError("Offer", offer_id)
        if offer.seller_id != seller_id:
            raise PermissionDeniedError("Only the seller can respond to this offer")

        query = db.query(Offer).filter(Offer.id == offer_id, Offer.status == OfferStatus.PENDING)
        if accept:
            # Sold listings take no new deals; rejecting a stale offer is still allowed
            query = query.filter(Offer.product_id.in_(
                select(Product.id).where(Product.is_sold.is_(False))
            ))
        updated = query.update(
            {Offer.status: new_status, Offer.resolved_at: datetime.utcnow()},
            synchronize_session=False,
        )
        db.refresh(offer)
        if updated == 0:
            if offer.status != OfferStatus.PENDING:
                raise ConflictError(f"Offer already {offer.status.value}")
            raise ConflictError("Item already sold")

        product = db.get(Product, offer.product_id)
        result = serialize_offer(offer, product)
        text = notification_service.render(
            "offer_accepted" if accept else "offer_rejected",
            amount=offer.amount,
            product=product.title,
        )

    logger.info(f"Offer {offer_id} {new_status.value} by seller {seller_id}")
    notification_service.notify(hub, result["buyer_id"], NotificationType.OFFER, text)
    return result


def received(seller_id: int, status: Optional[str] = None) -> List[dict]:
    """Offers on the seller's listings, newest first."""
    with get_db() as db:
        query = (
            db.query(Offer, Product, User)
            .join(Product, Product.id == Offer.product_id)
            .join(User, User.id == Offer.buyer_id)
            .filter(Offer.seller_id == seller_id)
        )
        if status:
            query = query.filter(Offer.status == OfferStatus(status))
        rows = query.order_by(Offer.created_at.desc(), Offer.id.desc()).all()
        return [serialize_offer(offer, product, buyer) for offer, product, buyer in rows]


def sent(buyer_id: int) -> List[dict]:
    """Offers the buyer has made, newest first."""
    with get_db() as db:
        rows = (
            db.query(Offer, Product)
            .join(Product, Product.id == Offer.product_id)
            .filter(Offer.buyer_id == buyer_id)
            .order_by(Offer.created_at.desc(), Offer.id.desc())
            .all()
        )
        return [serialize_offer(offer, product) for offer, product in rows]


def accepted_amount(db: Session, buyer_id: int, product_id: int) -> Optional[float]:
    """Most recent accepted offer amount for this buyer and listing, if any."""
    offer = (
        db.query(Offer)
        .filter(
            Offer.buyer_id == buyer_id,
            Offer.product_id == product_id,
            Offer.status == OfferStatus.ACCEPTED,
        )
        .order_by(Offer.resolved_at.desc(), Offer.id.desc())
        .first()
    )
    return offer.amount if offer else None
