"""
eSewa ePay v2 payments.

WHAT: Signed checkout forms for purchases and boosts, callback verification
WHY: Money moves through the gateway; the app only trusts signed callbacks
HOW: HMAC-SHA256 over the signed fields, optional status lookup with httpx,
     completion is one transaction and replays return the stored outcome
"""

import base64
import binascii
import hashlib
import hmac
import json
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

import httpx

from ..core.config import settings
from ..core.database import get_db
from ..core.models import Payment, PaymentPurpose, PaymentStatus, Product
from ..core.realtime import RealtimeHub
from ..utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..utils.logger import get_logger
from . import marketplace_service, offer_service

logger = get_logger(__name__)

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"
TRANSACTION_PREFIX = {PaymentPurpose.PURCHASE: "THRIFTLY", PaymentPurpose.BOOST: "BOOST"}


def format_amount(amount: float) -> str:
    """Render an amount the way it is signed: no trailing .0 for whole numbers."""
    amount = float(amount)
    return str(int(amount)) if amount.is_integer() else f"{amount:.2f}"


def sign(fields: dict, signed_field_names: str = SIGNED_FIELD_NAMES,
         secret: Optional[str] = None) -> str:
    """
    Compute the eSewa signature.

    Args:
        fields: Field values (must contain every signed name)
        signed_field_names: Comma-separated names, in signing order
        secret: Merchant secret (defaults to ESEWA_SECRET_KEY)

    Returns:
        base64(HMAC-SHA256(secret, "name=value,name=value,..."))
    """
    message = ",".join(f"{name}={fields[name]}" for name in signed_field_names.split(","))
    key = (secret or settings.ESEWA_SECRET_KEY).encode("utf-8")
    digest = hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def decode_callback(data: str) -> dict:
    """Decode the base64 JSON blob eSewa appends to the success URL."""
    try:
        decoded = json.loads(base64.b64decode(data, validate=False).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError("Malformed payment data")
    if not isinstance(decoded, dict):
        raise ValidationError("Malformed payment data")
    return decoded


def verify_signature(payload: dict) -> None:
    names = payload.get("signed_field_names")
    signature = payload.get("signature")
    if not names or not signature:
        raise ValidationError("Payment data is not signed")
    try:
        expected = sign(payload, names)
    except KeyError as e:
        raise ValidationError(f"Signed field missing from payment data: {e.args[0]}")
    if not hmac.compare_digest(expected, str(signature)):
        raise ValidationError("Invalid payment signature")


def check_remote_status(transaction_uuid: str, total_amount: str) -> str:
    """
    Ask eSewa for the transaction status.

    Raises:
        ValidationError: Gateway unreachable or returned an unusable answer
    """
    params = {
        "product_code": settings.ESEWA_PRODUCT_CODE,
        "total_amount": total_amount,
        "transaction_uuid": transaction_uuid,
    }
    try:
        with httpx.Client(timeout=settings.ESEWA_TIMEOUT) as client:
            response = client.get(settings.ESEWA_STATUS_URL, params=params)
            response.raise_for_status()
            body = response.json()
    except httpx.HTTPError as e:
        logger.error(f"eSewa status check failed for {transaction_uuid}: {e}")
        raise ValidationError("Could not verify payment with eSewa")
    except ValueError:
        raise ValidationError("eSewa returned an invalid status response")

    status = str(body.get("status", "")).upper()
    logger.info(f"eSewa status for {transaction_uuid}: {status}")
    return status


def _payment_result(payment: Payment, extra: Optional[dict] = None) -> dict:
    result = {
        "Status": "Success",
        "transaction_uuid": payment.transaction_uuid,
        "purpose": payment.purpose.value,
        "product_id": payment.product_id,
        "amount": payment.amount,
        "payment_status": payment.status.value,
        "order_id": payment.order_id,
    }
    if extra:
        result.update(extra)
    return result


def initiate(user_id: int, product_id: int, purpose: str = "purchase") -> dict:
    """
    Prepare the signed eSewa form for a purchase or a boost.

    Purchases charge the buyer's accepted offer if there is one, otherwise the
    list price. Boosts charge BOOST_PRICE and are owner-only.

    Returns:
        {"url": form action, "fields": form fields, "transaction_uuid": ...}

    Raises:
        ValidationError: Unknown purpose
        NotFoundError: Unknown product
        ConflictError: Buying own or sold item, boosting a sold item
        PermissionDeniedError: Boosting someone else's listing
    """
    try:
        kind = PaymentPurpose(purpose)
    except ValueError:
        raise ValidationError(f"Unknown payment purpose '{purpose}'")

    with get_db() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.is_sold:
            raise ConflictError("Item already sold")

        if kind == PaymentPurpose.PURCHASE:
            if product.seller_id == user_id:
                raise ConflictError("You cannot buy your own item")
            amount = offer_service.accepted_amount(db, user_id, product_id) or product.price
        else:
            if product.seller_id != user_id:
                raise PermissionDeniedError("Only the seller can boost this listing")
            amount = settings.BOOST_PRICE

        transaction_uuid = f"{TRANSACTION_PREFIX[kind]}-{uuid4().hex[:12]}-{product_id}"
        db.add(Payment(
            transaction_uuid=transaction_uuid,
            purpose=kind,
            product_id=product_id,
            user_id=user_id,
            amount=float(amount),
        ))
        seller_id = product.seller_id

    total = format_amount(amount)
    fields = {
        "amount": total,
        "tax_amount": "0",
        "total_amount": total,
        "transaction_uuid": transaction_uuid,
        "product_code": settings.ESEWA_PRODUCT_CODE,
        "product_service_charge": "0",
        "product_delivery_charge": "0",
        "success_url": f"{settings.FRONTEND_URL}/payment-success?pid={product_id}&seller_id={seller_id}",
        "failure_url": f"{settings.FRONTEND_URL}/payment-failed?uuid={transaction_uuid}",
        "signed_field_names": SIGNED_FIELD_NAMES,
    }
    fields["signature"] = sign(fields)

    logger.info(f"Initiated {kind.value} payment {transaction_uuid} for Rs. {total} by user {user_id}")
    return {"url": settings.ESEWA_FORM_URL, "fields": fields, "transaction_uuid": transaction_uuid}


def complete(hub: Optional[RealtimeHub], user_id: int, data: str) -> dict:
    """
    Verify an eSewa success callback and apply its effect once.

    WHAT: Signature, status and amount checks, then purchase or boost
    WHY: The callback URL can be replayed or forged
    HOW: Conditional UPDATE initiated -> complete in the same transaction as
         the order insert / boost extension; a replay returns stored state

    Raises:
        ValidationError: Bad data, bad signature, not COMPLETE, amount mismatch
        NotFoundError: Unknown transaction
        PermissionDeniedError: Payment belongs to someone else
        ConflictError: Payment already failed, or item sold meanwhile
    """
    payload = decode_callback(data)
    verify_signature(payload)

    transaction_uuid = str(payload.get("transaction_uuid", ""))
    if str(payload.get("status", "")).upper() != "COMPLETE":
        raise ValidationError(f"Payment not complete (status {payload.get('status')})")

    with get_db() as db:
        payment = db.query(Payment).filter(Payment.transaction_uuid == transaction_uuid).first()
        if payment is None:
            raise NotFoundError("Payment", transaction_uuid)
        if payment.user_id != user_id:
            raise PermissionDeniedError("This payment belongs to another user")
        if payment.status == PaymentStatus.COMPLETE:
            logger.info(f"Replayed callback for {transaction_uuid}")
            return _payment_result(payment, {"replayed": True})
        if payment.status == PaymentStatus.FAILED:
            raise ConflictError("Payment already marked failed")

        try:
            paid = float(str(payload.get("total_amount", "")).replace(",", ""))
        except ValueError:
            raise ValidationError("Invalid payment amount")
        if abs(paid - payment.amount) > 0.01:
            raise ValidationError(f"Paid amount {paid:g} does not match expected {payment.amount:g}")
        expected_total = format_amount(payment.amount)

    if settings.ESEWA_VERIFY_REMOTE:
        if check_remote_status(transaction_uuid, expected_total) != "COMPLETE":
            raise ValidationError("eSewa does not report this payment as complete")

    sale = None
    with get_db() as db:
        claimed = (
            db.query(Payment)
            .filter(Payment.transaction_uuid == transaction_uuid,
                    Payment.status == PaymentStatus.INITIATED)
            .update({Payment.status: PaymentStatus.COMPLETE,
                     Payment.reference: payload.get("transaction_code"),
                     Payment.completed_at: datetime.utcnow()},
                    synchronize_session=False)
        )
        payment = db.query(Payment).filter(Payment.transaction_uuid == transaction_uuid).one()
        if not claimed:
            # A concurrent callback completed it first
            return _payment_result(payment, {"replayed": True})

        extra = {}
        if payment.purpose == PaymentPurpose.PURCHASE:
            order = marketplace_service.complete_purchase(db, payment.user_id, payment.product_id)
            payment.order_id = order.id
            sale = marketplace_service.sale_context(db, order, payment.amount)
        else:
            product = db.get(Product, payment.product_id)
            start = max(datetime.utcnow(), product.boost_expires_at or datetime.min)
            product.boost_expires_at = start + timedelta(days=settings.BOOST_DAYS)
            extra["boost_expires_at"] = product.boost_expires_at.isoformat()
        db.flush()
        result = _payment_result(payment, extra)

    logger.info(f"Completed {result['purpose']} payment {transaction_uuid}")
    if sale is not None:
        marketplace_service.announce_sale(hub, sale)
    return result


def fail(user_id: int, transaction_uuid: str) -> dict:
    """Mark an initiated payment failed (user came back via failure_url)."""
    with get_db() as db:
        payment = db.query(Payment).filter(Payment.transaction_uuid == transaction_uuid).first()
        if payment is None:
            raise NotFoundError("Payment", transaction_uuid)
        if payment.user_id != user_id:
            raise PermissionDeniedError("This payment belongs to another user")
        if payment.status == PaymentStatus.COMPLETE:
            raise ConflictError("Payment already completed")
        payment.status = PaymentStatus.FAILED
        db.flush()
        logger.info(f"Payment {transaction_uuid} marked failed")
        return _payment_result(payment)
