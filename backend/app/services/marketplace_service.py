"""
Catalog, orders and purchase.

WHAT: Listing CRUD and search, purchase completion, order fulfillment
WHY: The marketplace core that chat, offers and payments hang off
HOW: SQLAlchemy queries; purchase is one transaction (conditional mark-sold
     plus order insert) followed by best-effort notifications and email
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.models import NotificationType, Order, OrderStatus, Product, User
from ..core.realtime import RealtimeHub
from ..utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..utils.logger import get_logger
from ..utils.mailer import send_sale_email
from . import notification_service, social_service

logger = get_logger(__name__)

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "popular")

# Forward-only fulfillment sequence
ORDER_FLOW = [OrderStatus.CREATED, OrderStatus.SHIPPED, OrderStatus.DELIVERED]


def serialize_product(product: Product, seller: Optional[User] = None) -> dict:
    now = datetime.utcnow()
    data = {
        "id": product.id,
        "seller_id": product.seller_id,
        "title": product.title,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "size": product.size,
        "item_condition": product.item_condition,
        "image_url": product.image_url,
        "is_sold": product.is_sold,
        "views": product.views,
        "is_boosted": bool(product.boost_expires_at and product.boost_expires_at > now),
        "boost_expires_at": product.boost_expires_at.isoformat() if product.boost_expires_at else None,
        "created_at": product.created_at.isoformat(),
    }
    if seller is not None:
        data["seller_name"] = seller.username
        data["seller_phone"] = seller.phone
        data["seller_pic"] = seller.profile_pic
    return data


def serialize_order(order: Order, product: Optional[Product] = None,
                    counterpart: Optional[User] = None, role: str = "buyer") -> dict:
    data = {
        "id": order.id,
        "product_id": order.product_id,
        "buyer_id": order.buyer_id,
        "seller_id": order.seller_id,
        "status": order.status.value,
        "order_date": order.order_date.isoformat(),
    }
    if product is not None:
        data.update(title=product.title, price=product.price, image_url=product.image_url)
    if counterpart is not None:
        key = "seller" if role == "buyer" else "buyer"
        data[f"{key}_name"] = counterpart.username
        data[f"{key}_phone"] = counterpart.phone
    return data


# ---- catalog ----------------------------------------------------------------

def list_products(q: Optional[str] = None, category: Optional[str] = None,
                  size: Optional[str] = None, condition: Optional[str] = None,
                  sort: str = "newest", include_sold: bool = False,
                  seller_id: Optional[int] = None) -> List[dict]:
    """
    Search and filter the catalog.

    Boosted listings (unexpired boost) always come first, then the chosen
    sort order. Sold items are hidden unless include_sold.
    """
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort '{sort}', expected one of {', '.join(SORT_OPTIONS)}")

    now = datetime.utcnow()
    with get_db() as db:
        query = db.query(Product, User).join(User, User.id == Product.seller_id)
        if not include_sold:
            query = query.filter(Product.is_sold.is_(False))
        if seller_id is not None:
            query = query.filter(Product.seller_id == seller_id)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(Product.title.ilike(pattern), Product.description.ilike(pattern)))
        if category and category.lower() != "all":
            query = query.filter(Product.category == category)
        if size:
            query = query.filter(Product.size == size)
        if condition:
            query = query.filter(Product.item_condition == condition)

        boosted_first = case((Product.boost_expires_at > now, 1), else_=0).desc()
        ordering = {
            "newest": [Product.created_at.desc(), Product.id.desc()],
            "price_asc": [Product.price.asc(), Product.id.desc()],
            "price_desc": [Product.price.desc(), Product.id.desc()],
            "popular": [Product.views.desc(), Product.id.desc()],
        }[sort]

        rows = query.order_by(boosted_first, *ordering).all()
        return [serialize_product(product, seller) for product, seller in rows]


def get_product(product_id: int) -> dict:
    """Listing detail with seller contact and rating; bumps the view counter."""
    with get_db() as db:
        bumped = (
            db.query(Product)
            .filter(Product.id == product_id)
            .update({Product.views: Product.views + 1}, synchronize_session=False)
        )
        if not bumped:
            raise NotFoundError("Product", product_id)

        product, seller = (
            db.query(Product, User)
            .join(User, User.id == Product.seller_id)
            .filter(Product.id == product_id)
            .one()
        )
        data = serialize_product(product, seller)
        data["seller_rating"] = social_service.rating_summary(db, seller.id)
        return data


def create_product(seller_id: int, title: str, price: float, category: str, image_url: str,
                   description: Optional[str] = None, size: Optional[str] = None,
                   item_condition: Optional[str] = None) -> dict:
    """
    Create a listing. The image must already be stored.

    Raises:
        ValidationError: Missing image or title, non-positive price
    """
    if not image_url:
        raise ValidationError("No file provided")
    if not title or not title.strip():
        raise ValidationError("Title is required")
    if price is None or price <= 0:
        raise ValidationError("Price must be positive")

    with get_db() as db:
        product = Product(
            seller_id=seller_id,
            title=title.strip(),
            description=description,
            price=float(price),
            category=category or "Other",
            size=size,
            item_condition=item_condition,
            image_url=image_url,
        )
        db.add(product)
        db.flush()
        logger.info(f"Product {product.id} listed by user {seller_id}")
        return serialize_product(product)


def delete_product(product_id: int, user_id: int, is_admin: bool = False) -> None:
    """Delete a listing (owner or admin). Wishlist rows, offers and orders cascade."""
    with get_db() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product.seller_id != user_id and not is_admin:
            raise PermissionDeniedError("You can only delete your own listings")
        db.query(Product).filter(Product.id == product_id).delete(synchronize_session=False)
    logger.info(f"Product {product_id} deleted by user {user_id} (admin={is_admin})")


def my_listings(seller_id: int) -> List[dict]:
    return list_products(seller_id=seller_id, include_sold=True)


def categories() -> List[str]:
    with get_db() as db:
        rows = db.query(Product.category).distinct().order_by(Product.category).all()
        return [row.category for row in rows]


# ---- purchase ---------------------------------------------------------------

def complete_purchase(db: Session, buyer_id: int, product_id: int) -> Order:
    """
    Mark a listing sold and create its order inside the caller's transaction.

    The sold flag flips with a conditional UPDATE, so two buyers racing for
    the same item cannot both succeed.

    Raises:
        NotFoundError: Unknown product
        ConflictError: Own listing or already sold
    """
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    if product.seller_id == buyer_id:
        raise ConflictError("You cannot buy your own item")

    flipped = (
        db.query(Product)
        .filter(Product.id == product_id, Product.is_sold.is_(False))
        .update({Product.is_sold: True}, synchronize_session=False)
    )
    if not flipped:
        raise ConflictError("Item already sold")

    order = Order(product_id=product_id, buyer_id=buyer_id, seller_id=product.seller_id)
    db.add(order)
    db.flush()
    return order


def sale_context(db: Session, order: Order, price: float) -> dict:
    """Names and addresses needed for post-sale side effects."""
    product = db.get(Product, order.product_id)
    buyer = db.get(User, order.buyer_id)
    seller = db.get(User, order.seller_id)
    return {
        "order_id": order.id,
        "product_id": product.id,
        "product": product.title,
        "price": price,
        "buyer_id": buyer.id,
        "buyer": buyer.username,
        "seller_id": seller.id,
        "seller": seller.username,
        "seller_email": seller.email,
    }


def announce_sale(hub: Optional[RealtimeHub], context: dict) -> None:
    """Notify seller and buyer, email the seller. Each step is best effort."""
    notification_service.notify(
        hub, context["seller_id"], NotificationType.SALE,
        notification_service.render("sale_seller", product=context["product"],
                                    buyer=context["buyer"], price=context["price"]),
    )
    notification_service.notify(
        hub, context["buyer_id"], NotificationType.SALE,
        notification_service.render("sale_buyer", product=context["product"], price=context["price"]),
    )
    send_sale_email(context["seller_email"], context["seller"], context["product"],
                    context["price"], context["buyer"])


def purchase(hub: Optional[RealtimeHub], buyer_id: int, product_id: int) -> dict:
    """Buy a listing at its list price (direct purchase without a gateway)."""
    with get_db() as db:
        order = complete_purchase(db, buyer_id, product_id)
        context = sale_context(db, order, db.get(Product, product_id).price)
        result = serialize_order(order)

    logger.info(f"Order {result['id']}: product {product_id} bought by user {buyer_id}")
    announce_sale(hub, context)
    return result


# ---- orders -----------------------------------------------------------------

def my_orders(buyer_id: int) -> List[dict]:
    with get_db() as db:
        rows = (
            db.query(Order, Product, User)
            .join(Product, Product.id == Order.product_id)
            .join(User, User.id == Order.seller_id)
            .filter(Order.buyer_id == buyer_id)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .all()
        )
        return [serialize_order(o, p, seller, role="buyer") for o, p, seller in rows]


def my_sales(seller_id: int) -> List[dict]:
    with get_db() as db:
        rows = (
            db.query(Order, Product, User)
            .join(Product, Product.id == Order.product_id)
            .join(User, User.id == Order.buyer_id)
            .filter(Order.seller_id == seller_id)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .all()
        )
        return [serialize_order(o, p, buyer, role="seller") for o, p, buyer in rows]


def all_orders() -> List[dict]:
    """Every order with both parties, for the admin console."""
    with get_db() as db:
        rows = (
            db.query(Order, Product)
            .join(Product, Product.id == Order.product_id)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .all()
        )
        users = {u.id: u.username for u in db.query(User.id, User.username).all()}
        orders = []
        for order, product in rows:
            data = serialize_order(order, product)
            data["buyer_name"] = users.get(order.buyer_id)
            data["seller_name"] = users.get(order.seller_id)
            orders.append(data)
        return orders


def update_order_status(hub: Optional[RealtimeHub], seller_id: int, order_id: int, status: str) -> dict:
    """
    Advance an order (created -> shipped -> delivered) and notify the buyer.

    Raises:
        ValidationError: Unknown status
        NotFoundError: Unknown order
        PermissionDeniedError: Caller is not the seller
        ConflictError: Moving backwards or to the same status
    """
    try:
        target = OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status '{status}'")

    with get_db() as db:
        order = db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if order.seller_id != seller_id:
            raise PermissionDeniedError("Only the seller can update this order")

        current = order.status
        if ORDER_FLOW.index(target) <= ORDER_FLOW.index(current):
            raise ConflictError(f"Cannot move order from {current.value} to {target.value}")

        updated = (
            db.query(Order)
            .filter(Order.id == order_id, Order.status == current)
            .update({Order.status: target}, synchronize_session=False)
        )
        if not updated:
            raise ConflictError("Order was updated concurrently")

        db.refresh(order)
        product = db.get(Product, order.product_id)
        result = serialize_order(order, product)

    logger.info(f"Order {order_id} moved to {target.value} by seller {seller_id}")
    notification_service.notify(
        hub, result["buyer_id"], NotificationType.SALE,
        notification_service.render("order_status", product=result["title"], status=target.value),
    )
    return result
