"""
ORM models for marketplace persistence.

WHAT: SQLAlchemy models for all database tables
WHY: Persist accounts, listings, orders, offers, chat, notifications and stories
HOW: Declarative models with constraints, relationships, and indexes
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text,
    ForeignKey, CheckConstraint, UniqueConstraint, Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from .database import Base


# Enums for status fields
class UserRole(str, enum.Enum):
    """Account roles. Every USER can both buy and sell."""
    USER = "user"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    """Fulfillment status, advanced by the seller only."""
    CREATED = "created"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class OfferStatus(str, enum.Enum):
    """Offer lifecycle: pending -> accepted | rejected (terminal)."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class NotificationType(str, enum.Enum):
    """Notification type tags."""
    MESSAGE = "message"
    OFFER = "offer"
    SALE = "sale"
    FOLLOW = "follow"
    ADMIN = "admin"


class MediaType(str, enum.Enum):
    """Story media kinds."""
    IMAGE = "image"
    VIDEO = "video"


class ReportStatus(str, enum.Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class PaymentPurpose(str, enum.Enum):
    PURCHASE = "purchase"
    BOOST = "boost"


class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"
    COMPLETE = "complete"
    FAILED = "failed"


class User(Base):
    """
    User table - marketplace accounts.

    WHAT: Identity, credentials, profile and verification state
    WHY: Every listing, message and notification belongs to a user
    HOW: Unique email; CASCADE relationships so admin deletes clean up
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    bio = Column(Text, nullable=True)
    profile_pic = Column(String(255), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)
    is_verified = Column(Boolean, nullable=False, default=False)
    otp_code = Column(String(10), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    products = relationship("Product", back_populates="seller", cascade="all, delete-orphan",
                            passive_deletes=True)
    stories = relationship("Story", back_populates="user", cascade="all, delete-orphan",
                           passive_deletes=True)
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan",
                                 passive_deletes=True)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"


class Product(Base):
    """
    Product table - a secondhand listing.

    WHAT: One seller's item with price, category and sale state
    WHY: Catalog browsing, purchase and boosting all revolve around it
    HOW: FK to users with CASCADE; price CHECK; atomic views counter
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    category = Column(String(50), nullable=False)
    size = Column(String(30), nullable=True)
    item_condition = Column(String(50), nullable=True)
    image_url = Column(String(255), nullable=False)
    is_sold = Column(Boolean, nullable=False, default=False)
    boost_expires_at = Column(DateTime, nullable=True)
    views = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price > 0", name="check_product_price_positive"),
        CheckConstraint("views >= 0", name="check_product_views_non_negative"),
        Index("idx_product_sold_created", "is_sold", "created_at"),
        Index("idx_product_seller", "seller_id"),
    )

    # Relationships
    seller = relationship("User", back_populates="products")

    def __repr__(self):
        return f"<Product(id={self.id}, title={self.title}, sold={self.is_sold})>"


class Order(Base):
    """Order table - created in the same transaction that marks a product sold."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), unique=True, nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.CREATED)
    order_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_order_buyer", "buyer_id"),
        Index("idx_order_seller", "seller_id"),
    )

    product = relationship("Product")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])

    def __repr__(self):
        return f"<Order(id={self.id}, product={self.product_id}, status={self.status})>"


class Offer(Base):
    """
    Offer table - buyer-proposed price on an unsold listing.

    WHAT: Pending/accepted/rejected price proposals
    WHY: Let buyers negotiate before paying
    HOW: Status enum; transitions are conditional UPDATEs on status='pending'
    """
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(SQLEnum(OfferStatus), nullable=False, default=OfferStatus.PENDING)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_offer_amount_positive"),
        CheckConstraint("buyer_id != seller_id", name="check_offer_not_self"),
        Index("idx_offer_seller_status", "seller_id", "status"),
        Index("idx_offer_buyer", "buyer_id"),
    )

    product = relationship("Product")
    buyer = relationship("User", foreign_keys=[buyer_id])

    def __repr__(self):
        return f"<Offer(id={self.id}, product={self.product_id}, amount={self.amount}, status={self.status})>"


class Message(Base):
    """
    Message table - immutable chat log.

    WHAT: One line of a buyer/seller conversation about a product
    WHY: Durable history behind the live room broadcast
    HOW: room_id denormalized for cheap history reads; ordered by (created_at, id)
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(100), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("sender_id != receiver_id", name="check_message_not_self"),
        Index("idx_message_room_created", "room_id", "created_at"),
        Index("idx_message_sender", "sender_id"),
        Index("idx_message_receiver", "receiver_id"),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, room={self.room_id}, sender={self.sender_id})>"


class Notification(Base):
    """Notification table - one user's inbox entry, unread by default."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(SQLEnum(NotificationType), nullable=False)
    text = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
    )

    user = relationship("User", back_populates="notifications")

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type={self.type}, read={self.is_read})>"


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reviewer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_review_rating_range"),
        CheckConstraint("reviewer_id != seller_id", name="check_review_not_self"),
        Index("idx_review_seller", "seller_id"),
    )


class Wishlist(Base):
    __tablename__ = "wishlist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="unique_wishlist_item"),
    )


class Follow(Base):
    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    following_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="unique_follow"),
        CheckConstraint("follower_id != following_id", name="check_follow_not_self"),
    )


class Story(Base):
    """
    Story table - short-lived image/video post.

    WHAT: Social post with a like counter and a comment thread
    WHY: Social discovery alongside the catalog
    HOW: likes counter kept in step with story_likes rows, floored at zero
    """
    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    caption = Column(Text, nullable=True)
    image_url = Column(String(255), nullable=False)
    media_type = Column(SQLEnum(MediaType), nullable=False, default=MediaType.IMAGE)
    likes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("likes >= 0", name="check_story_likes_non_negative"),
        Index("idx_story_created", "created_at"),
    )

    user = relationship("User", back_populates="stories")
    comments = relationship("StoryComment", back_populates="story", cascade="all, delete-orphan",
                            passive_deletes=True)

    def __repr__(self):
        return f"<Story(id={self.id}, user={self.user_id}, likes={self.likes})>"


class StoryComment(Base):
    """Comment on a story; parent_id links replies into a tree."""
    __tablename__ = "story_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("story_comments.id", ondelete="CASCADE"), nullable=True)
    comment = Column(Text, nullable=False)
    likes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("likes >= 0", name="check_comment_likes_non_negative"),
        Index("idx_comment_story", "story_id"),
    )

    story = relationship("Story", back_populates="comments")
    user = relationship("User")

    def __repr__(self):
        return f"<StoryComment(id={self.id}, story={self.story_id}, parent={self.parent_id})>"


class StoryLike(Base):
    __tablename__ = "story_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    story_id = Column(Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "story_id", name="unique_story_like"),
    )


class CommentLike(Base):
    __tablename__ = "comment_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comment_id = Column(Integer, ForeignKey("story_comments.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="unique_comment_like"),
    )


class Report(Base):
    """Abuse report raised against a story, reviewed by admins."""
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reporter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    story_id = Column(Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.OPEN)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_report_status", "status"),
    )


class Payment(Base):
    """
    Payment table - one gateway transaction.

    WHAT: Tracks an eSewa transaction from form post to callback
    WHY: Callbacks can be replayed; completion must happen once
    HOW: Unique transaction_uuid; status moves initiated -> complete | failed
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_uuid = Column(String(100), unique=True, nullable=False)
    purpose = Column(SQLEnum(PaymentPurpose), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.INITIATED)
    reference = Column(String(100), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )

    def __repr__(self):
        return f"<Payment(uuid={self.transaction_uuid}, purpose={self.purpose}, status={self.status})>"
