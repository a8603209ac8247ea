"""
Pydantic API schemas.

WHAT: Request bodies for the JSON endpoints
WHY: Validation before any service is called; failures become {"Error": ...}
HOW: Pydantic v2 models with Field constraints and validators
"""

from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator


# ========== Auth ==========

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Minimal shape check; delivery of the OTP proves the rest."""
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("A valid email is required")
        return v


class VerifyRequest(BaseModel):
    email: str
    otp: str = Field(..., min_length=1, max_length=10)


class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    email: str
    otp: str = Field(..., min_length=1, max_length=10)
    new_password: str = Field(..., min_length=6, max_length=128)


# ========== Marketplace ==========

class PurchaseRequest(BaseModel):
    product_id: int = Field(..., gt=0)


class OrderStatusRequest(BaseModel):
    status: Literal["created", "shipped", "delivered"]


class OfferCreateRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    amount: float = Field(..., gt=0, description="Proposed price in rupees")


class OfferResolveRequest(BaseModel):
    action: Literal["accept", "reject"]


class ReviewRequest(BaseModel):
    seller_id: int = Field(..., gt=0)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class WishlistToggleRequest(BaseModel):
    product_id: int = Field(..., gt=0)


# ========== Chat ==========

class SendMessageRequest(BaseModel):
    receiver_id: int = Field(..., gt=0)
    product_id: int = Field(..., gt=0)
    message: str = Field(..., min_length=1, max_length=2000)


# ========== Stories ==========

class CommentRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=500)
    parent_id: Optional[int] = Field(default=None, gt=0)


class ReportRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ========== Payments ==========

class PaymentInitiateRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    purpose: Literal["purchase", "boost"] = "purchase"


class PaymentCompleteRequest(BaseModel):
    data: str = Field(..., min_length=1, description="base64 JSON blob from the eSewa success redirect")


class PaymentFailRequest(BaseModel):
    transaction_uuid: str = Field(..., min_length=1, max_length=100)


# ========== Admin / misc ==========

class AdminNotifyRequest(BaseModel):
    user_id: int = Field(..., gt=0)
    text: str = Field(..., min_length=1, max_length=500)


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
