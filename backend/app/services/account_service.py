"""
Accounts and authentication.

WHAT: Registration with emailed OTP, login, password reset, profiles
WHY: Every marketplace action is tied to a verified account
HOW: passlib hashes, 4-digit OTPs, JWT issued at login
"""

from typing import Optional

from sqlalchemy import func

from ..core.config import settings
from ..core.database import get_db
from ..core.models import Product, User, UserRole
from ..core.security import create_access_token, generate_otp, hash_password, verify_password
from ..utils.exceptions import AuthError, NotFoundError, ValidationError
from ..utils.logger import get_logger
from ..utils.mailer import send_otp_email
from . import social_service
from .marketplace_service import serialize_product

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


def serialize_user(user: User, private: bool = True) -> dict:
    data = {
        "id": user.id,
        "username": user.username,
        "bio": user.bio,
        "profile_pic": user.profile_pic,
        "role": user.role.value,
        "created_at": user.created_at.isoformat(),
    }
    if private:
        data.update(email=user.email, phone=user.phone, is_verified=user.is_verified)
    return data


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def _check_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def register(username: str, email: str, password: str, phone: Optional[str] = None) -> dict:
    """
    Create an unverified account and email its OTP.

    Raises:
        ValidationError: Bad input or email already registered
    """
    email = _normalize_email(email)
    if not username or not username.strip():
        raise ValidationError("Username is required")
    _check_password(password)

    otp = generate_otp()
    role = UserRole.ADMIN if email in settings.get_admin_emails() else UserRole.USER

    with get_db() as db:
        if db.query(User.id).filter(func.lower(User.email) == email).first():
            raise ValidationError("Email already exists")
        user = User(
            username=username.strip(),
            email=email,
            password_hash=hash_password(password),
            phone=phone,
            role=role,
            otp_code=otp,
        )
        db.add(user)
        db.flush()
        result = serialize_user(user)

    logger.info(f"Registered user {result['id']} ({role.value})")
    send_otp_email(email, otp)
    return result


def verify(email: str, otp: str) -> dict:
    email = _normalize_email(email)
    with get_db() as db:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            raise NotFoundError("User", email)
        if user.is_verified:
            return serialize_user(user)
        if not otp or user.otp_code != str(otp).strip():
            raise ValidationError("Invalid OTP")
        user.is_verified = True
        user.otp_code = None
        db.flush()
        logger.info(f"User {user.id} verified")
        return serialize_user(user)


def login(email: str, password: str) -> tuple[dict, str]:
    """
    Check credentials and issue a token.

    Returns:
        (user, token)

    Raises:
        NotFoundError: Unknown email
        AuthError: Not verified or wrong password
    """
    email = _normalize_email(email)
    with get_db() as db:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            raise NotFoundError("User", email)
        if not user.is_verified:
            raise AuthError("Not Verified")
        if not verify_password(password or "", user.password_hash):
            raise AuthError("Wrong Password")
        result = serialize_user(user)

    token = create_access_token(result["id"], result["username"], result["role"])
    logger.info(f"User {result['id']} logged in")
    return result, token


def forgot_password(email: str) -> None:
    email = _normalize_email(email)
    otp = generate_otp()
    with get_db() as db:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            raise NotFoundError("User", email)
        user.otp_code = otp
    send_otp_email(email, otp, purpose="reset")


def reset_password(email: str, otp: str, new_password: str) -> None:
    email = _normalize_email(email)
    _check_password(new_password)
    with get_db() as db:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            raise NotFoundError("User", email)
        if not otp or user.otp_code != str(otp).strip():
            raise ValidationError("Invalid OTP")
        user.password_hash = hash_password(new_password)
        user.otp_code = None
        # Receiving the code proves ownership of the address
        user.is_verified = True
    logger.info(f"Password reset for {email}")


def get_user(user_id: int) -> dict:
    with get_db() as db:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return serialize_user(user)


def update_profile(user_id: int, username: Optional[str] = None, bio: Optional[str] = None,
                   phone: Optional[str] = None, profile_pic: Optional[str] = None) -> dict:
    """Edit one's own profile. Last write wins."""
    with get_db() as db:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if username is not None:
            if not username.strip():
                raise ValidationError("Username cannot be empty")
            user.username = username.strip()
        if bio is not None:
            user.bio = bio
        if phone is not None:
            user.phone = phone
        if profile_pic is not None:
            user.profile_pic = profile_pic
        db.flush()
        return serialize_user(user)


def public_profile(user_id: int, viewer_id: Optional[int] = None) -> dict:
    """Seller page: profile, unsold listings, rating and follow counts."""
    with get_db() as db:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        listings = (
            db.query(Product)
            .filter(Product.seller_id == user_id, Product.is_sold.is_(False))
            .order_by(Product.created_at.desc())
            .all()
        )
        profile = serialize_user(user, private=False)
        profile["phone"] = user.phone
        profile["listings"] = [serialize_product(p) for p in listings]
        profile["rating"] = social_service.rating_summary(db, user_id)
        profile.update(social_service.follow_counts(db, user_id))
        profile["is_following"] = (
            social_service.is_following(db, viewer_id, user_id) if viewer_id else False
        )
        return profile
