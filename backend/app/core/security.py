"""
Credential and identifier helpers.

WHAT: Password hashing, JWT issue/verify, one-time codes, chat room ids
WHY: Keep every crypto/identity decision in one place
HOW: passlib CryptContext for hashes, PyJWT for cookie tokens
"""

import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import settings
from ..utils.exceptions import AuthError, ValidationError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ROOM_PATTERN = re.compile(r"^prod-(\d+)-u(\d+)-u(\d+)$")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_otp() -> str:
    """Four-digit one-time code for email verification and password reset."""
    return str(1000 + secrets.randbelow(9000))


def create_access_token(user_id: int, username: str, role: str,
                        expires_hours: Optional[int] = None) -> str:
    """
    Issue a signed token carrying id, username and role.

    Args:
        user_id: Account id
        username: Display name at login time
        role: "user" or "admin"
        expires_hours: Override for settings.JWT_EXPIRE_HOURS

    Returns:
        Encoded JWT string
    """
    now = datetime.utcnow()
    hours = expires_hours if expires_hours is not None else settings.JWT_EXPIRE_HOURS
    payload = {
        "id": user_id,
        "username": username,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a token and return its claims.

    Raises:
        AuthError: If the token is missing, expired, or tampered with
    """
    if not token:
        raise AuthError("Not authenticated")
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "id"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid Token")
    return claims


def make_room_id(user_a: int, user_b: int, product_id: int) -> str:
    """
    Build the chat room id for a pair of users and a product.

    Order-independent: both participants compute the same id no matter who
    starts the conversation.
    """
    low, high = sorted((int(user_a), int(user_b)))
    return f"prod-{int(product_id)}-u{low}-u{high}"


def parse_room_id(room_id: str) -> tuple[int, int, int]:
    """
    Split a room id into (product_id, low_user_id, high_user_id).

    Raises:
        ValidationError: If the id is not a chat room id
    """
    match = ROOM_PATTERN.match(room_id or "")
    if not match:
        raise ValidationError(f"Invalid room id: {room_id}")
    product_id, low, high = (int(part) for part in match.groups())
    if low >= high:
        raise ValidationError(f"Invalid room id: {room_id}")
    return product_id, low, high
