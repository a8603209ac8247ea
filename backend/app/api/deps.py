"""
Request dependencies.

WHAT: Current-user resolution and access to the realtime hub
WHY: Endpoints declare what they need instead of parsing cookies themselves
HOW: FastAPI Depends; token from the auth cookie, Bearer header as fallback
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from ..core.config import settings
from ..core.database import get_db
from ..core.models import User, UserRole
from ..core.realtime import RealtimeHub
from ..core.security import decode_access_token
from ..utils.exceptions import AuthError, PermissionDeniedError


@dataclass(frozen=True)
class CurrentUser:
    id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def extract_token(cookies, headers, query_params=None) -> Optional[str]:
    """Auth cookie, then "Authorization: Bearer", then ?token= (WebSocket only)."""
    token = cookies.get(settings.COOKIE_NAME)
    if token:
        return token
    auth_header = headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    if query_params is not None:
        return query_params.get("token")
    return None


def authenticate(token: Optional[str]) -> CurrentUser:
    """
    Resolve a token to a live account.

    Role comes from the database, not the token, so demotions and
    deletions take effect immediately.

    Raises:
        AuthError: Missing/invalid/expired token or deleted account
    """
    claims = decode_access_token(token)
    with get_db() as db:
        user = db.get(User, claims["id"])
        if user is None:
            raise AuthError("Invalid Token")
        return CurrentUser(id=user.id, username=user.username, role=user.role.value)


def get_current_user(request: Request) -> CurrentUser:
    return authenticate(extract_token(request.cookies, request.headers))


def get_optional_user(request: Request) -> Optional[CurrentUser]:
    token = extract_token(request.cookies, request.headers)
    if not token:
        return None
    try:
        return authenticate(token)
    except AuthError:
        return None


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub
