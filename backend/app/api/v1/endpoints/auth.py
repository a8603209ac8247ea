"""
Authentication endpoints.

WHAT: Register, verify, login/logout, password reset, current user
WHY: Cookie-based sessions for the SPA, Bearer tokens for other clients
HOW: account_service does the work; login sets an HTTP-only JWT cookie
"""

from fastapi import APIRouter, Depends, Response

from ....core.config import settings
from ....models.api_schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyRequest,
)
from ....services import account_service
from ....utils.logger import get_logger
from ...deps import CurrentUser, get_current_user

logger = get_logger(__name__)

router = APIRouter(prefix="/auth")


@router.post("/register")
def register(request: RegisterRequest):
    """
    Create an unverified account.

    WHAT: Store the user and email a 4-digit code
    WHY: Accounts must prove email ownership before logging in
    HOW: account_service.register; duplicate email -> {"Error": "Email already exists"}
    """
    user = account_service.register(request.username, request.email, request.password, request.phone)
    return {"Status": "Success", "user": user}


@router.post("/verify")
def verify(request: VerifyRequest):
    user = account_service.verify(request.email, request.otp)
    return {"Status": "Success", "user": user}


@router.post("/login")
def login(request: LoginRequest, response: Response):
    """
    Log in and set the auth cookie.

    Returns:
        {"Status": "Success", "user": ..., "token": ...}
    """
    user, token = account_service.login(request.email, request.password)
    response.set_cookie(
        key=settings.COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRE_HOURS * 3600,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    return {"Status": "Success", "user": user, "token": token}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.COOKIE_NAME)
    return {"Status": "Success"}


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user)):
    return account_service.get_user(user.id)


@router.post("/forgot-password")
def forgot_password(request: ForgotPasswordRequest):
    account_service.forgot_password(request.email)
    return {"Status": "Success"}


@router.post("/reset-password")
def reset_password(request: ResetPasswordRequest):
    account_service.reset_password(request.email, request.otp, request.new_password)
    return {"Status": "Success"}
