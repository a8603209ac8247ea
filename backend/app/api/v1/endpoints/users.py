"""
User profile and social graph endpoints.

WHAT: Own profile edits, public seller pages, reviews, wishlist, follows
WHY: Trust signals and discovery around sellers
HOW: Thin wrappers over account_service and social_service
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ....core.realtime import RealtimeHub
from ....models.api_schemas import ReviewRequest, WishlistToggleRequest
from ....services import account_service, social_service
from ....utils.storage import save_upload
from ...deps import CurrentUser, get_current_user, get_hub, get_optional_user

router = APIRouter()


@router.put("/users/me")
def update_profile(
    username: Optional[str] = Form(default=None),
    bio: Optional[str] = Form(default=None),
    phone: Optional[str] = Form(default=None),
    profile_pic: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
):
    """Edit own profile (multipart, the picture is optional)."""
    picture_url = None
    if profile_pic is not None and profile_pic.filename:
        picture_url, _ = save_upload(profile_pic)
    updated = account_service.update_profile(user.id, username=username, bio=bio,
                                             phone=phone, profile_pic=picture_url)
    return {"Status": "Success", "user": updated}


@router.get("/users/{user_id}")
def public_profile(user_id: int, viewer: Optional[CurrentUser] = Depends(get_optional_user)):
    return account_service.public_profile(user_id, viewer.id if viewer else None)


@router.get("/users/{user_id}/followers")
def followers(user_id: int):
    return social_service.followers(user_id)


@router.get("/users/{user_id}/following")
def following(user_id: int):
    return social_service.following(user_id)


@router.post("/users/{user_id}/follow")
def follow(user_id: int, user: CurrentUser = Depends(get_current_user),
           hub: RealtimeHub = Depends(get_hub)):
    social_service.follow(hub, user.id, user_id)
    return {"Status": "Success"}


@router.delete("/users/{user_id}/follow")
def unfollow(user_id: int, user: CurrentUser = Depends(get_current_user)):
    social_service.unfollow(user.id, user_id)
    return {"Status": "Success"}


@router.post("/reviews")
def add_review(request: ReviewRequest, user: CurrentUser = Depends(get_current_user)):
    review = social_service.add_review(user.id, request.seller_id, request.rating, request.comment)
    return {"Status": "Success", "review": review}


@router.get("/reviews/{seller_id}")
def reviews(seller_id: int):
    """Rating summary {avg, count} plus the reviews themselves."""
    return social_service.reviews_for(seller_id)


@router.post("/wishlist/toggle")
def toggle_wishlist(request: WishlistToggleRequest, user: CurrentUser = Depends(get_current_user)):
    return {"Status": social_service.toggle_wishlist(user.id, request.product_id)}


@router.get("/wishlist")
def wishlist(user: CurrentUser = Depends(get_current_user)):
    return social_service.wishlist(user.id)
