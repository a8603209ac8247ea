"""
Catalog endpoints.

WHAT: Browse, search, view, list and delete products
WHY: The storefront of the marketplace
HOW: Multipart form for creation (image required), query params for search
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from ....services import marketplace_service
from ....utils.logger import get_logger
from ....utils.storage import save_upload
from ...deps import CurrentUser, get_current_user

logger = get_logger(__name__)

router = APIRouter(prefix="/products")


@router.get("")
def list_products(
    q: Optional[str] = Query(default=None, max_length=100),
    category: Optional[str] = None,
    size: Optional[str] = None,
    condition: Optional[str] = None,
    sort: Literal["newest", "price_asc", "price_desc", "popular"] = "newest",
    include_sold: bool = False,
):
    """
    Search the catalog.

    Boosted listings come first regardless of sort.
    """
    return marketplace_service.list_products(q=q, category=category, size=size, condition=condition,
                                             sort=sort, include_sold=include_sold)


@router.get("/categories")
def categories():
    return marketplace_service.categories()


@router.get("/mine")
def my_listings(user: CurrentUser = Depends(get_current_user)):
    return marketplace_service.my_listings(user.id)


@router.get("/{product_id}")
def get_product(product_id: int):
    return marketplace_service.get_product(product_id)


@router.post("")
def create_product(
    title: str = Form(..., min_length=1, max_length=200),
    price: float = Form(..., gt=0),
    category: str = Form(default="Other", max_length=50),
    description: Optional[str] = Form(default=None),
    size: Optional[str] = Form(default=None, max_length=30),
    item_condition: Optional[str] = Form(default=None, max_length=50),
    image: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
):
    """
    List an item for sale.

    WHAT: Store the image, then the listing
    WHY: Every listing needs a photo
    HOW: save_upload raises {"Error": "No file provided"} when image is missing
    """
    image_url, _ = save_upload(image)
    product = marketplace_service.create_product(
        seller_id=user.id,
        title=title,
        price=price,
        category=category,
        image_url=image_url,
        description=description,
        size=size,
        item_condition=item_condition,
    )
    return {"Status": "Success", "product": product}


@router.delete("/{product_id}")
def delete_product(product_id: int, user: CurrentUser = Depends(get_current_user)):
    marketplace_service.delete_product(product_id, user.id, is_admin=user.is_admin)
    return {"Status": "Success"}
