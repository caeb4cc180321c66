# sitebuilder/routers/products.py
from fastapi import APIRouter, Depends, Request, status
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.core.container import product_repo, usage_repo, user_repo
from sitebuilder.core.errors import ValidationFailed
from sitebuilder.database import get_session
from sitebuilder.models.enums import ProductFilter, ProductSort
from sitebuilder.models.user import User
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.product import (
    ProductCreate,
    ProductDetailRead,
    ProductPage,
    ProductUpdate,
    VariantRead,
    VariantUpdate,
)
from sitebuilder.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])

service = ProductService(product_repo, user_repo, usage_repo)


def _filters_from_query(request: Request) -> dict[ProductFilter, str]:
    """
    Every ProductFilter name is a query parameter, e.g.
    ?price_range=1000,50000&badges=new,hot&free_send=true
    """
    return {
        f: request.query_params[f.value]
        for f in ProductFilter
        if request.query_params.get(f.value)
    }


def _sort_from_params(params: PaginationParams) -> ProductSort | None:
    if not params.sort_by:
        return None
    try:
        return ProductSort(params.sort_by)
    except ValueError:
        raise ValidationFailed(
            f"Unknown sort {params.sort_by!r}",
            fields={"sort_by": [s.value for s in ProductSort]},
        )


# -------- Public endpoints --------


@router.get("/site/{site_id}", response_model=ProductPage)
def list_products(
    site_id: int,
    request: Request,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
):
    """
    List a site's products.

    - Public endpoint (storefront).
    - Filters are "min,max" ranges or comma separated lists.
    - `sort_by` is one of ProductSort; default recently_updated.
    """
    return service.list_products(
        session,
        site_id,
        params,
        _filters_from_query(request),
        _sort_from_params(params),
    )


@router.get("/{product_id}", response_model=ProductDetailRead)
def get_product(
    product_id: int,
    session: Session = Depends(get_session),
):
    return service.get_product(session, product_id)


# -------- Site owner endpoints --------


@router.post("", response_model=ProductDetailRead, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Create a product with its variants and optional coupon.
    """
    return service.create_product(session, current_user, payload)


@router.patch("/{product_id}", response_model=ProductDetailRead)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Partial update. `"coupon": null` removes the coupon; omitting it
    leaves the coupon unchanged.
    """
    return service.update_product(session, current_user, product_id, payload)


@router.patch("/{product_id}/variants/{variant_id}", response_model=VariantRead)
def update_variant(
    product_id: int,
    variant_id: int,
    payload: VariantUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.update_variant(session, current_user, product_id, variant_id, payload)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Soft delete; pages stop listing the product as used.
    """
    service.delete_product(session, current_user, product_id)
