# sitebuilder/core/errors.py
"""
Error kinds surfaced by the API.

Every kind is an HTTPException so services can raise it directly and
FastAPI turns it into a response. The body is always:

    {"detail": {"code": "<Kind>", "message": "...", ...extra}}

so clients can branch on `code` instead of parsing messages.
"""
from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "Internal"
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None, **extra: Any):
        detail = {"code": self.code, "message": message or self.default_message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NotFound"
    default_message = "Resource not found"


class ProductNotFound(NotFound):
    code = "ProductNotFound"
    default_message = "Product not found"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "Unauthorized"
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "Forbidden"
    default_message = "You do not have access to this resource"


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "ValidationFailed"
    default_message = "Validation failed"


class BasketInvalid(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BasketInvalid"
    default_message = "Basket is invalid"


class SiteMismatch(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "SiteMismatch"
    default_message = "Entities belong to different sites"


class BasketChanged(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "BasketChanged"
    default_message = "Basket changed since it was last read; refetch it"


class OutOfStock(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "OutOfStock"
    default_message = "Some items are out of stock"


class CouponExhausted(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CouponExhausted"
    default_message = "Coupon has no remaining uses"


class DiscountExhausted(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "DiscountExhausted"
    default_message = "Discount code has no remaining uses"


class DiscountAlreadyRedeemed(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "DiscountAlreadyRedeemed"
    default_message = "Discount code was already redeemed by this customer"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "Conflict"
    default_message = "Resource state does not allow this operation"


class GatewayUnavailable(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "GatewayUnavailable"
    default_message = "Payment gateway is unavailable, try again later"


class NeedsReconciliation(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "NeedsReconciliation"
    default_message = "Payment received but the order could not be committed"


class Internal(AppError):
    pass
