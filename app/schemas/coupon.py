from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from app.models.coupon import CouponStatus
from app.schemas.cart import CartLine
from app.schemas.promotion import PromotionResponse


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    promotion_id: int
    usage_limit: Optional[int] = Field(None, gt=0)
    user_limit: int = Field(default=1, ge=1)
    expires_at: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def upper_case_code(cls, value: str) -> str:
        normalized = normalize_code(value)
        if not normalized:
            raise ValueError("Coupon code cannot be blank")
        return normalized


class CouponResponse(BaseModel):
    id: int
    code: str
    promotion_id: int
    usage_limit: Optional[int]
    usage_count: int
    user_limit: int
    status: CouponStatus
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ValidateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    cart_value: Decimal = Field(..., ge=0, validation_alias=AliasChoices("cart_value", "cartValue"))
    items: Optional[List[CartLine]] = None


class CouponValidationResponse(BaseModel):
    coupon: CouponResponse
    promotion: PromotionResponse
    discount: Decimal
    free_shipping: bool = False
    final_total: Decimal


class RedeemCouponRequest(BaseModel):
    coupon_id: int
    user_id: str = Field(..., min_length=1, max_length=64)
    order_id: str = Field(..., min_length=1, max_length=64)
    discount_amount: Decimal = Field(..., ge=0)


class CouponUsageResponse(BaseModel):
    id: int
    coupon_id: int
    user_id: str
    order_id: str
    discount_amount: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}
