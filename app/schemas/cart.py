from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal

from app.utils.money import ZERO, quantize_money, sum_money


class CartLine(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    category_ids: List[str] = Field(default_factory=list)
    collection_ids: List[str] = Field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    """Read-only view of a cart handed over by checkout.

    ``cart_value`` stands in for the subtotal when the caller only knows the
    amount (coupon preview); line-scoped conditions then cannot be checked.
    """

    items: List[CartLine] = Field(default_factory=list)
    cart_value: Optional[Decimal] = Field(None, ge=0)

    @property
    def has_items(self) -> bool:
        return bool(self.items)

    @property
    def subtotal(self) -> Decimal:
        if not self.items:
            return quantize_money(self.cart_value or ZERO)
        return sum_money(line.line_total for line in self.items)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items and not self.cart_value


class EvaluateCartRequest(BaseModel):
    items: List[CartLine] = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=50)
    seller_id: Optional[str] = Field(None, max_length=64)


class ApplyCartCouponRequest(BaseModel):
    cart_id: int
    code: str = Field(..., min_length=1, max_length=50)


class RemoveCartCouponRequest(BaseModel):
    cart_id: int


class CartCouponResponse(BaseModel):
    cart_id: int
    coupon_code: Optional[str]
