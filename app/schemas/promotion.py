from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime, timezone
from decimal import Decimal
import enum

from app.models.promotion import PromotionType, PromotionStatus


class RequirementType(str, enum.Enum):
    NONE = "NONE"
    MIN_ORDER_AMOUNT = "MIN_ORDER_AMOUNT"
    MIN_QUANTITY = "MIN_QUANTITY"


class EligibilityType(str, enum.Enum):
    ALL = "ALL"
    SPECIFIC_PRODUCTS = "SPECIFIC_PRODUCTS"
    SPECIFIC_CATEGORIES = "SPECIFIC_CATEGORIES"


class CartValueRange(BaseModel):
    min: Optional[Decimal] = Field(None, ge=0)
    max: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("cart_value.min cannot exceed cart_value.max")
        return self


class PromotionConditions(BaseModel):
    requirement_type: RequirementType = RequirementType.NONE
    eligibility_type: EligibilityType = EligibilityType.ALL
    cart_value: Optional[CartValueRange] = None
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    collection_ids: List[str] = Field(default_factory=list)
    customer_group_id: Optional[str] = None
    min_quantity: Optional[int] = Field(None, ge=1)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_declared_requirements(self):
        if self.eligibility_type == EligibilityType.SPECIFIC_PRODUCTS and not self.product_ids:
            raise ValueError("SPECIFIC_PRODUCTS eligibility requires product_ids")
        if self.eligibility_type == EligibilityType.SPECIFIC_CATEGORIES and not self.category_ids:
            raise ValueError("SPECIFIC_CATEGORIES eligibility requires category_ids")
        if self.requirement_type == RequirementType.MIN_ORDER_AMOUNT and (
            self.cart_value is None or self.cart_value.min is None
        ):
            raise ValueError("MIN_ORDER_AMOUNT requirement needs cart_value.min")
        if self.requirement_type == RequirementType.MIN_QUANTITY and self.min_quantity is None:
            raise ValueError("MIN_QUANTITY requirement needs min_quantity")
        return self


# Actions: one variant per promotion type, each with only its own fields.

class PercentageAction(BaseModel):
    type: Literal["PERCENTAGE_DISCOUNT"] = "PERCENTAGE_DISCOUNT"
    percentage: Decimal = Field(..., gt=0, le=100)
    max_discount: Optional[Decimal] = Field(None, gt=0)

    model_config = {"extra": "forbid"}


class FixedAmountAction(BaseModel):
    type: Literal["FIXED_DISCOUNT"] = "FIXED_DISCOUNT"
    fixed_amount: Decimal = Field(..., ge=0)

    model_config = {"extra": "forbid"}


class FreeShippingAction(BaseModel):
    type: Literal["FREE_SHIPPING"] = "FREE_SHIPPING"
    free_shipping: Literal[True] = True

    model_config = {"extra": "forbid"}


class BuyXGetYAction(BaseModel):
    type: Literal["BUY_X_GET_Y"] = "BUY_X_GET_Y"
    buy_quantity: int = Field(..., gt=0)
    get_quantity: int = Field(..., gt=0)

    model_config = {"extra": "forbid"}


PromotionAction = Annotated[
    Union[PercentageAction, FixedAmountAction, FreeShippingAction, BuyXGetYAction],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(PromotionAction)


def parse_action(promotion_type: Union[PromotionType, str], raw: Dict[str, Any]) -> PromotionAction:
    """Validate a stored/submitted action blob against its promotion type.

    Older records carry no ``type`` key in the blob; the promotion's own type
    is used as the discriminator for them.
    """
    type_value = promotion_type.value if isinstance(promotion_type, PromotionType) else str(promotion_type)
    payload = dict(raw or {})
    declared = payload.setdefault("type", type_value)
    if declared != type_value:
        raise ValueError(f"action type {declared} does not match promotion type {type_value}")
    return _action_adapter.validate_python(payload)


def parse_conditions(raw: Optional[Dict[str, Any]]) -> PromotionConditions:
    return PromotionConditions.model_validate(raw or {})


class PromotionFields(BaseModel):
    """Everything validated on every write of a promotion record."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: PromotionType
    priority: int = 0
    start_date: datetime
    end_date: Optional[datetime] = None
    conditions: PromotionConditions = Field(default_factory=PromotionConditions)
    actions: Dict[str, Any] = Field(default_factory=dict)
    is_stackable: bool = False
    usage_limit: Optional[int] = Field(None, gt=0)
    user_usage_limit: Optional[int] = Field(None, gt=0)
    seller_id: Optional[str] = Field(None, max_length=64)

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Columns hold naive UTC
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_record(self):
        if self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        action = parse_action(self.type, self.actions)
        self.actions = action.model_dump(mode="json")
        return self


class PromotionCreate(PromotionFields):
    status: PromotionStatus = PromotionStatus.DRAFT

    @field_validator("status")
    @classmethod
    def creatable_status(cls, value: PromotionStatus) -> PromotionStatus:
        if value not in (PromotionStatus.DRAFT, PromotionStatus.ACTIVE):
            raise ValueError("Promotions are created as DRAFT or ACTIVE")
        return value


class PromotionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[PromotionType] = None
    status: Optional[PromotionStatus] = None
    priority: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    conditions: Optional[PromotionConditions] = None
    actions: Optional[Dict[str, Any]] = None
    is_stackable: Optional[bool] = None
    usage_limit: Optional[int] = Field(None, gt=0)
    user_usage_limit: Optional[int] = Field(None, gt=0)


class PromotionResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    type: PromotionType
    status: PromotionStatus
    priority: int
    start_date: datetime
    end_date: Optional[datetime]
    conditions: Dict[str, Any]
    actions: Dict[str, Any]
    is_stackable: bool
    usage_limit: Optional[int]
    usage_count: int
    user_usage_limit: Optional[int]
    seller_id: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AppliedPromotion(BaseModel):
    source: Literal["coupon", "promotion"]
    promotion_id: int
    name: str
    code: Optional[str] = None
    discount: Decimal
    free_shipping: bool = False
    is_stackable: bool
    priority: int


class CouponErrorDetail(BaseModel):
    code: str
    message: str


class PromotionApplicationResult(BaseModel):
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    free_shipping: bool = False
    applied_promotions: List[AppliedPromotion] = Field(default_factory=list)
    coupon_error: Optional[CouponErrorDetail] = None
