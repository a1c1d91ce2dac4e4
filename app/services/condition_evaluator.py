"""
Promotion eligibility.

Every configured predicate must hold (AND). Nothing here touches the
database, so evaluation is safe to run concurrently for any number of carts.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from app.models.promotion import Promotion
from app.schemas.cart import CartLine, CartSnapshot
from app.schemas.promotion import EligibilityType, PromotionConditions, parse_conditions
from app.schemas.user import CurrentUser
from app.utils.money import ZERO, sum_money


@dataclass
class UnmetCondition:
    code: str
    message: str
    threshold: Any = None


@dataclass
class Eligibility:
    applicable: bool
    eligible_items: List[CartLine] = field(default_factory=list)
    eligible_amount: Decimal = ZERO
    unmet: Optional[UnmetCondition] = None


def _not_applicable(code: str, message: str, threshold: Any = None) -> Eligibility:
    return Eligibility(applicable=False, unmet=UnmetCondition(code, message, threshold))


def _needs_line_data(conditions: PromotionConditions) -> bool:
    return (
        conditions.eligibility_type != EligibilityType.ALL
        or bool(conditions.collection_ids)
        or conditions.min_quantity is not None
    )


def eligible_lines(conditions: PromotionConditions, cart: CartSnapshot) -> List[CartLine]:
    if conditions.eligibility_type == EligibilityType.SPECIFIC_PRODUCTS:
        wanted = set(conditions.product_ids)
        return [line for line in cart.items if line.product_id in wanted]
    if conditions.eligibility_type == EligibilityType.SPECIFIC_CATEGORIES:
        wanted = set(conditions.category_ids)
        return [line for line in cart.items if wanted.intersection(line.category_ids)]
    return list(cart.items)


def evaluate(
    conditions: PromotionConditions,
    cart: CartSnapshot,
    customer_group_id: Optional[str] = None,
) -> Eligibility:
    """Check a cart against promotion conditions.

    Returns the eligible line subset and its subtotal, or the first unmet
    condition so the caller can tell the shopper why nothing applied.
    """
    if cart.is_empty:
        return _not_applicable("EMPTY_CART", "Cart is empty")

    if conditions.customer_group_id and conditions.customer_group_id != customer_group_id:
        return _not_applicable(
            "CUSTOMER_GROUP",
            "This offer is limited to a specific customer group",
            conditions.customer_group_id,
        )

    if not cart.has_items:
        if _needs_line_data(conditions):
            return _not_applicable("CART_ITEMS_REQUIRED", "Cart items are required to check this offer")
        items: List[CartLine] = []
        amount = cart.subtotal
    else:
        items = eligible_lines(conditions, cart)
        if not items:
            return _not_applicable("NO_ELIGIBLE_ITEMS", "No items in the cart qualify for this offer")
        amount = sum_money(line.line_total for line in items)

    if conditions.collection_ids:
        wanted = set(conditions.collection_ids)
        if not any(wanted.intersection(line.collection_ids) for line in cart.items):
            return _not_applicable("COLLECTION", "Cart has no items from the required collection")

    bounds = conditions.cart_value
    if bounds is not None:
        if bounds.min is not None and amount < bounds.min:
            return _not_applicable("MIN_CART_VALUE", f"Minimum cart value of {bounds.min} required", bounds.min)
        if bounds.max is not None and amount > bounds.max:
            return _not_applicable("MAX_CART_VALUE", f"Maximum cart value of {bounds.max} exceeded", bounds.max)

    # Counted over the whole cart, not only the eligible lines
    if conditions.min_quantity is not None and cart.total_quantity < conditions.min_quantity:
        return _not_applicable(
            "MIN_QUANTITY",
            f"At least {conditions.min_quantity} items required",
            conditions.min_quantity,
        )

    return Eligibility(applicable=True, eligible_items=items, eligible_amount=amount)


def evaluate_promotion(
    promotion: Promotion,
    cart: CartSnapshot,
    user: Optional[CurrentUser] = None,
) -> Eligibility:
    conditions = parse_conditions(promotion.conditions)
    return evaluate(conditions, cart, user.customer_group_id if user else None)


def applies(promotion: Promotion, cart: CartSnapshot, user: Optional[CurrentUser] = None) -> bool:
    return evaluate_promotion(promotion, cart, user).applicable
