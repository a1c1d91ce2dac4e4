from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from app.models.promotion import Promotion
from app.schemas.promotion import AppliedPromotion
from app.services.condition_evaluator import Eligibility
from app.services.discount_calculator import discount_for
from app.utils.money import ZERO, quantize_money


@dataclass
class AppliedCoupon:
    """A coupon that already passed ledger validation for this cart."""

    code: str
    promotion: Promotion
    eligibility: Eligibility


@dataclass
class EligiblePromotion:
    promotion: Promotion
    eligibility: Eligibility


def priority_key(promotion: Promotion):
    # Higher priority first, then the earliest-created promotion.
    return (-(promotion.priority or 0), promotion.created_at or datetime.min, promotion.id or 0)


def resolve(
    cart_subtotal: Decimal,
    coupon: Optional[AppliedCoupon],
    eligible_promotions: Sequence[EligiblePromotion],
) -> List[AppliedPromotion]:
    """
    Pick the promotions that actually apply to a cart.

    The coupon's promotion always goes first. Automatic promotions follow in
    priority order; once one non-stackable discount is in, later
    non-stackable candidates are skipped without being priced, while
    stackable ones keep combining. The running discount never exceeds the
    cart subtotal.
    """
    applied: List[AppliedPromotion] = []
    remaining = quantize_money(max(cart_subtotal, ZERO))
    non_stackable_taken = False

    if coupon is not None:
        outcome = discount_for(coupon.promotion, coupon.eligibility.eligible_amount, coupon.eligibility.eligible_items)
        amount = min(outcome.amount, remaining)
        applied.append(
            AppliedPromotion(
                source="coupon",
                promotion_id=coupon.promotion.id,
                name=coupon.promotion.name,
                code=coupon.code,
                discount=amount,
                free_shipping=outcome.free_shipping,
                is_stackable=coupon.promotion.is_stackable,
                priority=coupon.promotion.priority,
            )
        )
        remaining -= amount
        non_stackable_taken = not coupon.promotion.is_stackable

    coupon_promotion_id = coupon.promotion.id if coupon is not None else None

    for candidate in sorted(eligible_promotions, key=lambda c: priority_key(c.promotion)):
        promotion = candidate.promotion
        if not candidate.eligibility.applicable:
            continue
        if coupon_promotion_id is not None and promotion.id == coupon_promotion_id:
            continue
        if non_stackable_taken and not promotion.is_stackable:
            continue

        outcome = discount_for(promotion, candidate.eligibility.eligible_amount, candidate.eligibility.eligible_items)
        amount = min(outcome.amount, remaining)
        if amount <= ZERO and not outcome.free_shipping:
            continue

        applied.append(
            AppliedPromotion(
                source="promotion",
                promotion_id=promotion.id,
                name=promotion.name,
                discount=amount,
                free_shipping=outcome.free_shipping,
                is_stackable=promotion.is_stackable,
                priority=promotion.priority,
            )
        )
        remaining -= amount
        if not promotion.is_stackable:
            non_stackable_taken = True

    return applied
