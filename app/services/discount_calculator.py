from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from app.models.promotion import Promotion
from app.schemas.cart import CartLine
from app.schemas.promotion import (
    BuyXGetYAction,
    FixedAmountAction,
    FreeShippingAction,
    PercentageAction,
    PromotionAction,
    parse_action,
)
from app.utils.money import ZERO, quantize_money

HUNDRED = Decimal("100")


@dataclass
class DiscountOutcome:
    amount: Decimal
    free_shipping: bool = False


def _buy_x_get_y(action: BuyXGetYAction, eligible_lines: Sequence[CartLine]) -> Decimal:
    """Free units are priced at the cheapest eligible unit."""
    if not eligible_lines:
        return ZERO
    matching_quantity = sum(line.quantity for line in eligible_lines)
    free_units = (matching_quantity // action.buy_quantity) * action.get_quantity
    free_units = min(free_units, matching_quantity)
    cheapest = min(line.unit_price for line in eligible_lines)
    return quantize_money(cheapest * free_units)


def compute_discount(
    action: PromotionAction,
    eligible_amount: Decimal,
    eligible_lines: Sequence[CartLine] = (),
) -> DiscountOutcome:
    base = quantize_money(max(eligible_amount, ZERO))

    if isinstance(action, PercentageAction):
        amount = quantize_money(base * action.percentage / HUNDRED)
        if action.max_discount is not None:
            amount = min(amount, quantize_money(action.max_discount))
    elif isinstance(action, FixedAmountAction):
        amount = min(quantize_money(action.fixed_amount), base)
    elif isinstance(action, FreeShippingAction):
        # Shipping is priced by the shipping service; checkout reads the flag.
        return DiscountOutcome(amount=ZERO, free_shipping=True)
    elif isinstance(action, BuyXGetYAction):
        amount = _buy_x_get_y(action, eligible_lines)
    else:
        raise TypeError(f"Unsupported promotion action: {type(action).__name__}")

    return DiscountOutcome(amount=min(max(amount, ZERO), base))


def discount_for(
    promotion: Promotion,
    eligible_amount: Decimal,
    eligible_lines: Sequence[CartLine] = (),
) -> DiscountOutcome:
    action = parse_action(promotion.type, promotion.actions)
    return compute_discount(action, eligible_amount, eligible_lines)
