from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.models.cart import Cart, CartItem
from app.models.coupon import Coupon
from app.models.promotion import Promotion, PromotionStatus, PromotionType


def auth_headers(user_id: str, role: str = "customer", customer_group_id: Optional[str] = None) -> dict:
    token = create_access_token(user_id, role=role, customer_group_id=customer_group_id)
    return {"Authorization": f"Bearer {token}"}


def create_promotion(db: Session, **overrides) -> Promotion:
    values = {
        "name": "Ten percent off",
        "type": PromotionType.PERCENTAGE_DISCOUNT,
        "status": PromotionStatus.ACTIVE,
        "priority": 0,
        "start_date": datetime.utcnow() - timedelta(days=1),
        "end_date": datetime.utcnow() + timedelta(days=30),
        "conditions": {},
        "actions": {"type": "PERCENTAGE_DISCOUNT", "percentage": "10"},
        "is_stackable": False,
    }
    values.update(overrides)
    promotion = Promotion(**values)
    db.add(promotion)
    db.commit()
    db.refresh(promotion)
    return promotion


def create_coupon(db: Session, promotion: Promotion, code: str = "SAVE10", **overrides) -> Coupon:
    coupon = Coupon(code=code, promotion_id=promotion.id, **overrides)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def create_cart(db: Session, user_id: str, lines=()) -> Cart:
    """``lines`` are (product_id, unit_price, quantity) tuples."""
    cart = Cart(user_id=user_id)
    db.add(cart)
    db.flush()
    for product_id, unit_price, quantity in lines:
        db.add(
            CartItem(
                cart_id=cart.id,
                product_id=product_id,
                unit_price=Decimal(unit_price),
                quantity=quantity,
                category_ids=[],
                collection_ids=[],
            )
        )
    db.commit()
    db.refresh(cart)
    return cart
