from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
import structlog

from app.core.exceptions import CartNotFound, OwnershipViolation
from app.models.cart import Cart
from app.schemas.cart import CartLine, CartSnapshot
from app.schemas.user import CurrentUser
from app.services.coupon_service import CouponService, CouponValidation

logger = structlog.get_logger()


def cart_snapshot(cart: Cart) -> CartSnapshot:
    return CartSnapshot(
        items=[
            CartLine(
                product_id=item.product_id,
                unit_price=item.unit_price,
                quantity=item.quantity,
                category_ids=list(item.category_ids or []),
                collection_ids=list(item.collection_ids or []),
            )
            for item in cart.items
        ]
    )


class CartCouponService:
    """Advisory coupon code on a cart. Checkout re-validates it before redeeming."""

    @staticmethod
    def get_owned_cart(db: Session, cart_id: int, user: CurrentUser) -> Cart:
        cart = db.query(Cart).filter(Cart.id == cart_id).first()
        if not cart:
            raise CartNotFound(cart_id=cart_id)

        if cart.user_id != user.id:
            logger.warning("cart_ownership_violation", cart_id=cart_id, user_id=user.id)
            raise OwnershipViolation(cart_id=cart_id)

        return cart

    @staticmethod
    def bind(
        db: Session,
        cart_id: int,
        user: CurrentUser,
        code: str,
        now: Optional[datetime] = None,
    ) -> CouponValidation:
        """Validate ``code`` against the cart and remember it on the cart."""
        cart = CartCouponService.get_owned_cart(db, cart_id, user)

        result = CouponService.validate(
            db,
            code,
            user.id,
            cart_snapshot(cart),
            now=now,
            customer_group_id=user.customer_group_id,
        )

        cart.coupon_code = result.coupon.code
        db.commit()
        db.refresh(cart)

        logger.info("cart_coupon_bound", cart_id=cart.id, user_id=user.id, coupon_code=cart.coupon_code)
        return result

    @staticmethod
    def unbind(db: Session, cart_id: int, user: CurrentUser) -> Cart:
        cart = CartCouponService.get_owned_cart(db, cart_id, user)

        cart.coupon_code = None
        db.commit()
        db.refresh(cart)

        logger.info("cart_coupon_unbound", cart_id=cart.id, user_id=user.id)
        return cart
