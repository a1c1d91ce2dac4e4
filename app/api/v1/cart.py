from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.schemas.cart import ApplyCartCouponRequest, CartCouponResponse, RemoveCartCouponRequest
from app.schemas.user import CurrentUser
from app.services.cart_coupon_service import CartCouponService, cart_snapshot
from app.services.promotion_service import PromotionService
from app.utils.response import success

router = APIRouter()


@router.post("/coupon/apply", response_model=dict)
def apply_coupon_to_cart(
    request: ApplyCartCouponRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Validate a coupon against the user's cart and attach it"""
    result = CartCouponService.bind(db, request.cart_id, current_user, request.code)
    cart = CartCouponService.get_owned_cart(db, request.cart_id, current_user)
    return success(
        data={
            "cart": CartCouponResponse(cart_id=cart.id, coupon_code=cart.coupon_code).model_dump(mode="json"),
            "validation": result.to_response(cart_snapshot(cart).subtotal).model_dump(mode="json"),
        },
        message="Coupon applied successfully",
    )


@router.post("/coupon/remove", response_model=dict)
def remove_coupon_from_cart(
    request: RemoveCartCouponRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Detach the coupon from the user's cart"""
    cart = CartCouponService.unbind(db, request.cart_id, current_user)
    return success(
        data=CartCouponResponse(cart_id=cart.id, coupon_code=cart.coupon_code).model_dump(mode="json"),
        message="Coupon removed successfully",
    )


@router.get("/{cart_id}/promotions", response_model=dict)
def get_cart_promotions(
    cart_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Discounts for the stored cart, including its bound coupon"""
    cart = CartCouponService.get_owned_cart(db, cart_id, current_user)
    result = PromotionService.apply_promotions_to_cart(
        db,
        cart_snapshot(cart),
        current_user,
        coupon_code=cart.coupon_code,
    )
    return success(data=result.model_dump(mode="json"), message="Cart promotions evaluated")
