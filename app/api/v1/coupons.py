from fastapi import APIRouter, Depends, Query, Request
from typing import Optional
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.rate_limiter import limiter
from app.db.session import get_db
from app.api.deps import get_current_user, require_admin, require_service
from app.schemas.cart import CartSnapshot
from app.schemas.coupon import CouponCreate, CouponUsageResponse, RedeemCouponRequest, ValidateCouponRequest
from app.schemas.user import CurrentUser
from app.services.coupon_service import CouponService
from app.utils.response import paginated_response, success

router = APIRouter()


@router.post("/", response_model=dict, status_code=201)
def create_coupon(
    coupon_data: CouponCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a new coupon for a promotion (admin only)."""
    coupon = CouponService.create_coupon(db, coupon_data)
    return success(data=coupon.model_dump(mode="json"), message="Coupon created successfully")


@router.get("/", response_model=dict)
def list_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    promotion_id: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List coupons, optionally for one promotion (admin only)."""
    coupons, total = CouponService.list_coupons(db, page, limit, promotion_id)
    return paginated_response(
        [c.model_dump(mode="json") for c in coupons],
        total=total,
        page=page,
        limit=limit,
        message="Coupons retrieved successfully",
    )


@router.post("/validate", response_model=dict)
@limiter.limit(settings.COUPON_VALIDATE_RATE_LIMIT)
def validate_coupon(
    request: Request,
    body: ValidateCouponRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Validate a coupon and preview its discount (authenticated users)."""
    cart = CartSnapshot(items=body.items or [], cart_value=body.cart_value)
    result = CouponService.validate(
        db,
        body.code,
        current_user.id,
        cart,
        customer_group_id=current_user.customer_group_id,
    )
    return success(data=result.to_response(cart.subtotal).model_dump(mode="json"), message="Coupon validated successfully")


@router.post("/redeem", response_model=dict)
def redeem_coupon(
    body: RedeemCouponRequest,
    current_user: CurrentUser = Depends(require_service),
    db: Session = Depends(get_db)
):
    """Consume one coupon use for a placed order (order placement only)."""
    usage = CouponService.redeem(db, body.coupon_id, body.user_id, body.order_id, body.discount_amount)
    return success(
        data=CouponUsageResponse.model_validate(usage).model_dump(mode="json"),
        message="Coupon redeemed successfully",
    )


@router.get("/{coupon_id}", response_model=dict)
def get_coupon(
    coupon_id: int,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get a coupon by ID (admin only)."""
    coupon = CouponService.get_coupon(db, coupon_id)
    return success(data=coupon.model_dump(mode="json"), message="Coupon retrieved successfully")


@router.post("/{coupon_id}/disable", response_model=dict)
def disable_coupon(
    coupon_id: int,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Disable a coupon (admin only)."""
    coupon = CouponService.disable_coupon(db, coupon_id)
    return success(data=coupon.model_dump(mode="json"), message="Coupon disabled successfully")
