from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.db.session import get_db
from app.api.deps import get_current_user, require_admin
from app.schemas.cart import CartSnapshot, EvaluateCartRequest
from app.schemas.promotion import PromotionCreate, PromotionResponse, PromotionUpdate
from app.schemas.user import CurrentUser
from app.services.promotion_service import PromotionService
from app.utils.response import success

router = APIRouter()


@router.get("/", response_model=dict)
def list_active_promotions(
    seller_id: Optional[str] = Query(None, max_length=64),
    db: Session = Depends(get_db)
):
    """List promotions live right now, platform-wide or for one seller (public)."""
    promotions = PromotionService.list_active(db, seller_id=seller_id)
    return success(
        data=[PromotionResponse.model_validate(p).model_dump(mode="json") for p in promotions],
        message="Promotions retrieved successfully",
    )


@router.post("/evaluate", response_model=dict)
def evaluate_cart(
    request: EvaluateCartRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Preview the discounts a cart snapshot would get, with an optional coupon."""
    result = PromotionService.apply_promotions_to_cart(
        db,
        CartSnapshot(items=request.items),
        current_user,
        coupon_code=request.coupon_code,
        seller_id=request.seller_id,
    )
    return success(data=result.model_dump(mode="json"), message="Cart evaluated")


@router.get("/{promotion_id}", response_model=dict)
def get_promotion(
    promotion_id: int,
    db: Session = Depends(get_db)
):
    """Get a promotion by ID (public)."""
    promotion = PromotionService.get_promotion(db, promotion_id)
    return success(data=promotion.model_dump(mode="json"), message="Promotion retrieved successfully")


@router.post("/", response_model=dict, status_code=201)
def create_promotion(
    promotion_data: PromotionCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a new promotion (admin only)."""
    promotion = PromotionService.create_promotion(db, promotion_data)
    return success(data=promotion.model_dump(mode="json"), message="Promotion created successfully")


@router.put("/{promotion_id}", response_model=dict)
def update_promotion(
    promotion_id: int,
    promotion_data: PromotionUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update a promotion (admin only)."""
    promotion = PromotionService.update_promotion(db, promotion_id, promotion_data)
    return success(data=promotion.model_dump(mode="json"), message="Promotion updated successfully")


@router.delete("/{promotion_id}", response_model=dict)
def delete_promotion(
    promotion_id: int,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a promotion and its coupons (admin only)."""
    PromotionService.delete_promotion(db, promotion_id)
    return success(data=None, message="Promotion deleted successfully")
