from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from pydantic import ValidationError
from datetime import datetime
from typing import List, Optional
import structlog

from app.core.exceptions import InvalidPromotion, PromotionError, PromotionInUse, PromotionNotFound
from app.models.coupon import Coupon
from app.models.coupon_usage import CouponUsage
from app.models.promotion import Promotion, PromotionStatus
from app.schemas.cart import CartSnapshot
from app.schemas.promotion import (
    CouponErrorDetail,
    PromotionApplicationResult,
    PromotionCreate,
    PromotionFields,
    PromotionResponse,
    PromotionUpdate,
)
from app.schemas.user import CurrentUser
from app.services.condition_evaluator import evaluate_promotion
from app.services.coupon_service import CouponService
from app.services.stacking_resolver import AppliedCoupon, EligiblePromotion, resolve
from app.utils.money import ZERO, quantize_money, sum_money

logger = structlog.get_logger()

ALLOWED_STATUS_TRANSITIONS = {
    PromotionStatus.DRAFT: {PromotionStatus.ACTIVE, PromotionStatus.EXPIRED},
    PromotionStatus.ACTIVE: {PromotionStatus.PAUSED, PromotionStatus.EXPIRED},
    PromotionStatus.PAUSED: {PromotionStatus.ACTIVE, PromotionStatus.EXPIRED},
    PromotionStatus.EXPIRED: set(),
}


def _validated_fields(payload: dict) -> PromotionFields:
    try:
        return PromotionFields.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise InvalidPromotion(first.get("msg", "Invalid promotion"), field=".".join(str(p) for p in first.get("loc", ())))


class PromotionService:

    @staticmethod
    def _get_or_404(db: Session, promotion_id: int) -> Promotion:
        promotion = db.query(Promotion).filter(Promotion.id == promotion_id).first()
        if not promotion:
            raise PromotionNotFound(promotion_id=promotion_id)
        return promotion

    @staticmethod
    def create_promotion(db: Session, promotion_data: PromotionCreate) -> PromotionResponse:
        """Create a new promotion (admin only)."""
        promotion = Promotion(
            name=promotion_data.name,
            description=promotion_data.description,
            type=promotion_data.type,
            status=promotion_data.status,
            priority=promotion_data.priority,
            start_date=promotion_data.start_date,
            end_date=promotion_data.end_date,
            conditions=promotion_data.conditions.model_dump(mode="json"),
            actions=promotion_data.actions,
            is_stackable=promotion_data.is_stackable,
            usage_limit=promotion_data.usage_limit,
            user_usage_limit=promotion_data.user_usage_limit,
            seller_id=promotion_data.seller_id,
        )

        db.add(promotion)
        db.commit()
        db.refresh(promotion)

        logger.info(
            "promotion_created",
            promotion_id=promotion.id,
            promotion_type=promotion.type.value,
            seller_id=promotion.seller_id,
        )
        return PromotionResponse.model_validate(promotion)

    @staticmethod
    def update_promotion(db: Session, promotion_id: int, promotion_data: PromotionUpdate) -> PromotionResponse:
        """Update a promotion (admin only). The merged record is re-validated."""
        promotion = PromotionService._get_or_404(db, promotion_id)
        update_data = promotion_data.model_dump(exclude_unset=True)

        new_status = update_data.pop("status", None)
        if new_status is not None and new_status != promotion.status:
            if new_status not in ALLOWED_STATUS_TRANSITIONS[promotion.status]:
                raise InvalidPromotion(
                    f"Cannot move promotion from {promotion.status.value} to {new_status.value}",
                    field="status",
                )

        merged = {
            "name": promotion.name,
            "description": promotion.description,
            "type": promotion.type,
            "priority": promotion.priority,
            "start_date": promotion.start_date,
            "end_date": promotion.end_date,
            "conditions": promotion.conditions,
            "actions": promotion.actions,
            "is_stackable": promotion.is_stackable,
            "usage_limit": promotion.usage_limit,
            "user_usage_limit": promotion.user_usage_limit,
            "seller_id": promotion.seller_id,
        }
        merged.update(update_data)
        fields = _validated_fields(merged)

        if fields.usage_limit is not None and fields.usage_limit < promotion.usage_count:
            raise InvalidPromotion("usage_limit cannot be lower than the current usage count", field="usage_limit")

        for key in update_data:
            value = getattr(fields, key)
            if key == "conditions":
                value = value.model_dump(mode="json")
            setattr(promotion, key, value)
        if new_status is not None:
            promotion.status = new_status

        db.commit()
        db.refresh(promotion)

        logger.info("promotion_updated", promotion_id=promotion.id, fields=sorted(update_data), status=promotion.status.value)
        return PromotionResponse.model_validate(promotion)

    @staticmethod
    def delete_promotion(db: Session, promotion_id: int):
        """Delete a promotion and its coupons (admin only)."""
        promotion = PromotionService._get_or_404(db, promotion_id)

        redeemed = (
            db.query(func.count(CouponUsage.id))
            .join(Coupon, Coupon.id == CouponUsage.coupon_id)
            .filter(Coupon.promotion_id == promotion.id)
            .scalar()
        )
        if redeemed:
            raise PromotionInUse(
                "Promotion has redeemed coupons and cannot be deleted",
                promotion_id=promotion.id,
            )

        # Coupons go first, the promotion is never deleted while they reference it
        db.query(Coupon).filter(Coupon.promotion_id == promotion.id).delete(synchronize_session=False)
        db.delete(promotion)
        db.commit()

        logger.info("promotion_deleted", promotion_id=promotion_id)

    @staticmethod
    def get_promotion(db: Session, promotion_id: int) -> PromotionResponse:
        """Get a promotion by ID."""
        return PromotionResponse.model_validate(PromotionService._get_or_404(db, promotion_id))

    @staticmethod
    def list_active(db: Session, now: Optional[datetime] = None, seller_id: Optional[str] = None) -> List[Promotion]:
        """
        Promotions live at ``now``: ACTIVE and inside their date window.

        Platform-wide and seller-scoped promotions are never mixed: without a
        seller only platform-wide ones are returned. Ordered by priority
        (highest first), ties go to the earliest created.
        """
        now = now or datetime.utcnow()
        query = db.query(Promotion).filter(
            Promotion.status == PromotionStatus.ACTIVE,
            Promotion.start_date <= now,
            or_(Promotion.end_date.is_(None), Promotion.end_date >= now),
        )
        if seller_id:
            query = query.filter(Promotion.seller_id == seller_id)
        else:
            query = query.filter(Promotion.seller_id.is_(None))

        return query.order_by(Promotion.priority.desc(), Promotion.created_at.asc(), Promotion.id.asc()).all()

    @staticmethod
    def apply_promotions_to_cart(
        db: Session,
        cart: CartSnapshot,
        user: CurrentUser,
        coupon_code: Optional[str] = None,
        seller_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PromotionApplicationResult:
        """Work out the discount for a cart: coupon first, then automatic promotions."""
        now = now or datetime.utcnow()
        subtotal = cart.subtotal

        applied_coupon = None
        coupon_error = None
        if coupon_code:
            try:
                validation = CouponService.validate(
                    db,
                    coupon_code,
                    user.id,
                    cart,
                    now=now,
                    customer_group_id=user.customer_group_id,
                )
                applied_coupon = AppliedCoupon(
                    code=validation.coupon.code,
                    promotion=validation.promotion,
                    eligibility=validation.eligibility,
                )
            except PromotionError as exc:
                # Cart evaluation carries on without the coupon; the reason goes back to checkout
                coupon_error = CouponErrorDetail(code=exc.code, message=exc.message)
                logger.warning("coupon_not_applied", coupon_code=coupon_code, user_id=user.id, reason=exc.code)

        candidates = []
        for promotion in PromotionService.list_active(db, now=now, seller_id=seller_id):
            # Promotions with coupons are only granted through their code
            if promotion.coupons:
                continue
            if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
                continue
            candidates.append(EligiblePromotion(promotion=promotion, eligibility=evaluate_promotion(promotion, cart, user)))

        applied = resolve(subtotal, applied_coupon, candidates)
        discount = sum_money(entry.discount for entry in applied)

        return PromotionApplicationResult(
            subtotal=subtotal,
            discount=discount,
            total=quantize_money(max(subtotal - discount, ZERO)),
            free_shipping=any(entry.free_shipping for entry in applied),
            applied_promotions=applied,
            coupon_error=coupon_error,
        )
