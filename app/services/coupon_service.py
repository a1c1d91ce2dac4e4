from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, func, or_
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
import structlog

from app.core.exceptions import (
    ConcurrentExhaustion,
    ConditionsNotMet,
    CouponNotFound,
    DuplicateCouponCode,
    Expired,
    GlobalLimitExceeded,
    InactiveOrDraft,
    NotYetStarted,
    PromotionError,
    PromotionNotFound,
    RedemptionFailed,
    UserLimitExceeded,
)
from app.models.coupon import Coupon, CouponStatus
from app.models.coupon_usage import CouponUsage
from app.models.promotion import Promotion, PromotionStatus
from app.schemas.cart import CartSnapshot
from app.schemas.coupon import CouponCreate, CouponResponse, CouponValidationResponse, normalize_code
from app.schemas.promotion import PromotionResponse, parse_conditions
from app.services.condition_evaluator import Eligibility, evaluate
from app.services.discount_calculator import DiscountOutcome, discount_for
from app.utils.money import ZERO, quantize_money

logger = structlog.get_logger()


@dataclass
class CouponValidation:
    coupon: Coupon
    promotion: Promotion
    eligibility: Eligibility
    discount: DiscountOutcome

    def to_response(self, subtotal: Decimal) -> CouponValidationResponse:
        return CouponValidationResponse(
            coupon=CouponResponse.model_validate(self.coupon),
            promotion=PromotionResponse.model_validate(self.promotion),
            discount=self.discount.amount,
            free_shipping=self.discount.free_shipping,
            final_total=quantize_money(max(subtotal - self.discount.amount, ZERO)),
        )


class CouponService:

    @staticmethod
    def create_coupon(db: Session, coupon_data: CouponCreate) -> CouponResponse:
        """Create a new coupon for an existing promotion (admin only)."""
        promotion = db.query(Promotion).filter(Promotion.id == coupon_data.promotion_id).first()
        if not promotion:
            raise PromotionNotFound()

        existing = db.query(Coupon).filter(Coupon.code == coupon_data.code).first()
        if existing:
            raise DuplicateCouponCode(coupon_code=coupon_data.code)

        coupon = Coupon(
            code=coupon_data.code,
            promotion_id=promotion.id,
            usage_limit=coupon_data.usage_limit,
            user_limit=coupon_data.user_limit,
            expires_at=coupon_data.expires_at,
        )
        db.add(coupon)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with another admin creating the same code
            db.rollback()
            raise DuplicateCouponCode(coupon_code=coupon_data.code)
        db.refresh(coupon)

        logger.info("coupon_created", coupon_id=coupon.id, coupon_code=coupon.code, promotion_id=promotion.id)
        return CouponResponse.model_validate(coupon)

    @staticmethod
    def get_coupon(db: Session, coupon_id: int) -> CouponResponse:
        """Get a coupon by ID."""
        coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
        if not coupon:
            raise CouponNotFound()

        return CouponResponse.model_validate(coupon)

    @staticmethod
    def list_coupons(
        db: Session,
        page: int = 1,
        limit: int = 50,
        promotion_id: Optional[int] = None,
    ) -> Tuple[List[CouponResponse], int]:
        """List coupons, optionally for one promotion. Returns the page and the total."""
        query = db.query(Coupon)
        if promotion_id is not None:
            query = query.filter(Coupon.promotion_id == promotion_id)

        total = query.count()
        coupons = query.order_by(Coupon.id).offset((page - 1) * limit).limit(limit).all()
        return [CouponResponse.model_validate(coupon) for coupon in coupons], total

    @staticmethod
    def disable_coupon(db: Session, coupon_id: int) -> CouponResponse:
        coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
        if not coupon:
            raise CouponNotFound()

        coupon.status = CouponStatus.DISABLED
        db.commit()
        db.refresh(coupon)

        logger.info("coupon_disabled", coupon_id=coupon.id, coupon_code=coupon.code)
        return CouponResponse.model_validate(coupon)

    @staticmethod
    def _count_user_usages(db: Session, coupon_id: int, user_id: str) -> int:
        return db.query(func.count(CouponUsage.id)).filter(
            and_(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
        ).scalar() or 0

    @staticmethod
    def _count_promotion_user_usages(db: Session, promotion_id: int, user_id: str) -> int:
        return (
            db.query(func.count(CouponUsage.id))
            .join(Coupon, Coupon.id == CouponUsage.coupon_id)
            .filter(and_(Coupon.promotion_id == promotion_id, CouponUsage.user_id == user_id))
            .scalar()
        ) or 0

    @staticmethod
    def _find_usage(db: Session, coupon_id: int, order_id: str) -> Optional[CouponUsage]:
        return (
            db.query(CouponUsage)
            .filter(and_(CouponUsage.coupon_id == coupon_id, CouponUsage.order_id == order_id))
            .first()
        )

    @staticmethod
    def check_promotion_window(promotion: Promotion, now: datetime) -> None:
        if promotion.status != PromotionStatus.ACTIVE:
            raise InactiveOrDraft("Promotion is not active", promotion_id=promotion.id)
        if promotion.start_date > now:
            raise NotYetStarted("Promotion has not started yet", promotion_id=promotion.id)
        if promotion.end_date and promotion.end_date < now:
            raise Expired("Promotion has expired", promotion_id=promotion.id)

    @staticmethod
    def validate(
        db: Session,
        code: str,
        user_id: str,
        cart: CartSnapshot,
        now: Optional[datetime] = None,
        customer_group_id: Optional[str] = None,
    ) -> CouponValidation:
        """
        Check that a coupon can be used for this user and cart.

        Read-only: the usage counters seen here may already be stale, redeem()
        re-checks them under lock. Checks run in a fixed order and the first
        failure is raised.
        """
        now = now or datetime.utcnow()
        normalized = normalize_code(code)

        coupon = db.query(Coupon).filter(Coupon.code == normalized).first()
        if not coupon:
            raise CouponNotFound(coupon_code=normalized)

        # EXHAUSTED mirrors the usage counter and is reported by the limit checks below
        if coupon.status not in (CouponStatus.ACTIVE, CouponStatus.EXHAUSTED):
            raise InactiveOrDraft("Coupon is not active", coupon_code=normalized)

        if coupon.expires_at and coupon.expires_at < now:
            raise Expired("Coupon has expired", coupon_code=normalized)

        user_usage_count = CouponService._count_user_usages(db, coupon.id, user_id)

        exhausted = coupon.status == CouponStatus.EXHAUSTED or (
            coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit
        )
        if exhausted:
            if user_usage_count >= coupon.user_limit:
                raise UserLimitExceeded("You have already used this coupon", coupon_code=normalized)
            raise GlobalLimitExceeded("Coupon usage limit exceeded", coupon_code=normalized)

        if user_usage_count >= coupon.user_limit:
            raise UserLimitExceeded("You have already used this coupon", coupon_code=normalized)

        promotion = coupon.promotion
        CouponService.check_promotion_window(promotion, now)

        if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
            raise GlobalLimitExceeded("Promotion usage limit exceeded", promotion_id=promotion.id)
        if promotion.user_usage_limit is not None:
            promotion_usage = CouponService._count_promotion_user_usages(db, promotion.id, user_id)
            if promotion_usage >= promotion.user_usage_limit:
                raise UserLimitExceeded("You have already used this promotion", promotion_id=promotion.id)

        eligibility = evaluate(parse_conditions(promotion.conditions), cart, customer_group_id)
        if not eligibility.applicable:
            unmet = eligibility.unmet
            raise ConditionsNotMet(unmet.message, condition=unmet.code, threshold=unmet.threshold)

        discount = discount_for(promotion, eligibility.eligible_amount, eligibility.eligible_items)
        return CouponValidation(coupon=coupon, promotion=promotion, eligibility=eligibility, discount=discount)

    @staticmethod
    def redeem(
        db: Session,
        coupon_id: int,
        user_id: str,
        order_id: str,
        discount_amount: Decimal,
    ) -> CouponUsage:
        """
        Consume one unit of a coupon for an order.

        Counter increment, EXHAUSTED flip and the ledger row commit together or
        not at all. A repeated call for the same order returns the first row.
        """
        discount = quantize_money(discount_amount)
        if discount < 0:
            raise ValueError("discount_amount cannot be negative")

        existing = CouponService._find_usage(db, coupon_id, order_id)
        if existing:
            logger.info("coupon_redeem_idempotent_replay", coupon_id=coupon_id, order_id=order_id, user_id=user_id)
            return existing

        try:
            coupon = db.query(Coupon).filter(Coupon.id == coupon_id).with_for_update().first()
            if not coupon:
                raise CouponNotFound(coupon_id=coupon_id)

            claimed = (
                db.query(Coupon)
                .filter(
                    Coupon.id == coupon_id,
                    Coupon.status == CouponStatus.ACTIVE,
                    or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
                )
                .update({Coupon.usage_count: Coupon.usage_count + 1}, synchronize_session=False)
            )
            if claimed == 0:
                db.rollback()
                # The last unit may have gone to a concurrent retry of this same order
                replay = CouponService._find_usage(db, coupon_id, order_id)
                if replay is not None:
                    logger.info("coupon_redeem_idempotent_replay", coupon_id=coupon_id, order_id=order_id, user_id=user_id)
                    return replay
                if coupon.status in (CouponStatus.DISABLED, CouponStatus.EXPIRED):
                    raise InactiveOrDraft("Coupon is not active", coupon_id=coupon_id)
                raise ConcurrentExhaustion(coupon_id=coupon_id)

            # Row is write-locked from here until commit/rollback
            replay = CouponService._find_usage(db, coupon_id, order_id)
            if replay is not None:
                # A concurrent retry of this order committed while we waited on the lock
                db.rollback()
                db.refresh(replay)
                logger.info("coupon_redeem_idempotent_replay", coupon_id=coupon_id, order_id=order_id, user_id=user_id)
                return replay

            db.query(Coupon).filter(
                Coupon.id == coupon_id,
                Coupon.usage_limit.isnot(None),
                Coupon.usage_count >= Coupon.usage_limit,
            ).update({Coupon.status: CouponStatus.EXHAUSTED}, synchronize_session=False)

            promotion_claimed = (
                db.query(Promotion)
                .filter(
                    Promotion.id == coupon.promotion_id,
                    or_(Promotion.usage_limit.is_(None), Promotion.usage_count < Promotion.usage_limit),
                )
                .update({Promotion.usage_count: Promotion.usage_count + 1}, synchronize_session=False)
            )
            if promotion_claimed == 0:
                raise ConcurrentExhaustion(
                    "Promotion was exhausted before this order could redeem it",
                    coupon_id=coupon_id,
                    promotion_id=coupon.promotion_id,
                )

            if CouponService._count_user_usages(db, coupon_id, user_id) >= coupon.user_limit:
                raise UserLimitExceeded("You have already used this coupon", coupon_id=coupon_id)
            promotion = coupon.promotion
            if promotion.user_usage_limit is not None and (
                CouponService._count_promotion_user_usages(db, promotion.id, user_id) >= promotion.user_usage_limit
            ):
                raise UserLimitExceeded("You have already used this promotion", promotion_id=promotion.id)

            usage = CouponUsage(
                coupon_id=coupon_id,
                user_id=user_id,
                order_id=order_id,
                discount_amount=discount,
            )
            db.add(usage)
            try:
                db.commit()
            except IntegrityError:
                # A retry for the same order committed first: undo our increment, return theirs
                db.rollback()
                replay = CouponService._find_usage(db, coupon_id, order_id)
                if replay is None:
                    raise
                logger.info("coupon_redeem_idempotent_replay", coupon_id=coupon_id, order_id=order_id, user_id=user_id)
                return replay

            db.refresh(usage)
            logger.info(
                "coupon_redeemed",
                coupon_id=coupon_id,
                order_id=order_id,
                user_id=user_id,
                discount_amount=str(discount),
            )
            return usage
        except PromotionError as exc:
            db.rollback()
            logger.info(
                "coupon_redeem_rejected",
                coupon_id=coupon_id,
                order_id=order_id,
                user_id=user_id,
                reason=exc.code,
            )
            raise
        except Exception:
            db.rollback()
            logger.exception("coupon_redeem_failed", coupon_id=coupon_id, order_id=order_id, user_id=user_id)
            raise RedemptionFailed(coupon_id=coupon_id, order_id=order_id)
