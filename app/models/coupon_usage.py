from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from app.db.base_class import Base


class CouponUsage(Base):
    """One immutable ledger row per successful redemption."""

    __tablename__ = "coupon_usages"
    __table_args__ = (
        # Retried redemptions for the same order collide here
        UniqueConstraint("coupon_id", "order_id", name="uq_coupon_usages_coupon_order"),
        Index("ix_coupon_usages_coupon_user", "coupon_id", "user_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False)
    user_id = Column(String(64), nullable=False)
    order_id = Column(String(64), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    coupon = relationship("Coupon", back_populates="usages")
