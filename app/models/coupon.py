from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from app.db.base_class import Base


class CouponStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"
    EXPIRED = "EXPIRED"
    DISABLED = "DISABLED"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("usage_limit IS NULL OR usage_count <= usage_limit", name="ck_coupons_usage_within_limit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)  # Stored upper-case
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)

    usage_limit = Column(Integer, nullable=True)  # Global usage limit
    usage_count = Column(Integer, default=0, nullable=False)

    user_limit = Column(Integer, default=1, nullable=False)  # How many times per user

    status = Column(Enum(CouponStatus), default=CouponStatus.ACTIVE, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    promotion = relationship("Promotion", back_populates="coupons")
    usages = relationship("CouponUsage", back_populates="coupon")
