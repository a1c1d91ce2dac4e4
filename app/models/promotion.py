from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, Text, JSON, CheckConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from app.db.base_class import Base


class PromotionType(str, enum.Enum):
    PERCENTAGE_DISCOUNT = "PERCENTAGE_DISCOUNT"
    FIXED_DISCOUNT = "FIXED_DISCOUNT"
    FREE_SHIPPING = "FREE_SHIPPING"
    BUY_X_GET_Y = "BUY_X_GET_Y"


class PromotionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"


class Promotion(Base):
    __tablename__ = "promotions"
    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date > start_date", name="ck_promotions_date_window"),
        CheckConstraint("usage_limit IS NULL OR usage_count <= usage_limit", name="ck_promotions_usage_within_limit"),
        Index("ix_promotions_catalog", "status", "seller_id", "priority"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    type = Column(Enum(PromotionType), nullable=False)
    status = Column(Enum(PromotionStatus), default=PromotionStatus.DRAFT, nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # Higher applied first

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)

    # Validated through app.schemas.promotion before they are written
    conditions = Column(JSON, nullable=False, default=dict)
    actions = Column(JSON, nullable=False, default=dict)

    is_stackable = Column(Boolean, default=False, nullable=False)

    usage_limit = Column(Integer, nullable=True)  # Global cap across all coupons
    usage_count = Column(Integer, default=0, nullable=False)
    user_usage_limit = Column(Integer, nullable=True)

    seller_id = Column(String(64), nullable=True, index=True)  # NULL => platform-wide

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    coupons = relationship("Coupon", back_populates="promotion")
