from app.models.promotion import Promotion, PromotionType, PromotionStatus
from app.models.coupon import Coupon, CouponStatus
from app.models.coupon_usage import CouponUsage
from app.models.cart import Cart, CartItem
