from app.db.base_class import Base


# IMPORT ALL MODELS HERE (THIS REGISTERS THEM WITH Base.metadata)
from app.models.promotion import Promotion
from app.models.coupon import Coupon
from app.models.coupon_usage import CouponUsage
from app.models.cart import Cart, CartItem
