from fastapi import HTTPException, status
from typing import Any, List, Optional


class APIError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[List[Any]] = None):
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class PromotionError(APIError):
    """Base for every coupon/promotion failure that is shown to the shopper."""

    code = "PROMOTION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        self.context = context
        super().__init__(
            status_code=self.status_code,
            message=message,
            errors=[{"code": self.code, **context}],
        )


class CouponNotFound(PromotionError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Coupon not found", **context: Any):
        super().__init__(message, **context)


class PromotionNotFound(PromotionError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Promotion not found", **context: Any):
        super().__init__(message, **context)


class CartNotFound(PromotionError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Cart not found", **context: Any):
        super().__init__(message, **context)


class InactiveOrDraft(PromotionError):
    code = "INACTIVE_OR_DRAFT"


class Expired(PromotionError):
    code = "EXPIRED"


class NotYetStarted(PromotionError):
    code = "NOT_YET_STARTED"


class GlobalLimitExceeded(PromotionError):
    code = "GLOBAL_LIMIT_EXCEEDED"


class UserLimitExceeded(PromotionError):
    code = "USER_LIMIT_EXCEEDED"


class ConditionsNotMet(PromotionError):
    """Carries the specific unmet condition so checkout can explain it."""

    code = "CONDITIONS_NOT_MET"

    def __init__(self, message: str, condition: str, threshold: Any = None):
        self.condition = condition
        self.threshold = threshold
        super().__init__(
            message,
            condition=condition,
            threshold=str(threshold) if threshold is not None else None,
        )


class OwnershipViolation(PromotionError):
    code = "OWNERSHIP_VIOLATION"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Cannot modify another user's cart", **context: Any):
        super().__init__(message, **context)


class DuplicateCouponCode(PromotionError):
    code = "DUPLICATE_COUPON_CODE"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Coupon code already exists", **context: Any):
        super().__init__(message, **context)


class ConcurrentExhaustion(PromotionError):
    code = "CONCURRENT_EXHAUSTION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Coupon was exhausted before this order could redeem it", **context: Any):
        super().__init__(message, **context)


class PromotionInUse(PromotionError):
    code = "PROMOTION_IN_USE"
    status_code = status.HTTP_409_CONFLICT


class InvalidPromotion(PromotionError):
    code = "INVALID_PROMOTION"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class RedemptionFailed(PromotionError):
    code = "REDEMPTION_FAILED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Failed to redeem coupon", **context: Any):
        super().__init__(message, **context)


class AdminRequired(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
