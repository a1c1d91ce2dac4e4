import structlog
from fastapi import Depends, HTTPException, Request, status
from pydantic import ValidationError

from app.core.exceptions import AdminRequired
from app.core.security import decode_access_token
from app.schemas.user import CurrentUser, UserRole

logger = structlog.get_logger()


def _extract_token(request: Request) -> str | None:
    # Browser checkout sends the cookie, order placement sends a bearer header
    cookie_token = request.cookies.get("access_token")
    if cookie_token:
        return cookie_token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


def get_current_user(request: Request) -> CurrentUser:
    """Resolve the caller from a token issued by the auth service."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    claims = decode_access_token(token)
    try:
        return CurrentUser(
            id=str(claims["sub"]),
            role=claims.get("role", UserRole.CUSTOMER.value),
            customer_group_id=claims.get("customer_group_id"),
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )


def require_admin(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if current_user.role != UserRole.ADMIN:
        raise AdminRequired()

    logger.info(
        "admin_action",
        action=f"{request.method} {request.url.path}",
        admin_user_id=current_user.id,
    )
    return current_user


def require_service(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Internal callers only (order placement); admins are allowed for support tooling."""
    if current_user.role not in (UserRole.SERVICE, UserRole.ADMIN):
        logger.warning(
            "internal_endpoint_denied",
            action=f"{request.method} {request.url.path}",
            user_id=current_user.id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal endpoint",
        )
    return current_user
