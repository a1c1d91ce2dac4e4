from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings

TOKEN_TYPE = "access"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    subject: str,
    role: str = "customer",
    customer_group_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Issue a token in the auth service's format (used by tooling and tests)."""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": subject, "role": role, "exp": expire, "type": TOKEN_TYPE}
    if customer_group_id is not None:
        claims["customer_group_id"] = customer_group_id
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type; return the claims."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    if claims.get("type") != TOKEN_TYPE or not claims.get("sub"):
        raise _unauthorized("Invalid authentication credentials")
    return claims
