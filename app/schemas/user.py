from pydantic import BaseModel
from typing import Optional
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    SERVICE = "service"  # Order placement and other internal callers


class CurrentUser(BaseModel):
    """Identity resolved from the bearer token; users live in the auth service."""

    id: str
    role: UserRole = UserRole.CUSTOMER
    customer_group_id: Optional[str] = None
