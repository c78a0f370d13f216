from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr

from bikefine.core.constants import UserRole, UserStatus
from bikefine.schemas.base import CamelModel


class UserCreate(CamelModel):
    name: str
    email: EmailStr
    password: str
    number_plate: Optional[str] = None
    role: UserRole = UserRole.USER
    is_active: bool = True
    phone_number: Optional[str] = None
    address: Optional[str] = None


class UserUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    number_plate: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    status: Optional[UserStatus] = None
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    profile_picture: Optional[str] = None
    notes: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    number_plate: Optional[str] = None
    role: UserRole
    is_active: bool
    status: UserStatus
    email_verified: bool
    phone_verified: bool
    phone_number: Optional[str] = None
    address: Optional[str] = None
    profile_picture: Optional[str] = None
    notes: Optional[str] = None
    suspended_at: Optional[datetime] = None
    suspended_reason: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AdminUserView(UserOut):
    """User row on the admin dashboard with violation totals"""

    violation_count: int = 0
    total_fines: float = 0
    outstanding_fines: float = 0
    has_violations: bool = False
    has_outstanding_fines: bool = False


class BulkUserUpdate(CamelModel):
    user_ids: List[str] = []
    action: Optional[str] = None
    reason: Optional[str] = None
    role: Optional[UserRole] = None
    updates: Optional[UserUpdate] = None


class AdminUserUpdate(UserUpdate):
    action: Optional[str] = None
    reason: Optional[str] = None
