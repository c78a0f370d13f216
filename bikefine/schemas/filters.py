"""Query-string filters accepted by the list endpoints.

Each model enumerates the keys a list endpoint understands. Unknown keys are
ignored; known keys with malformed values are rejected with a 400.
"""
from datetime import datetime
from typing import Optional

from pydantic import ValidationInfo, field_validator

from bikefine.core.constants import (
    CaseStatus,
    QueryCategory,
    QueryPriority,
    QueryStatus,
    UserRole,
    UserStatus,
    ViolationType,
)
from bikefine.schemas.base import CamelModel
from bikefine.utils.dates import to_naive_utc


class FilterModel(CamelModel):

    @field_validator('*', mode='before')
    @classmethod
    def blank_and_all_mean_unset(cls, v, info: ValidationInfo):
        if isinstance(v, str):
            if not v.strip():
                return None
            # Dashboards send "all" for an unfiltered dropdown
            if v == "all" and info.field_name != "search":
                return None
        return v

    @field_validator('*')
    @classmethod
    def datetimes_to_utc(cls, v):
        if isinstance(v, datetime):
            return to_naive_utc(v)
        return v


class UserFilters(FilterModel):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class CaseFilters(FilterModel):
    user_id: Optional[str] = None
    violation_type: Optional[ViolationType] = None
    status: Optional[CaseStatus] = None
    min_fine: Optional[float] = None
    max_fine: Optional[float] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    is_paid: Optional[bool] = None
    is_disputed: Optional[bool] = None
    search: Optional[str] = None


class QueryFilters(FilterModel):
    user_id: Optional[str] = None
    case_id: Optional[str] = None
    category: Optional[QueryCategory] = None
    status: Optional[QueryStatus] = None
    priority: Optional[QueryPriority] = None
    assigned_to: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    is_urgent: Optional[bool] = None
    has_attachments: Optional[bool] = None


class AdminUserFilters(FilterModel):
    search: Optional[str] = None
    status: Optional[UserStatus] = None
    role: Optional[UserRole] = None
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None
    has_violations: Optional[bool] = None
    has_outstanding_fines: Optional[bool] = None
    registered_after: Optional[datetime] = None
    registered_before: Optional[datetime] = None
