from datetime import datetime
from typing import List, Optional

from bikefine.core.constants import AdminDepartment, AdminRole
from bikefine.schemas.base import CamelModel


class Permission(CamelModel):
    resource: str
    actions: List[str] = []


class AdminLoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ValidateSessionRequest(CamelModel):
    token: Optional[str] = None


class AdminCreate(CamelModel):
    email: str
    password: str
    first_name: str
    last_name: str
    role: AdminRole = AdminRole.ADMIN
    department: AdminDepartment = AdminDepartment.ENFORCEMENT
    permissions: List[Permission] = []
    is_active: bool = True


class AdminUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[AdminRole] = None
    department: Optional[AdminDepartment] = None
    permissions: Optional[List[Permission]] = None
    is_active: Optional[bool] = None
    password: Optional[str] = None


class AdminOut(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: AdminRole
    department: AdminDepartment
    permissions: List[Permission] = []
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class SessionOut(CamelModel):
    token: str
    expires_at: datetime


class AdminAuthResponse(CamelModel):
    admin: AdminOut
    session: SessionOut


class AdminActivityOut(CamelModel):
    id: str
    admin_id: str
    action: str
    resource: str
    resource_id: Optional[str] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
