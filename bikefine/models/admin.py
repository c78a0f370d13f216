from sqlalchemy import JSON, Column, String, Enum, Boolean, DateTime, Text
from bikefine.models.base import Base, TimestampMixin, id_factory
from bikefine.core.constants import AdminDepartment, AdminRole
from bikefine.utils.dates import utcnow


class AdminUser(Base, TimestampMixin):
    __tablename__ = 'admin_users'

    id = Column(String(64), primary_key=True, default=id_factory("admin"))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(AdminRole), nullable=False, default=AdminRole.ADMIN)
    department = Column(Enum(AdminDepartment), nullable=False, default=AdminDepartment.ENFORCEMENT)
    permissions = Column(JSON, nullable=False, default=list)  # [{"resource": ..., "actions": [...]}]
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime)

    def __repr__(self):
        return f"<AdminUser {self.email} ({self.role.value})>"


class AdminSession(Base):
    __tablename__ = 'admin_sessions'

    id = Column(String(64), primary_key=True, default=id_factory("session"))
    admin_id = Column(String(64), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    ip_address = Column(String(64))
    user_agent = Column(String(500))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AdminSession {self.admin_id} until {self.expires_at}>"


class AdminActivity(Base):
    __tablename__ = 'admin_activities'

    id = Column(String(64), primary_key=True, default=id_factory("activity"))
    admin_id = Column(String(64), nullable=False, index=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(100), nullable=False)
    resource_id = Column(String(64))
    details = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(500))
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<AdminActivity {self.action} {self.resource} by {self.admin_id}>"
