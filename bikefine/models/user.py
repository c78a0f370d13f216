from sqlalchemy import Column, String, Enum, Boolean, DateTime, Text
from bikefine.models.base import Base, TimestampMixin, id_factory
from bikefine.core.constants import UserRole, UserStatus


class User(Base, TimestampMixin):
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True, default=id_factory("user"))

    # Personal Details
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    phone_number = Column(String(30))
    address = Column(String(255))
    profile_picture = Column(String(255))

    # Vehicle
    number_plate = Column(String(20), unique=True, index=True)

    # Account
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    suspended_at = Column(DateTime)
    suspended_reason = Column(Text)
    suspended_by = Column(String(64))
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)
    last_login = Column(DateTime)

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"
