"""User model."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from gatekeeper.clock import utcnow
from gatekeeper.database import Base


class Role(str, Enum):
    """Roles understood by the authorization gate."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    REVIEWER = "reviewer"
    READ_ONLY = "read_only"


class User(Base):
    """Staff account allowed to sign in to the admin dashboard."""

    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(254), unique=True, nullable=False, index=True)
    name = Column(String(256), nullable=False)
    password_hash = Column(String(256), nullable=False)
    role = Column(String(32), nullable=False, default=Role.REVIEWER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_secret = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_login_at = Column(DateTime, nullable=True)
