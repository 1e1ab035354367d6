"""Session model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from gatekeeper.clock import utcnow
from gatekeeper.database import Base
from gatekeeper.models.user import User


class SessionKind(str, Enum):
    """What a session row may be used for."""

    ACTIVE = "active"
    PENDING_2FA = "pending_2fa"


class AuthSession(Base):
    """Server-side state behind an opaque bearer token."""

    __tablename__ = "session"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    kind = Column(String(16), nullable=False, default=SessionKind.ACTIVE.value)
    expires_at = Column(DateTime, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    failed_two_factor_attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship(User, lazy="joined")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
