"""Login attempt aggregate model."""

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from gatekeeper.database import Base

SCOPE_EMAIL = "email"
SCOPE_IP = "ip"


class LoginAttempt(Base):
    """Consecutive login failures for one email or one client IP."""

    __tablename__ = "login_attempt"
    __table_args__ = (UniqueConstraint("scope", "key", name="uq_login_attempt_scope_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String(16), nullable=False)  # email, ip
    key = Column(String(254), nullable=False)
    failure_count = Column(Integer, nullable=False, default=0)
    first_failure_at = Column(DateTime, nullable=False)
    last_failure_at = Column(DateTime, nullable=False)
