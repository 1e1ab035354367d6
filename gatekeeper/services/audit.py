"""Audit event emitter.

Events are written to the application log and, when configured, handed to an
external sink. A failing sink never blocks the request that produced the
event.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from gatekeeper.clock import Clock, utcnow

logger = logging.getLogger("gatekeeper")

LOGIN = "login"
LOGIN_FAILED = "login_failed"
LOGOUT = "logout"
TWO_FACTOR_SUCCESS = "two_factor_success"
TWO_FACTOR_FAILED = "two_factor_failed"
USER_CREATED = "user_created"
USER_UPDATED = "user_updated"
USER_DEACTIVATED = "user_deactivated"


@dataclass
class AuditEvent:
    action: str
    occurred_at: datetime
    user_id: int | None = None
    success: bool = True
    ip_address: str | None = None
    user_agent: str | None = None
    error_message: str | None = None
    details: dict = field(default_factory=dict)


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """Records security-relevant events."""

    def __init__(self, sink: AuditSink | None = None, clock: Clock = utcnow) -> None:
        self._sink = sink
        self._clock = clock

    def log_event(
        self,
        action: str,
        *,
        user_id: int | None = None,
        success: bool = True,
        ip_address: str | None = None,
        user_agent: str | None = None,
        error_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        event = AuditEvent(
            action=action,
            occurred_at=self._clock(),
            user_id=user_id,
            success=success,
            ip_address=ip_address,
            user_agent=user_agent,
            error_message=error_message,
            details=details or {},
        )
        logger.info(
            "AUDIT %s user_id=%s success=%s ip=%s%s",
            action,
            user_id,
            success,
            ip_address or "unknown",
            f" ({error_message})" if error_message else "",
        )
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:
            logger.exception("Failed to deliver audit event %s", action)
