"""TOTP enrollment and verification."""

import base64
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

import pyotp
import qrcode

from gatekeeper.clock import Clock, utcnow
from gatekeeper.config import Settings

logger = logging.getLogger("gatekeeper")

_CODE_RE = re.compile(r"^\d{6}$")


@dataclass(frozen=True)
class TwoFactorEnrollment:
    """Freshly generated secret and the URI authenticator apps scan."""

    secret: str
    otpauth_uri: str


class TwoFactorEngine:
    """Generates TOTP secrets and checks submitted codes within a clock-skew window."""

    def __init__(self, issuer: str, valid_window: int = 1, clock: Clock = utcnow) -> None:
        self.issuer = issuer
        self.valid_window = valid_window
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "TwoFactorEngine":
        return cls(issuer=settings.TOTP_ISSUER, valid_window=settings.TOTP_VALID_WINDOW, clock=clock)

    def generate_secret(self, label: str) -> TwoFactorEnrollment:
        """Create a 160-bit base32 secret and its otpauth:// provisioning URI."""
        secret = pyotp.random_base32()
        return TwoFactorEnrollment(secret=secret, otpauth_uri=self.provisioning_uri(secret, label))

    def provisioning_uri(self, secret: str, label: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=self.issuer)

    def verify(self, code: str, secret: str, at: datetime | None = None) -> bool:
        """Return True if ``code`` matches the current step or one of its neighbours."""
        if not code or not secret or not _CODE_RE.match(code):
            return False
        moment = (at or self._clock()).replace(tzinfo=timezone.utc)
        try:
            return pyotp.TOTP(secret).verify(code, for_time=moment, valid_window=self.valid_window)
        except ValueError:
            logger.error("Stored two-factor secret is not valid base32")
            return False


def render_qr_data_url(otpauth_uri: str) -> str:
    """Encode a provisioning URI as a PNG data URL for display."""
    image = qrcode.make(otpauth_uri)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
