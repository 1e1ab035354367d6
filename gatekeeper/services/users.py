"""Account administration: create, list, update and deactivate staff users."""

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from gatekeeper.config import Settings
from gatekeeper.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from gatekeeper.models.user import Role, User
from gatekeeper.repositories.users import UserRepository
from gatekeeper.security import is_valid_email, normalize_email
from gatekeeper.services import audit
from gatekeeper.services.audit import AuditLogger
from gatekeeper.services.passwords import PasswordPolicy, hash_password, validate_password_strength
from gatekeeper.services.sessions import SessionManager
from gatekeeper.services.two_factor import TwoFactorEngine, render_qr_data_url


@dataclass
class CreatedUser:
    user: User
    otpauth_uri: str | None = None


@dataclass
class TwoFactorSetup:
    email: str
    otpauth_uri: str
    qr_code: str


class UserService:
    """Administrative operations on user records."""

    def __init__(
        self,
        users: UserRepository,
        sessions: SessionManager,
        two_factor: TwoFactorEngine,
        audit_logger: AuditLogger,
        settings: Settings,
    ) -> None:
        self._users = users
        self._sessions = sessions
        self._two_factor = two_factor
        self._audit = audit_logger
        self._settings = settings
        self._policy = PasswordPolicy.from_settings(settings)

    def list_users(self) -> list[User]:
        return self._users.list_users()

    def get_user(self, user_id: int) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def create_user(
        self,
        actor: User,
        email: str | None,
        name: str | None,
        password: str | None,
        role: str | None,
        two_factor_enabled: bool = False,
    ) -> CreatedUser:
        """Create an account, enrolling a TOTP secret when two-factor is requested."""
        if not email or not name or not password or not role:
            raise ValidationError("All fields are required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        role = self._checked_role(actor, role)
        self._check_strength(password)

        email = normalize_email(email)
        if self._users.get_by_email(email) is not None:
            raise ConflictError("User with this email already exists")

        enrollment = self._two_factor.generate_secret(email) if two_factor_enabled else None
        user = User(
            email=email,
            name=name.strip(),
            password_hash=self._hash(password),
            role=role,
            is_active=True,
            two_factor_enabled=bool(two_factor_enabled),
            two_factor_secret=enrollment.secret if enrollment else None,
        )
        try:
            user = self._users.add(user)
        except IntegrityError as exc:
            raise ConflictError("User with this email already exists") from exc

        self._audit.log_event(
            audit.USER_CREATED,
            user_id=actor.id,
            details={"created_user_id": user.id, "role": user.role},
        )
        return CreatedUser(user=user, otpauth_uri=enrollment.otpauth_uri if enrollment else None)

    def update_user(
        self,
        actor: User,
        user_id: int,
        name: str | None = None,
        role: str | None = None,
        is_active: bool | None = None,
        password: str | None = None,
    ) -> User:
        """Apply the provided changes. Deactivation also revokes the user's sessions."""
        user = self.get_user(user_id)
        self._check_target(actor, user)
        changes = []
        if name is not None:
            if not name.strip():
                raise ValidationError("Name must not be empty")
            user.name = name.strip()
            changes.append("name")
        if role is not None:
            user.role = self._checked_role(actor, role)
            changes.append("role")
        if password:
            self._check_strength(password)
            user.password_hash = self._hash(password)
            changes.append("password")
        if is_active is not None:
            if not is_active and user.id == actor.id:
                raise ValidationError("Cannot deactivate your own account")
            user.is_active = is_active
            changes.append("is_active")

        user = self._users.save(user)
        if is_active is False or "password" in changes:
            self._sessions.revoke_user_sessions(user.id)

        self._audit.log_event(
            audit.USER_UPDATED,
            user_id=actor.id,
            details={"updated_user_id": user.id, "changes": changes},
        )
        return user

    def deactivate_user(self, actor: User, user_id: int) -> None:
        """Soft delete: flip the active flag and revoke every session of the user."""
        if user_id == actor.id:
            raise ValidationError("Cannot delete your own account")
        user = self.get_user(user_id)
        self._check_target(actor, user)
        user.is_active = False
        self._users.save(user)
        self._sessions.revoke_user_sessions(user.id)
        self._audit.log_event(audit.USER_DEACTIVATED, user_id=actor.id, details={"deactivated_user_id": user.id})

    def two_factor_setup(self, user_id: int) -> TwoFactorSetup:
        """Provisioning URI and QR code for an already enrolled user."""
        user = self.get_user(user_id)
        if not user.two_factor_enabled or not user.two_factor_secret:
            raise ValidationError("2FA is not enabled for this user")
        uri = self._two_factor.provisioning_uri(user.two_factor_secret, user.email)
        return TwoFactorSetup(email=user.email, otpauth_uri=uri, qr_code=render_qr_data_url(uri))

    def _check_target(self, actor: User, target: User) -> None:
        if target.role == Role.SUPER_ADMIN.value and actor.role != Role.SUPER_ADMIN.value:
            raise ForbiddenError("Only a super admin can modify a super admin account")

    def _checked_role(self, actor: User, role: str) -> str:
        try:
            parsed = Role(role)
        except ValueError:
            raise ValidationError("Invalid role specified") from None
        if parsed == Role.SUPER_ADMIN and actor.role != Role.SUPER_ADMIN.value:
            raise ForbiddenError("Only a super admin can grant the super_admin role")
        return parsed.value

    def _check_strength(self, password: str) -> None:
        if len(password.encode("utf-8")) > self._settings.PASSWORD_MAX_BYTES:
            raise ValidationError(f"Password must be at most {self._settings.PASSWORD_MAX_BYTES} bytes")
        strength = validate_password_strength(password, self._policy)
        if not strength.valid:
            raise ValidationError(", ".join(strength.errors))

    def _hash(self, password: str) -> str:
        return hash_password(
            password,
            rounds=self._settings.BCRYPT_ROUNDS,
            max_bytes=self._settings.PASSWORD_MAX_BYTES,
        )
