"""User persistence."""

from datetime import datetime

from sqlalchemy import select

from gatekeeper.models.user import User
from gatekeeper.repositories.base import SqlRepository


class UserRepository(SqlRepository):
    """Lookup and mutation of user records."""

    def get_by_id(self, user_id: int) -> User | None:
        return self._db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        """Find a user by normalized email regardless of active flag."""
        return self._db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    def get_active_by_email(self, email: str) -> User | None:
        """Find an active user by normalized email."""
        stmt = select(User).where(User.email == email, User.is_active.is_(True))
        return self._db.execute(stmt).scalar_one_or_none()

    def list_users(self) -> list[User]:
        return list(self._db.execute(select(User).order_by(User.created_at.desc(), User.id.desc())).scalars())

    def add(self, user: User) -> User:
        self._db.add(user)
        self._commit()
        self._db.refresh(user)
        return user

    def save(self, user: User) -> User:
        self._commit()
        self._db.refresh(user)
        return user

    def touch_last_login(self, user_id: int, at: datetime) -> None:
        user = self._db.get(User, user_id)
        if user is None:
            return
        user.last_login_at = at
        self._commit()
