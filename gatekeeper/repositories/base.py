"""Shared plumbing for SQLAlchemy-backed repositories."""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


class SqlRepository:
    """Repository bound to one request-scoped database session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _commit(self) -> None:
        """Commit the unit of work, rolling back so the session stays usable on failure."""
        try:
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            raise
