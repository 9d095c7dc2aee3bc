"""Named locks persisted in the database so every process sees them."""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ..models import LockRecord, utc_now


class LockStore:
    """Acquire and release named run locks."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def acquire(self, name: str, *, owner: str, ttl_seconds: int | None = None) -> bool:
        """Take the lock unless someone else holds a fresh one."""

        now = utc_now()
        with Session(self._engine) as session:
            existing = session.get(LockRecord, name)
            if existing is not None:
                if ttl_seconds is None or now - existing.acquired_at < timedelta(seconds=ttl_seconds):
                    return False
                session.delete(existing)
                session.flush()
            session.add(LockRecord(name=name, owner=owner, acquired_at=now))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def release(self, name: str, *, owner: str) -> None:
        with Session(self._engine) as session:
            existing = session.get(LockRecord, name)
            if existing is not None and existing.owner == owner:
                session.delete(existing)
                session.commit()

    def is_locked(self, name: str) -> bool:
        with Session(self._engine) as session:
            return session.get(LockRecord, name) is not None
