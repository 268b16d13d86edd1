"""
Run Lock Model

A database-row lease giving one run exclusive use of the record tables.
Refresh, discovery and the history operations all take the same lock, so
a scheduled run and a manual one can never interleave.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Optional

from peewee import CharField, DateTimeField, IntegrityError

from core.errors import RunLockHeldError
from core.logging import get_logger
from db.base import BaseModel, db

RECORD_TABLES_LOCK = "record_tables"

log = get_logger("run_lock")


class RunLock(BaseModel):
    """
    Attributes:
        name: Lock name (one row per lock)
        holder: Identifier of the run holding it
        acquired_at: When the lease was taken
        expires_at: After this the lease is stale and may be taken over
    """

    name = CharField(max_length=50, primary_key=True)
    holder = CharField(max_length=64)
    acquired_at = DateTimeField()
    expires_at = DateTimeField()

    class Meta:
        table_name = "run_locks"

    def __repr__(self) -> str:
        return f"<RunLock(name={self.name}, holder={self.holder}, expires_at={self.expires_at})>"

    @classmethod
    def acquire(
        cls,
        name: str,
        holder: str,
        ttl_seconds: int,
        now: Optional[datetime] = None,
    ) -> "RunLock":
        """
        Take the lease or fail.

        Raises:
            RunLockHeldError: If a live lease exists
        """
        now = now or datetime.utcnow()
        try:
            with db.atomic():
                current = cls.get_or_none(cls.name == name)
                if current is not None:
                    if current.expires_at > now:
                        raise RunLockHeldError(name, current.holder)
                    log.warning(
                        "stale_lock_taken_over",
                        lock=name,
                        previous_holder=current.holder,
                        expired_at=str(current.expires_at),
                    )
                    current.delete_instance()

                return cls.create(
                    name=name,
                    holder=holder,
                    acquired_at=now,
                    expires_at=now + timedelta(seconds=ttl_seconds),
                )
        except IntegrityError:
            # Lost the race to another process inserting the same lock
            raise RunLockHeldError(name)

    @classmethod
    def release(cls, name: str, holder: str) -> bool:
        """Release the lease if `holder` still owns it."""
        deleted = (
            cls.delete()
            .where((cls.name == name) & (cls.holder == holder))
            .execute()
        )
        return deleted > 0

    @classmethod
    @contextmanager
    def hold(cls, name: str, holder: str, ttl_seconds: int) -> Iterator["RunLock"]:
        """Hold the lease for the duration of a with-block."""
        lease = cls.acquire(name, holder, ttl_seconds)
        log.debug("lock_acquired", lock=name, holder=holder)
        try:
            yield lease
        finally:
            cls.release(name, holder)
            log.debug("lock_released", lock=name, holder=holder)
