# Overview: Locking and retry helpers for the booking write unit.

from __future__ import annotations

import time
import zlib
from datetime import date, timedelta

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import ProviderStaff, Resource

# Two-key advisory locks live apart from the single-key staff schedule locks
RESOURCE_LOCK_NAMESPACE = 0x5253


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def schedule_lock_key(staff_id: int, day: date) -> int:
    """Stable signed 63-bit key for (staff_id, date), usable by pg_advisory_xact_lock."""
    digest = zlib.crc32(f"staff-schedule:{staff_id}:{day.isoformat()}".encode())
    return (staff_id << 20) ^ digest


def _days_between(first: date, last: date) -> list[date]:
    days = [first]
    while days[-1] < last:
        days.append(days[-1] + timedelta(days=1))
    return days


def staff_schedule_lock(staff_id: int | None, first_day: date, last_day: date | None = None) -> None:
    """
    Serialize booking writes for one staff member's days.

    Must be called inside the transaction that performs both the conflict read
    and the booking insert; the lock is released on commit/rollback. A booking
    that runs past midnight locks every day it touches, earliest first.
    - PostgreSQL: transaction-scoped advisory lock keyed by (staff_id, date)
    - SQLite: BEGIN IMMEDIATE (database-wide write lock)
    - Others: SELECT ... FOR UPDATE on the staff row
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        # Caller must not have written anything yet in this transaction.
        db.session.execute(text("BEGIN IMMEDIATE"))
        return
    if staff_id is None:
        return
    if dialect == "postgresql":
        for day in _days_between(first_day, last_day or first_day):
            db.session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": schedule_lock_key(staff_id, day)},
            )
        return
    lock_for_update(db.session.query(ProviderStaff).filter_by(id=staff_id)).first()


def resource_locks(resource_ids) -> None:
    """
    Serialize booking writes that hold the same resources.

    Call after staff_schedule_lock in the same transaction. Ids are locked in
    ascending order. SQLite needs nothing more than BEGIN IMMEDIATE.
    - PostgreSQL: two-key advisory lock (RESOURCE_LOCK_NAMESPACE, resource_id)
    - Others: SELECT ... FOR UPDATE on the resource rows
    """
    ids = sorted(set(resource_ids))
    if not ids:
        return
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        return
    if dialect == "postgresql":
        for resource_id in ids:
            db.session.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :resource_id)"),
                {"namespace": RESOURCE_LOCK_NAMESPACE, "resource_id": resource_id},
            )
        return
    lock_for_update(
        db.session.query(Resource).filter(Resource.id.in_(ids)).order_by(Resource.id)
    ).all()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
