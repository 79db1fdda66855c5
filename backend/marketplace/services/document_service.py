# Overview: Per-provider booking number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BookingSequence


class DocumentSequenceError(Exception):
    """Raised when booking number allocation fails."""
    pass


def _current_next(provider_id: int) -> int:
    return (
        db.session.query(BookingSequence.next_number)
        .filter_by(provider_id=provider_id)
        .scalar()
    )


def next_booking_number(*, provider_id: int, prefix: str = "BK", pad: int = 6) -> str:
    """
    Allocate the next booking number for a provider.

    Runs inside the caller's transaction (the booking write unit), so the
    number is only consumed if the booking commits.
    """
    if not provider_id:
        raise DocumentSequenceError("provider_id is required")

    stmt = (
        update(BookingSequence)
        .where(BookingSequence.provider_id == provider_id)
        .values(next_number=BookingSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next(provider_id) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(BookingSequence(provider_id=provider_id, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another writer created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_next(provider_id) - 1

    return f"{prefix}-{provider_id}-{next_num:0{pad}d}"
