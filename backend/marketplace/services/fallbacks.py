# Overview: Safe-default wrapper for optional lookups that must never fail a booking.

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db

logger = logging.getLogger(__name__)

T = TypeVar("T")


def safe_lookup(label: str, func: Callable[[], T], default: T) -> T:
    """
    Run a read-only lookup, returning `default` when the store fails.

    The lookup runs in a savepoint so a failed statement is rolled back on its
    own and the surrounding transaction stays usable (PostgreSQL aborts the
    whole transaction otherwise). Only data-access and data-shape errors are
    absorbed; programming errors propagate.
    """
    try:
        with db.session.begin_nested():
            return func()
    except (SQLAlchemyError, LookupError, ValueError, TypeError, ArithmeticError):
        logger.warning("%s lookup failed; using default %r", label, default, exc_info=True)
        return default
