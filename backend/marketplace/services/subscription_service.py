# Overview: Monthly booking quota enforcement for provider subscription plans.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Booking, ProviderSubscription
from ..errors import SubscriptionLimitError
from ..time_utils import utcnow
from .fallbacks import safe_lookup


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class SubscriptionLimitChecker:
    """
    Checks the provider's active plan quota.

    No active subscription or a NULL limit means unlimited. A failed lookup
    allows the booking.
    """

    def bookings_this_month(self, provider_id: int, now: datetime) -> int:
        return (
            db.session.query(func.count(Booking.id))
            .filter(Booking.provider_id == provider_id)
            .filter(Booking.status != "cancelled")
            .filter(Booking.created_at >= month_start(now))
            .scalar()
        ) or 0

    def remaining(self, provider_id: int, now: datetime | None = None) -> int | None:
        now = now or utcnow()
        subscription = (
            db.session.query(ProviderSubscription)
            .filter_by(provider_id=provider_id, status="active")
            .order_by(ProviderSubscription.created_at.desc(), ProviderSubscription.id.desc())
            .first()
        )
        if not subscription or subscription.max_bookings_per_month is None:
            return None
        return max(0, subscription.max_bookings_per_month - self.bookings_this_month(provider_id, now))

    def check(self, provider_id: int, now: datetime | None = None) -> None:
        remaining = safe_lookup("subscription limit", lambda: self.remaining(provider_id, now), None)
        if remaining is not None and remaining <= 0:
            raise SubscriptionLimitError(
                "Provider has reached the monthly booking limit for their plan",
                details={"provider_id": provider_id},
            )
