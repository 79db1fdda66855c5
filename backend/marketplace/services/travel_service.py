# Overview: Travel buffer estimation for at-home bookings.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Booking, BookingServiceLine, ProviderLocation
from .fallbacks import safe_lookup

EARTH_RADIUS_KM = 6371.0
INACTIVE_BOOKING_STATUSES = ("cancelled", "no_show")


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def travel_minutes(origin: Coordinates | None, destination: Coordinates, *, base_minutes: int, minutes_per_km: float) -> int:
    if origin is None:
        return base_minutes
    return max(base_minutes, round(haversine_km(origin, destination) * minutes_per_km))


class HaversineTravelBufferEstimator:
    """
    Minutes a staff member needs to reach an at-home address.

    Origin is where the staff member's previous booking that day took place,
    else the provider's primary salon. Returns 0 if the lookup fails.
    """

    def __init__(self, *, base_minutes: int = 30, minutes_per_km: float = 2.0):
        self.base_minutes = base_minutes
        self.minutes_per_km = minutes_per_km

    def estimate(self, *, provider_id: int, staff_id: int, start: datetime, destination: Coordinates) -> int:
        return safe_lookup(
            "travel buffer",
            lambda: travel_minutes(
                self._origin(provider_id, staff_id, start),
                destination,
                base_minutes=self.base_minutes,
                minutes_per_km=self.minutes_per_km,
            ),
            0,
        )

    def _origin(self, provider_id: int, staff_id: int, start: datetime) -> Coordinates | None:
        day_start = start.replace(hour=0, minute=0, second=0, microsecond=0)
        previous = (
            db.session.query(Booking)
            .join(BookingServiceLine, BookingServiceLine.booking_id == Booking.id)
            .filter(BookingServiceLine.staff_id == staff_id)
            .filter(Booking.status.notin_(INACTIVE_BOOKING_STATUSES))
            .filter(BookingServiceLine.scheduled_end_at <= start)
            .filter(BookingServiceLine.scheduled_end_at >= day_start)
            .filter(BookingServiceLine.scheduled_end_at < day_start + timedelta(days=1))
            .order_by(BookingServiceLine.scheduled_end_at.desc())
            .first()
        )
        if previous is not None:
            if previous.address_latitude is not None and previous.address_longitude is not None:
                return Coordinates(previous.address_latitude, previous.address_longitude)
            if previous.location_id:
                location = db.session.get(ProviderLocation, previous.location_id)
                if location and location.latitude is not None and location.longitude is not None:
                    return Coordinates(location.latitude, location.longitude)

        salon = (
            db.session.query(ProviderLocation)
            .filter_by(provider_id=provider_id, is_active=True, location_type="salon")
            .order_by(ProviderLocation.is_primary.desc(), ProviderLocation.id.asc())
            .first()
        )
        if salon and salon.latitude is not None and salon.longitude is not None:
            return Coordinates(salon.latitude, salon.longitude)
        return None
