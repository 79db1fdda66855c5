# Overview: Staff conflict and resource availability checks, plus double-booking arbitration.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import Booking, BookingServiceLine, Resource, ResourceAssignment
from ..errors import BookingConflictError, ResourceUnavailableError
from .travel_service import INACTIVE_BOOKING_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflicting_booking_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class ResourceConflict:
    resource_id: int
    reason: str


@dataclass(frozen=True)
class ResourceCheck:
    available: bool
    conflicts: tuple[ResourceConflict, ...] = ()


@dataclass(frozen=True)
class ConflictDecision:
    """Outcome of staff conflict arbitration; `overridden` means a known double booking."""
    checked: bool
    overridden: bool = False
    conflicting_booking_ids: tuple[int, ...] = ()


NO_CONFLICT_CHECK = ConflictDecision(checked=False)


def _hhmm(dt: datetime) -> str:
    return dt.strftime("%H:%M")


class AvailabilityStore:
    """Overlap queries against persisted bookings. Intervals are half-open."""

    def find_staff_conflicts(self, staff_id: int, start: datetime, end: datetime) -> ConflictResult:
        rows = (
            db.session.query(BookingServiceLine.booking_id)
            .join(Booking, Booking.id == BookingServiceLine.booking_id)
            .filter(BookingServiceLine.staff_id == staff_id)
            .filter(Booking.status.notin_(INACTIVE_BOOKING_STATUSES))
            .filter(BookingServiceLine.scheduled_start_at < end)
            .filter(BookingServiceLine.scheduled_end_at > start)
            .distinct()
            .order_by(BookingServiceLine.booking_id.asc())
            .all()
        )
        ids = tuple(row[0] for row in rows)
        return ConflictResult(has_conflict=bool(ids), conflicting_booking_ids=ids)

    def check_resources(self, resource_ids: list[int], start: datetime, end: datetime) -> ResourceCheck:
        if not resource_ids:
            return ResourceCheck(available=True)

        resources = {
            r.id: r for r in db.session.query(Resource).filter(Resource.id.in_(resource_ids)).all()
        }
        conflicts: list[ResourceConflict] = []
        for resource_id in resource_ids:
            resource = resources.get(resource_id)
            if resource is None:
                conflicts.append(ResourceConflict(resource_id, f"resource {resource_id} not found"))
            elif not resource.is_active:
                conflicts.append(ResourceConflict(resource_id, f"{resource.name} is inactive"))

        busy = (
            db.session.query(ResourceAssignment)
            .join(Booking, Booking.id == ResourceAssignment.booking_id)
            .filter(ResourceAssignment.resource_id.in_(list(resources)))
            .filter(Booking.status.notin_(INACTIVE_BOOKING_STATUSES))
            .filter(ResourceAssignment.scheduled_start_at < end)
            .filter(ResourceAssignment.scheduled_end_at > start)
            .order_by(ResourceAssignment.scheduled_start_at.asc())
            .all()
        )
        for assignment in busy:
            resource = resources[assignment.resource_id]
            if not resource.is_active:
                continue
            conflicts.append(ResourceConflict(
                resource.id,
                f"{resource.name} is booked {_hhmm(assignment.scheduled_start_at)}-{_hhmm(assignment.scheduled_end_at)}",
            ))
        return ResourceCheck(available=not conflicts, conflicts=tuple(conflicts))


def arbitrate_staff_conflict(result: ConflictResult, *, provider_id: int, settings_store) -> ConflictDecision:
    """
    Clean -> proceed; Blocked -> overridden when the provider allows double
    booking, otherwise rejected with CONFLICT.
    """
    if not result.has_conflict:
        return ConflictDecision(checked=True)
    if not settings_store.allows_double_booking(provider_id):
        raise BookingConflictError(
            "This time slot is no longer available. Please select another time.",
            details={"conflicting_booking_ids": list(result.conflicting_booking_ids)},
        )
    logger.warning(
        "Double booking override allowed for provider %s (conflicts: %s)",
        provider_id,
        list(result.conflicting_booking_ids),
    )
    return ConflictDecision(
        checked=True,
        overridden=True,
        conflicting_booking_ids=result.conflicting_booking_ids,
    )


def raise_for_resources(check: ResourceCheck) -> None:
    if check.available:
        return
    reasons = [c.reason for c in check.conflicts]
    raise ResourceUnavailableError(
        f"Required resources are not available: {', '.join(reasons)}",
        details={
            "conflicts": [{"resource_id": c.resource_id, "reason": c.reason} for c in check.conflicts],
        },
    )
