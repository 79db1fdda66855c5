# Overview: Blocked-time arithmetic for bookings: durations, group chains, conflict and resource windows.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..time_utils import add_minutes
from ..validation import BookingDraft
from .catalog_service import OfferingSnapshot
from .travel_service import Coordinates


@dataclass(frozen=True)
class BookingWindows:
    """
    Time spans derived from one draft.

    - conflict: staff occupancy checked against existing service lines
    - resource: base service durations only, no staff buffer
    - booking: persisted scheduled_at..scheduled_end_at
    """
    start: datetime
    conflict_end: datetime
    resource_end: datetime
    booking_end: datetime
    total_minutes: int
    check_minutes: int
    travel_minutes: int = 0


def chain_minutes(offering_ids, offerings: dict[int, OfferingSnapshot]) -> int:
    return sum(offerings[oid].duration_minutes for oid in offering_ids if oid in offerings)


def group_duration_minutes(
    primary_ids: list[int],
    participant_chains: list[list[int]],
    offerings: dict[int, OfferingSnapshot],
) -> int:
    """
    Longest single chain among the booker and participants.

    Participants are assumed to be served in parallel, so the group blocks
    the calendar for its longest chain rather than the sum.
    """
    chains = [primary_ids] + [list(chain) for chain in participant_chains]
    return max(chain_minutes(chain, offerings) for chain in chains)


def _participant_chains(draft: BookingDraft) -> list[list[int]]:
    return [list(p.service_ids) for p in draft.group_participants]


def total_service_minutes(draft: BookingDraft, offerings: dict[int, OfferingSnapshot]) -> int:
    if draft.is_group:
        return group_duration_minutes(draft.primary_offering_ids, _participant_chains(draft), offerings)
    return chain_minutes(draft.primary_offering_ids, offerings)


def check_duration_minutes(draft: BookingDraft, offerings: dict[int, OfferingSnapshot]) -> int:
    """Staff time blocked for conflict detection, before travel."""
    if draft.is_group:
        last = offerings[draft.services[-1].offering_id]
        return total_service_minutes(draft, offerings) + last.tail_minutes
    return sum(offerings[s.offering_id].blocked_minutes for s in draft.services)


def destination_of(draft: BookingDraft) -> Coordinates | None:
    if draft.is_at_home and draft.address is not None and draft.address.is_geocoded:
        return Coordinates(draft.address.latitude, draft.address.longitude)
    return None


def compose_windows(
    draft: BookingDraft,
    offerings: dict[int, OfferingSnapshot],
    *,
    travel_minutes: int = 0,
    default_last_buffer: int = 15,
) -> BookingWindows:
    """
    Build the conflict, resource and booking windows for a draft.

    When the last service carries no buffer, the conflict window is padded by
    `default_last_buffer` so back-to-back bookings keep a turnaround gap.
    """
    start = draft.selected_datetime
    last = offerings[draft.services[-1].offering_id]

    check_minutes = check_duration_minutes(draft, offerings) + travel_minutes
    padding = 0 if last.buffer_minutes else default_last_buffer

    total = total_service_minutes(draft, offerings)
    return BookingWindows(
        start=start,
        conflict_end=add_minutes(start, check_minutes + padding),
        resource_end=add_minutes(start, chain_minutes(draft.primary_offering_ids, offerings)),
        booking_end=add_minutes(start, total + last.buffer_minutes),
        total_minutes=total,
        check_minutes=check_minutes,
        travel_minutes=travel_minutes,
    )
