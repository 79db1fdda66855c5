# Overview: Booking graph builder; sequences service lines on a time cursor and assigns fallback staff.

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from ..time_utils import add_minutes
from ..validation import BookingDraft, ParticipantDraft
from .catalog_service import OfferingSnapshot


@dataclass(frozen=True)
class ScheduledLine:
    offering_id: int
    staff_id: int | None
    duration_minutes: int
    price: Decimal
    currency: str
    start: datetime
    end: datetime
    resource_id: int | None = None


@dataclass(frozen=True)
class ParticipantLines:
    participant: ParticipantDraft
    lines: tuple[ScheduledLine, ...]


@dataclass(frozen=True)
class BookingGraph:
    service_lines: tuple[ScheduledLine, ...]
    participant_lines: tuple[ParticipantLines, ...] = ()
    explicit_resource_ids: tuple[int, ...] = ()
    fallback_staff_id: int | None = None

    @property
    def lead_staff_id(self) -> int | None:
        return self.service_lines[0].staff_id if self.service_lines else None


class StaffPicker:
    """Uniform choice over a staff pool; pass a seeded Random for repeatable picks."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def pick(self, staff_ids: list[int]) -> int | None:
        if not staff_ids:
            return None
        return self.rng.choice(staff_ids)


def sequence_lines(
    selections: list[tuple[OfferingSnapshot, int | None]],
    start: datetime,
    currency: str,
    resource_by_offering: dict[int, int | None] | None = None,
) -> list[ScheduledLine]:
    """
    Lay services end to end: each starts at the cursor, ends after its
    duration, and the cursor then skips the offering's buffer.
    """
    resource_by_offering = resource_by_offering or {}
    cursor = start
    lines = []
    for offering, staff_id in selections:
        line_start = cursor
        line_end = add_minutes(line_start, offering.duration_minutes)
        cursor = add_minutes(line_end, offering.buffer_minutes)
        lines.append(ScheduledLine(
            offering_id=offering.id,
            staff_id=staff_id,
            duration_minutes=offering.duration_minutes,
            price=offering.price,
            currency=currency,
            start=line_start,
            end=line_end,
            resource_id=resource_by_offering.get(offering.id),
        ))
    return lines


def build_booking_graph(
    draft: BookingDraft,
    offerings: dict[int, OfferingSnapshot],
    *,
    currency: str,
    staff_pool: list[int] | None = None,
    picker: StaffPicker | None = None,
    resource_by_offering: dict[int, int | None] | None = None,
) -> BookingGraph:
    """
    Shape the rows the repository will write.

    Only the booker's services become booking service lines; each group
    participant gets their own chain from the same start time. When no line
    has a staff preference, one member of `staff_pool` (active staff of the
    provider) is put on every line so the booking shows on a calendar.
    """
    start = draft.selected_datetime
    lines = sequence_lines(
        [(offerings[s.offering_id], s.staff_id) for s in draft.services],
        start,
        currency,
        None if draft.resource_ids else resource_by_offering,
    )

    fallback = None
    if all(line.staff_id is None for line in lines) and staff_pool:
        fallback = (picker or StaffPicker()).pick(staff_pool)
        if fallback is not None:
            lines = [replace(line, staff_id=fallback) for line in lines]

    participants = ()
    if draft.is_group:
        participants = tuple(
            ParticipantLines(
                participant=p,
                lines=tuple(sequence_lines([(offerings[oid], None) for oid in p.service_ids], start, currency)),
            )
            for p in draft.group_participants
        )

    return BookingGraph(
        service_lines=tuple(lines),
        participant_lines=participants,
        explicit_resource_ids=tuple(dict.fromkeys(draft.resource_ids)),
        fallback_staff_id=fallback,
    )
