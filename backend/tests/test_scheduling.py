# Overview: Pytest coverage for booking windows, service sequencing and travel estimates.

import logging
import random
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from marketplace.models import Provider
from marketplace.services.appointment_status import AppointmentStatusDeterminer, initial_booking_status
from marketplace.services.fallbacks import safe_lookup
from marketplace.services.booking_graph_service import StaffPicker, build_booking_graph, sequence_lines
from marketplace.services.catalog_service import OfferingSnapshot
from marketplace.services.scheduling_service import compose_windows, destination_of
from marketplace.services.travel_service import Coordinates, haversine_km, travel_minutes
from marketplace.validation import (
    Address,
    BookingDraft,
    ParticipantDraft,
    ServiceSelection,
)

START = datetime(2030, 3, 4, 9, 0)

OFFERINGS = {
    1: OfferingSnapshot(id=1, provider_id=1, title="Cut", price=Decimal("200"), is_active=True,
                        duration_minutes=60),
    2: OfferingSnapshot(id=2, provider_id=1, title="Colour", price=Decimal("500"), is_active=True,
                        duration_minutes=90, buffer_minutes=15, processing_minutes=30),
    3: OfferingSnapshot(id=3, provider_id=1, title="Nails", price=Decimal("150"), is_active=True,
                        duration_minutes=45, buffer_minutes=10, finishing_minutes=5),
}


def minutes(n):
    return START + timedelta(minutes=n)


def draft(*offering_ids, staff_id=None, **overrides):
    fields = dict(
        provider_id=1,
        services=tuple(ServiceSelection(oid, staff_id if i == 0 else None) for i, oid in enumerate(offering_ids)),
        selected_datetime=START,
        location_type="at_salon",
        location_id=5,
    )
    fields.update(overrides)
    return BookingDraft(**fields)


class TestComposeWindows:

    def test_single_service_without_buffer_gets_default_padding(self):
        windows = compose_windows(draft(1), OFFERINGS)

        assert windows.check_minutes == 60
        assert windows.conflict_end == minutes(75)
        assert windows.resource_end == minutes(60)
        assert windows.booking_end == minutes(60)

    def test_multi_service_blocks_buffers_and_processing(self):
        windows = compose_windows(draft(1, 2), OFFERINGS)

        # 60 + (90 + 15 + 30); last service has its own buffer so no padding
        assert windows.check_minutes == 195
        assert windows.conflict_end == minutes(195)
        assert windows.total_minutes == 150
        assert windows.resource_end == minutes(150)
        assert windows.booking_end == minutes(165)

    def test_padding_is_configurable(self):
        windows = compose_windows(draft(1), OFFERINGS, default_last_buffer=0)
        assert windows.conflict_end == minutes(60)

    def test_travel_extends_conflict_window_only(self):
        windows = compose_windows(draft(2), OFFERINGS, travel_minutes=30)

        assert windows.check_minutes == 135 + 30
        assert windows.conflict_end == minutes(165)
        assert windows.booking_end == minutes(105)
        assert windows.travel_minutes == 30

    def test_group_uses_longest_chain(self):
        group = draft(
            1,
            is_group_booking=True,
            group_participants=(
                ParticipantDraft(name="Lindi", service_ids=(2,)),
                ParticipantDraft(name="Zola", service_ids=(3, 3)),
            ),
        )
        windows = compose_windows(group, OFFERINGS)

        # max(60, 90, 45 + 45); cut has no tail
        assert windows.total_minutes == 90
        assert windows.check_minutes == 90
        assert windows.conflict_end == minutes(105)
        assert windows.resource_end == minutes(60)
        assert windows.booking_end == minutes(90)

    def test_group_check_adds_last_primary_tail(self):
        group = draft(
            3,
            is_group_booking=True,
            group_participants=(ParticipantDraft(name="Lindi", service_ids=(1,)),),
        )
        windows = compose_windows(group, OFFERINGS)

        assert windows.total_minutes == 60
        assert windows.check_minutes == 60 + 15
        assert windows.booking_end == minutes(70)


class TestSequencing:

    def test_lines_laid_end_to_end_with_buffers(self):
        lines = sequence_lines([(OFFERINGS[2], 4), (OFFERINGS[1], None)], START, "ZAR")

        assert (lines[0].start, lines[0].end) == (START, minutes(90))
        # Second service starts after the first one's buffer
        assert (lines[1].start, lines[1].end) == (minutes(105), minutes(165))
        assert lines[0].staff_id == 4
        assert lines[1].price == Decimal("200")
        assert lines[1].currency == "ZAR"

    def test_fallback_staff_applied_to_every_line(self):
        graph = build_booking_graph(
            draft(1, 2),
            OFFERINGS,
            currency="ZAR",
            staff_pool=[7, 8],
            picker=StaffPicker(random.Random(3)),
        )

        assert graph.fallback_staff_id in (7, 8)
        assert {line.staff_id for line in graph.service_lines} == {graph.fallback_staff_id}
        assert graph.lead_staff_id == graph.fallback_staff_id

    def test_requested_staff_disables_fallback(self):
        graph = build_booking_graph(draft(1, 2, staff_id=4), OFFERINGS, currency="ZAR", staff_pool=[7, 8])

        assert graph.fallback_staff_id is None
        assert [line.staff_id for line in graph.service_lines] == [4, None]

    def test_empty_pool_leaves_lines_unassigned(self):
        graph = build_booking_graph(draft(1), OFFERINGS, currency="ZAR", staff_pool=[])

        assert graph.fallback_staff_id is None
        assert graph.lead_staff_id is None

    def test_participant_chains_start_with_booking(self):
        group = draft(
            1,
            is_group_booking=True,
            group_participants=(ParticipantDraft(name="Lindi", service_ids=(3, 1)),),
        )
        graph = build_booking_graph(group, OFFERINGS, currency="ZAR")

        lines = graph.participant_lines[0].lines
        assert lines[0].start == START
        assert lines[1].start == minutes(55)
        assert all(line.staff_id is None for line in lines)

    def test_resources_attached_per_offering_unless_explicit(self):
        graph = build_booking_graph(draft(1, 2), OFFERINGS, currency="ZAR", resource_by_offering={1: 30, 2: None})
        assert [line.resource_id for line in graph.service_lines] == [30, None]

        explicit = build_booking_graph(
            draft(1, 2, resource_ids=(31, 31)), OFFERINGS, currency="ZAR", resource_by_offering={1: 30},
        )
        assert [line.resource_id for line in explicit.service_lines] == [None, None]
        assert explicit.explicit_resource_ids == (31,)


class TestTravel:

    def test_one_degree_of_latitude(self):
        km = haversine_km(Coordinates(0.0, 0.0), Coordinates(1.0, 0.0))
        assert 111.1 < km < 111.3

    def test_travel_minutes_floor_at_base(self):
        here = Coordinates(0.0, 0.0)
        assert travel_minutes(None, here, base_minutes=30, minutes_per_km=2.0) == 30
        assert travel_minutes(here, here, base_minutes=30, minutes_per_km=2.0) == 30
        assert travel_minutes(here, Coordinates(1.0, 0.0), base_minutes=30, minutes_per_km=2.0) == 222

    def test_destination_only_for_geocoded_home_visits(self):
        geocoded = Address(line1="1 Main", city="Durban", country="ZA", latitude=1.0, longitude=2.0)
        plain = Address(line1="1 Main", city="Durban", country="ZA")

        assert destination_of(draft(1, location_type="at_home", location_id=None, address=geocoded)) == Coordinates(1.0, 2.0)
        assert destination_of(draft(1, location_type="at_home", location_id=None, address=plain)) is None
        assert destination_of(draft(1)) is None


class TestStatusAndFallbacks:

    def test_initial_status_follows_auto_confirm(self):
        assert initial_booking_status(True) == "confirmed"
        assert initial_booking_status(False) == "pending"

    def test_status_determiner_asks_settings(self):
        class Settings:
            def auto_confirms(self, provider_id):
                return provider_id != 2

        determiner = AppointmentStatusDeterminer(Settings())
        assert determiner.status_for(1) == "confirmed"
        assert determiner.status_for(2) == "pending"

    def test_safe_lookup_returns_default_and_warns(self, db_session, caplog):
        def broken():
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        with caplog.at_level(logging.WARNING, logger="marketplace.services.fallbacks"):
            assert safe_lookup("travel buffer", broken, 0) == 0
        assert "travel buffer lookup failed" in caplog.text

    def test_safe_lookup_lets_programming_errors_through(self, db_session):
        def broken():
            raise AttributeError("typo")

        with pytest.raises(AttributeError):
            safe_lookup("travel buffer", broken, 0)

    def test_failed_lookup_leaves_transaction_usable(self, db_session, provider):
        provider.name = "Glow Studio Rosebank"
        db_session.flush()

        def broken():
            return db_session.execute(text("SELECT missing_column FROM providers")).scalar()

        assert safe_lookup("platform tax rate", broken, Decimal("0")) == Decimal("0")
        # Later lookups and the pending write both survive the failed statement
        assert safe_lookup("provider name", lambda: db_session.get(Provider, provider.id).name, None) == "Glow Studio Rosebank"
        db_session.commit()
        db_session.expire_all()
        assert db_session.get(Provider, provider.id).name == "Glow Studio Rosebank"
