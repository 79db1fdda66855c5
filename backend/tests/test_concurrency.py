# Overview: Pytest coverage for the locked booking write unit under concurrent writers.

"""
Concurrency Tests

- Two threads booking the same staff slot against a file-backed database:
  exactly one booking is written, the other request gets CONFLICT
- Lock-contention errors inside the write unit are retried
- Lock keys cover every day a booking touches and every shared resource
"""

import threading
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from marketplace import create_app
from marketplace.errors import BookingError
from marketplace.extensions import db
from marketplace.models import (
    Booking, BookingSequence, Customer, Offering, Provider, ProviderLocation, ProviderStaff,
)
from marketplace.services import concurrency
from marketplace.services.booking_repository import BookingRepository
from marketplace.services.booking_service import BookingPipeline
from marketplace.validation import parse_booking_draft
from conftest import NOW, START, salon_payload


@pytest.fixture
def file_app(tmp_path):
    """App on its own SQLite file so each thread gets a real connection."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'bookings.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        provider = Provider(name="Glow Studio", status="active", currency="ZAR")
        db.session.add(provider)
        db.session.flush()
        salon = ProviderLocation(provider_id=provider.id, name="Main Salon", is_primary=True)
        staff = ProviderStaff(provider_id=provider.id, name="Thandi")
        cut = Offering(provider_id=provider.id, title="Cut", price=Decimal("200"), duration_minutes=60)
        customers = [
            Customer(first_name="Ayanda", last_name="Mokoena", email="ayanda@example.com"),
            Customer(first_name="Sam", last_name="Naidoo", email="sam@example.com"),
        ]
        db.session.add_all([salon, staff, cut, *customers])
        db.session.commit()

        payload = salon_payload(provider, salon, [{"offering_id": cut.id, "staff_id": staff.id}])
        customer_ids = [c.id for c in customers]

    yield app, payload, customer_ids

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


class TestConcurrentWriters:

    def test_same_staff_slot_booked_once(self, file_app):
        app, payload, customer_ids = file_app
        barrier = threading.Barrier(len(customer_ids))
        outcomes = []

        def attempt(customer_id):
            with app.app_context():
                pipeline = BookingPipeline.from_app(app, clock=lambda: NOW)
                draft = parse_booking_draft(payload)
                try:
                    barrier.wait(timeout=10)
                    result = pipeline.create_booking(draft, customer_id)
                    outcomes.append(("created", result.booking_number))
                except BookingError as e:
                    outcomes.append(("rejected", e.code))
                except Exception as e:
                    outcomes.append(("crashed", repr(e)))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=attempt, args=(cid,)) for cid in customer_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == [("created", f"BK-{payload['provider_id']}-000001"), ("rejected", "CONFLICT")]
        with app.app_context():
            assert db.session.query(Booking).count() == 1
            assert db.session.query(Booking).one().scheduled_at == START


class TestRetry:

    def test_lock_error_retried_then_succeeds(self, db_session, app, provider, salon, staff_a, customer, cut):
        class FlakyRepository(BookingRepository):
            calls = 0

            def create(self, **kwargs):
                FlakyRepository.calls += 1
                booking = super().create(**kwargs)
                if FlakyRepository.calls == 1:
                    raise OperationalError("INSERT", {}, Exception("database is locked"))
                return booking

        pipeline = BookingPipeline.from_app(app, repository=FlakyRepository(), clock=lambda: NOW)
        result = pipeline.create_booking(parse_booking_draft(salon_payload(
            provider, salon, [{"offering_id": cut.id, "staff_id": staff_a.id}],
        )), customer.id)

        assert FlakyRepository.calls == 2
        # The failed attempt's booking number was rolled back with it
        assert result.booking_number == f"BK-{provider.id}-000001"
        assert db_session.query(Booking).count() == 1

    def test_gives_up_after_configured_attempts(self, db_session, app, provider, salon, staff_a, customer, cut):
        class LockedRepository(BookingRepository):
            calls = 0

            def create(self, **kwargs):
                LockedRepository.calls += 1
                raise OperationalError("INSERT", {}, Exception("database is locked"))

        pipeline = BookingPipeline.from_app(
            app, repository=LockedRepository(), clock=lambda: NOW, lock_retry_attempts=2,
        )
        with pytest.raises(OperationalError):
            pipeline.create_booking(parse_booking_draft(salon_payload(
                provider, salon, [{"offering_id": cut.id, "staff_id": staff_a.id}],
            )), customer.id)

        assert LockedRepository.calls == 2
        assert db_session.query(Booking).count() == 0
        assert db_session.query(BookingSequence).count() == 0

    def test_stale_data_retried(self, db_session):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise StaleDataError("version mismatch")
            return "ok"

        assert concurrency.run_with_retry(flaky, backoff_base=0) == "ok"
        assert len(attempts) == 2


class RecordingDb:
    """Stands in for the Flask-SQLAlchemy handle; records lock statements."""

    def __init__(self, dialect):
        self.engine = SimpleNamespace(dialect=SimpleNamespace(name=dialect))
        self.statements = []
        self.session = SimpleNamespace(execute=self._execute)

    def _execute(self, statement, params=None):
        self.statements.append((str(statement), params))


class TestLockKeys:

    def test_overnight_booking_locks_each_day(self, monkeypatch):
        recording = RecordingDb("postgresql")
        monkeypatch.setattr(concurrency, "db", recording)

        concurrency.staff_schedule_lock(7, date(2030, 3, 4), date(2030, 3, 5))

        assert [params["key"] for _, params in recording.statements] == [
            concurrency.schedule_lock_key(7, date(2030, 3, 4)),
            concurrency.schedule_lock_key(7, date(2030, 3, 5)),
        ]

    def test_same_day_booking_takes_one_lock(self, monkeypatch):
        recording = RecordingDb("postgresql")
        monkeypatch.setattr(concurrency, "db", recording)

        concurrency.staff_schedule_lock(7, date(2030, 3, 4))

        assert len(recording.statements) == 1

    def test_resources_locked_in_ascending_order(self, monkeypatch):
        recording = RecordingDb("postgresql")
        monkeypatch.setattr(concurrency, "db", recording)

        concurrency.resource_locks([9, 3, 9])

        assert [params for _, params in recording.statements] == [
            {"namespace": concurrency.RESOURCE_LOCK_NAMESPACE, "resource_id": 3},
            {"namespace": concurrency.RESOURCE_LOCK_NAMESPACE, "resource_id": 9},
        ]
        assert all("pg_advisory_xact_lock(:namespace, :resource_id)" in sql for sql, _ in recording.statements)

    def test_sqlite_needs_no_resource_lock(self, monkeypatch):
        recording = RecordingDb("sqlite")
        monkeypatch.setattr(concurrency, "db", recording)

        concurrency.resource_locks([3])

        assert recording.statements == []
