"""
Pytest fixtures for marketplace booking tests.

Provides test database setup, a small provider catalog, and the test client.
"""

import random
from datetime import datetime
from decimal import Decimal

import pytest
from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import (
    Provider, ProviderLocation, ProviderStaff, Customer,
    Offering, ServiceAddon, Product,
)
from marketplace.services.booking_graph_service import StaffPicker
from marketplace.services.booking_service import BookingPipeline

# Far enough ahead that nothing in the suite treats it as the past
START = datetime(2030, 3, 4, 9, 0)
START_ISO = "2030-03-04T09:00:00Z"
NOW = datetime(2030, 3, 1, 12, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def provider(db_session):
    """Active provider: ZAR, 15% tax, tips on, house-call minimum 300."""
    provider = Provider(
        name="Glow Studio",
        status="active",
        currency="ZAR",
        tax_rate_percent=Decimal("15"),
        tips_enabled=True,
        minimum_mobile_booking_amount=Decimal("300"),
    )
    db_session.add(provider)
    db_session.commit()
    return provider


@pytest.fixture(scope='function')
def other_provider(db_session):
    provider = Provider(name="Other Salon", status="active", currency="ZAR")
    db_session.add(provider)
    db_session.commit()
    return provider


@pytest.fixture(scope='function')
def salon(db_session, provider):
    """Primary salon location of `provider`, at (0, 0)."""
    location = ProviderLocation(
        provider_id=provider.id,
        name="Main Salon",
        location_type="salon",
        is_primary=True,
        latitude=0.0,
        longitude=0.0,
    )
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def staff_a(db_session, provider):
    staff = ProviderStaff(provider_id=provider.id, name="Thandi")
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def staff_b(db_session, provider):
    staff = ProviderStaff(provider_id=provider.id, name="Lerato")
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(first_name="Ayanda", last_name="Mokoena", email="ayanda@example.com", phone="0821234567")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_customer(db_session):
    customer = Customer(first_name="Sam", last_name="Naidoo", email="sam@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def cut(db_session, provider):
    """60 minute service, no buffer, 200.00, +50.00 for house calls."""
    offering = Offering(
        provider_id=provider.id,
        title="Cut",
        price=Decimal("200"),
        duration_minutes=60,
        buffer_minutes=0,
        at_home_price_adjustment=Decimal("50"),
    )
    db_session.add(offering)
    db_session.commit()
    return offering


@pytest.fixture(scope='function')
def color(db_session, provider):
    """90 minute service with 15 buffer and 30 processing, 500.00."""
    offering = Offering(
        provider_id=provider.id,
        title="Colour",
        price=Decimal("500"),
        duration_minutes=90,
        buffer_minutes=15,
        processing_minutes=30,
    )
    db_session.add(offering)
    db_session.commit()
    return offering


@pytest.fixture(scope='function')
def addon(db_session, provider):
    addon = ServiceAddon(provider_id=provider.id, name="Scalp massage", price=Decimal("80"))
    db_session.add(addon)
    db_session.commit()
    return addon


@pytest.fixture(scope='function')
def tracked_product(db_session, provider):
    product = Product(
        provider_id=provider.id,
        name="Argan oil",
        retail_price=Decimal("120"),
        track_stock_quantity=True,
        quantity=3,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def pipeline(app):
    """Pipeline with a fixed clock and a seeded staff picker."""
    return BookingPipeline.from_app(
        app,
        picker=StaffPicker(random.Random(7)),
        clock=lambda: NOW,
    )


def salon_payload(provider, location, services, **overrides) -> dict:
    """Helper to build an at_salon booking request body."""
    payload = {
        "provider_id": provider.id,
        "services": services,
        "selected_datetime": START_ISO,
        "location_type": "at_salon",
        "location_id": location.id,
    }
    payload.update(overrides)
    return payload


def home_payload(provider, services, **overrides) -> dict:
    """Helper to build an at_home booking request body, one degree north of the salon."""
    payload = {
        "provider_id": provider.id,
        "services": services,
        "selected_datetime": START_ISO,
        "location_type": "at_home",
        "address": {
            "line1": "12 Long Street",
            "city": "Cape Town",
            "country": "ZA",
            "latitude": 1.0,
            "longitude": 0.0,
        },
    }
    payload.update(overrides)
    return payload


def customer_headers(customer) -> dict:
    """Helper to forward the customer identity the way the gateway does."""
    return {'X-Customer-Id': str(customer.id)}
