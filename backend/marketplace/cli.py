# Overview: Flask CLI command groups for bootstrap and booking inspection.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to marketplace (PowerShell: $env:FLASK_APP="marketplace").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo provider with a salon, staff, catalog and a customer.
#
# Bookings:
# - python -m flask bookings list --provider-id 1
#   List a provider's bookings, newest first.
# - python -m flask bookings quote --file draft.json --customer-id 1
#   Price a booking draft without writing anything.

import json
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import BookingError
from .models import (
    Booking,
    Customer,
    Provider,
    ProviderLocation,
    ProviderStaff,
    ProviderSettings,
    Offering,
    ServiceAddon,
    Product,
    PlatformSetting,
)
from .money import money_str
from .time_utils import to_utc_z
from .validation import parse_booking_draft


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Idempotently create a demo provider, catalog and customer."""
    provider = db.session.query(Provider).filter_by(name="Demo Salon").first()
    if provider:
        click.echo(f"SKIP Demo provider already exists (id={provider.id})")
        return

    provider = Provider(
        name="Demo Salon",
        status="active",
        currency=current_app.config.get("DEFAULT_CURRENCY", "ZAR"),
        tax_rate_percent=Decimal("15"),
        minimum_mobile_booking_amount=Decimal("300"),
    )
    db.session.add(provider)
    db.session.flush()

    db.session.add(ProviderLocation(
        provider_id=provider.id, name="Main Salon", location_type="salon",
        is_primary=True, latitude=-33.9249, longitude=18.4241,
    ))
    db.session.add(ProviderSettings(provider_id=provider.id, allow_double_booking=False, auto_confirm_bookings=True))
    for name in ("Thandi", "Lerato"):
        db.session.add(ProviderStaff(provider_id=provider.id, name=name))

    db.session.add_all([
        Offering(provider_id=provider.id, title="Cut & Blow-dry", price=Decimal("350"),
                 duration_minutes=60, buffer_minutes=15, at_home_price_adjustment=Decimal("50")),
        Offering(provider_id=provider.id, title="Gel Manicure", price=Decimal("250"),
                 duration_minutes=45, buffer_minutes=10),
        ServiceAddon(provider_id=provider.id, name="Scalp massage", price=Decimal("80")),
        Product(provider_id=provider.id, name="Argan oil 50ml", retail_price=Decimal("180"),
                track_stock_quantity=True, quantity=12),
        Customer(first_name="Demo", last_name="Customer", email="customer@example.com"),
    ])
    if not db.session.query(PlatformSetting).filter_by(key="platform.service_fee").first():
        db.session.add(PlatformSetting(key="platform.service_fee", value_json={"type": "percentage", "percentage": 5}))

    db.session.commit()
    click.echo(f"PASS Demo provider created (id={provider.id})")


@click.group('bookings')
def bookings_group():
    """Booking inspection commands."""


@bookings_group.command('list')
@click.option('--provider-id', type=int, required=True, help='Provider ID')
@click.option('--limit', type=int, default=20, help='Max rows')
@with_appcontext
def list_bookings(provider_id, limit):
    """List a provider's bookings, newest first."""
    bookings = (
        db.session.query(Booking)
        .filter_by(provider_id=provider_id)
        .order_by(Booking.scheduled_at.desc())
        .limit(limit)
        .all()
    )

    if not bookings:
        click.echo("No bookings found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Number':<20} {'Status':<11} {'Scheduled':<22} {'Total':>12} {'Lines'}")
    click.echo("="*100)

    for booking in bookings:
        total = f"{money_str(booking.total_amount)} {booking.currency}"
        click.echo(
            f"{booking.id:<6} {booking.booking_number:<20} {booking.status:<11} "
            f"{to_utc_z(booking.scheduled_at):<22} {total:>12} {len(booking.service_lines)}"
        )

    click.echo("="*100 + "\n")


@bookings_group.command('quote')
@click.option('--file', 'draft_file', type=click.File('r'), required=True, help='Booking draft JSON')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@with_appcontext
def quote_booking(draft_file, customer_id):
    """Price a booking draft without writing anything."""
    try:
        draft = parse_booking_draft(json.load(draft_file))
        breakdown = current_app.extensions["booking_pipeline"].quote(draft, customer_id)
    except BookingError as e:
        raise click.ClickException(f"{e.code}: {e.message}")

    click.echo(json.dumps(breakdown.to_dict(), indent=2))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(bookings_group)
