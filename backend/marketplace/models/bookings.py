from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z
from marketplace.money import money_str


class Booking(db.Model):
    """
    Customer booking with a fully itemized price snapshot.

    Amounts are frozen at creation from the pricing breakdown; later catalog
    price changes never touch existing bookings.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.UniqueConstraint("provider_id", "booking_number", name="uq_bookings_provider_number"),
        db.Index("ix_bookings_provider_status_scheduled", "provider_id", "status", "scheduled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_number = db.Column(db.String(64), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, confirmed, cancelled, completed, no_show
    booking_source = db.Column(db.String(16), nullable=False, default="online")

    location_type = db.Column(db.String(16), nullable=False)  # at_home, at_salon
    location_id = db.Column(db.Integer, db.ForeignKey("provider_locations.id"), nullable=True)

    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end_at = db.Column(db.DateTime(timezone=True), nullable=False)

    package_id = db.Column(db.Integer, db.ForeignKey("service_packages.id"), nullable=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)
    membership_plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=True)
    service_fee_config_id = db.Column(db.Integer, db.ForeignKey("platform_fee_configs.id"), nullable=True)

    # Price snapshot
    currency = db.Column(db.String(3), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    travel_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)  # package + promotion
    discount_code = db.Column(db.String(64), nullable=True)
    promotion_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    membership_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    commission_base = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tip_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    service_fee_percentage = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    service_fee_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    service_fee_paid_by = db.Column(db.String(16), nullable=False, default="customer")
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    special_requests = db.Column(db.Text, nullable=True)

    # At-home address (flattened)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    address_city = db.Column(db.String(128), nullable=True)
    address_state = db.Column(db.String(128), nullable=True)
    address_country = db.Column(db.String(64), nullable=True)
    address_postal_code = db.Column(db.String(32), nullable=True)
    address_latitude = db.Column(db.Float, nullable=True)
    address_longitude = db.Column(db.Float, nullable=True)

    is_group_booking = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "status": self.status,
            "booking_source": self.booking_source,
            "location_type": self.location_type,
            "location_id": self.location_id,
            "scheduled_at": to_utc_z(self.scheduled_at),
            "scheduled_end_at": to_utc_z(self.scheduled_end_at),
            "package_id": self.package_id,
            "promotion_id": self.promotion_id,
            "membership_plan_id": self.membership_plan_id,
            "currency": self.currency,
            "subtotal": money_str(self.subtotal),
            "travel_fee": money_str(self.travel_fee),
            "discount_amount": money_str(self.discount_amount),
            "discount_code": self.discount_code,
            "promotion_discount_amount": money_str(self.promotion_discount_amount),
            "membership_discount_amount": money_str(self.membership_discount_amount),
            "tip_amount": money_str(self.tip_amount),
            "tax_amount": money_str(self.tax_amount),
            "service_fee_amount": money_str(self.service_fee_amount),
            "total_amount": money_str(self.total_amount),
            "loyalty_points_earned": self.loyalty_points_earned,
            "payment_status": self.payment_status,
            "special_requests": self.special_requests,
            "is_group_booking": self.is_group_booking,
            "created_at": to_utc_z(self.created_at),
        }


class BookingServiceLine(db.Model):
    """
    One scheduled service inside a booking.

    Conflict detection for staff works on these rows, not on the parent booking,
    since multi-service bookings can be split across staff.
    """
    __tablename__ = "booking_services"
    __table_args__ = (
        db.Index("ix_booking_services_staff_window", "staff_id", "scheduled_start_at", "scheduled_end_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    offering_id = db.Column(db.Integer, db.ForeignKey("offerings.id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("provider_staff.id"), nullable=True)

    duration_minutes = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    scheduled_start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end_at = db.Column(db.DateTime(timezone=True), nullable=False)

    booking = db.relationship("Booking", backref=db.backref("service_lines", lazy=True, order_by="BookingServiceLine.scheduled_start_at"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "offering_id": self.offering_id,
            "staff_id": self.staff_id,
            "duration_minutes": self.duration_minutes,
            "price": money_str(self.price),
            "currency": self.currency,
            "scheduled_start_at": to_utc_z(self.scheduled_start_at),
            "scheduled_end_at": to_utc_z(self.scheduled_end_at),
        }


class BookingAddon(db.Model):
    __tablename__ = "booking_addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    addon_id = db.Column(db.Integer, db.ForeignKey("service_addons.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)


class BookingProduct(db.Model):
    __tablename__ = "booking_products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("provider_staff.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)


class GroupBooking(db.Model):
    __tablename__ = "group_bookings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    primary_booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    ref_number = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    participants = db.relationship("GroupParticipant", backref="group_booking", lazy=True, order_by="GroupParticipant.id")


class GroupParticipant(db.Model):
    __tablename__ = "group_participants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    group_booking_id = db.Column(db.Integer, db.ForeignKey("group_bookings.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    participant_name = db.Column(db.String(255), nullable=False)
    participant_email = db.Column(db.String(255), nullable=True)
    participant_phone = db.Column(db.String(32), nullable=True)
    is_primary_contact = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "participant_name": self.participant_name,
            "participant_email": self.participant_email,
            "participant_phone": self.participant_phone,
            "is_primary_contact": self.is_primary_contact,
        }


class GroupParticipantService(db.Model):
    """Service line for a non-primary group participant; sequenced like booking_services."""
    __tablename__ = "group_participant_services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey("group_participants.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    offering_id = db.Column(db.Integer, db.ForeignKey("offerings.id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("provider_staff.id"), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    scheduled_start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end_at = db.Column(db.DateTime(timezone=True), nullable=False)


class ResourceAssignment(db.Model):
    __tablename__ = "resource_assignments"
    __table_args__ = (
        db.Index("ix_resource_assignments_resource_window", "resource_id", "scheduled_start_at", "scheduled_end_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    booking_service_id = db.Column(db.Integer, db.ForeignKey("booking_services.id"), nullable=True)
    resource_id = db.Column(db.Integer, db.ForeignKey("resources.id"), nullable=False)
    scheduled_start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end_at = db.Column(db.DateTime(timezone=True), nullable=False)


class BookingEvent(db.Model):
    """Append-only booking history (e.g. double_booking_override)."""
    __tablename__ = "booking_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    event_data = db.Column(db.JSON, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class BookingSequence(db.Model):
    """Per-provider booking number counter."""
    __tablename__ = "booking_sequences"
    __table_args__ = (
        db.UniqueConstraint("provider_id", name="uq_booking_sequences_provider"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
