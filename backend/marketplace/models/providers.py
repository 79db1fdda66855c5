from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z
from marketplace.money import money_str


class Provider(db.Model):
    """
    A business (salon, freelancer) selling offerings on the marketplace.

    Every catalog row, staff member, and booking belongs to exactly one provider.
    Booking references that cross provider boundaries are rejected.
    """
    __tablename__ = "providers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, pending, suspended
    currency = db.Column(db.String(3), nullable=True)

    requires_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_percentage = db.Column(db.Numeric(6, 3), nullable=True)

    # Percent (e.g. 15 = 15%). NULL/0 falls back to the platform default.
    tax_rate_percent = db.Column(db.Numeric(6, 3), nullable=True)
    tips_enabled = db.Column(db.Boolean, nullable=False, default=True)
    customer_fee_config_id = db.Column(db.Integer, db.ForeignKey("platform_fee_configs.id"), nullable=True)
    minimum_mobile_booking_amount = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Provider id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "currency": self.currency,
            "requires_deposit": self.requires_deposit,
            "tax_rate_percent": money_str(self.tax_rate_percent),
            "tips_enabled": self.tips_enabled,
            "customer_fee_config_id": self.customer_fee_config_id,
            "minimum_mobile_booking_amount": money_str(self.minimum_mobile_booking_amount),
            "created_at": to_utc_z(self.created_at),
        }


class ProviderLocation(db.Model):
    """
    Physical location of a provider.

    location_type "salon" accepts in-salon bookings; "base" is a distance
    reference only (used for travel estimates) and cannot be booked.
    """
    __tablename__ = "provider_locations"
    __table_args__ = (
        db.Index("ix_provider_locations_provider_active", "provider_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    location_type = db.Column(db.String(16), nullable=False, default="salon")
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    provider = db.relationship("Provider", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "location_type": self.location_type,
            "is_primary": self.is_primary,
            "is_active": self.is_active,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class ProviderStaff(db.Model):
    __tablename__ = "provider_staff"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    provider = db.relationship("Provider", backref=db.backref("staff", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "is_active": self.is_active,
        }
