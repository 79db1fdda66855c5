from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z
from marketplace.money import money_str


class PlatformFeeConfig(db.Model):
    """
    Customer-facing service fee configuration a provider can be attached to.

    fee_type: percentage (fee_percentage of the post-membership subtotal, capped by
    max_fee_amount) or fixed_amount (fee_fixed_amount). Only charged when the
    subtotal reaches min_booking_amount.
    """
    __tablename__ = "platform_fee_configs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    fee_type = db.Column(db.String(16), nullable=False, default="percentage")
    fee_percentage = db.Column(db.Numeric(6, 3), nullable=True)
    fee_fixed_amount = db.Column(db.Numeric(12, 2), nullable=True)
    min_booking_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_fee_amount = db.Column(db.Numeric(12, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "fee_type": self.fee_type,
            "fee_percentage": money_str(self.fee_percentage),
            "fee_fixed_amount": money_str(self.fee_fixed_amount),
            "min_booking_amount": money_str(self.min_booking_amount),
            "max_fee_amount": money_str(self.max_fee_amount),
            "is_active": self.is_active,
        }


class PlatformSetting(db.Model):
    """
    Platform-wide key/value settings.

    Known keys:
    - platform.default_tax_rate: number (percent)
    - platform.service_fee: {"type": "percentage"|"fixed", "percentage": n, "fixed": n}
    """
    __tablename__ = "platform_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value_json = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value_json,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }


class ProviderSettings(db.Model):
    """Per-provider appointment policy. A missing row means the defaults below."""
    __tablename__ = "provider_settings"
    __table_args__ = (
        db.UniqueConstraint("provider_id", name="uq_provider_settings_provider"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)

    allow_double_booking = db.Column(db.Boolean, nullable=False, default=False)
    auto_confirm_bookings = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class ProviderSubscription(db.Model):
    """Provider's marketplace plan; max_bookings_per_month NULL means unlimited."""
    __tablename__ = "provider_subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    plan_name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    max_bookings_per_month = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
