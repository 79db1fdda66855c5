from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z
from marketplace.money import money_str


class Promotion(db.Model):
    """
    Code-activated discount.

    Can be platform-wide (provider_id=NULL) or provider-specific, and optionally
    restricted to one salon location (only valid for at_salon bookings there).
    Supports percentage and fixed types.
    """
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True, index=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)  # stored upper-case

    promo_type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    value = db.Column(db.Numeric(12, 2), nullable=False, default=0)  # percent for percentage, amount for fixed

    min_purchase_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    location_id = db.Column(db.Integer, db.ForeignKey("provider_locations.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self):
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "code": self.code,
            "promo_type": self.promo_type,
            "value": money_str(self.value),
            "min_purchase_amount": money_str(self.min_purchase_amount),
            "max_discount_amount": money_str(self.max_discount_amount),
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "location_id": self.location_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MembershipPlan(db.Model):
    """Recurring plan granting a standing percentage discount at one provider."""
    __tablename__ = "membership_plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    discount_percent = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "discount_percent": money_str(self.discount_percent),
            "is_active": self.is_active,
        }


class UserMembership(db.Model):
    __tablename__ = "user_memberships"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "provider_id", name="uq_user_memberships_customer_provider"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active")  # active, paused, cancelled
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    plan = db.relationship("MembershipPlan")


class LoyaltyRule(db.Model):
    """Points earned per currency unit spent; the newest active rule per currency wins."""
    __tablename__ = "loyalty_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    currency = db.Column(db.String(3), nullable=False, index=True)
    points_per_currency_unit = db.Column(db.Numeric(10, 4), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    effective_from = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
