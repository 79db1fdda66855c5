from __future__ import annotations

from ..extensions import db
from marketplace.money import money_str


class Offering(db.Model):
    """
    A priced, timed service a provider sells.

    Blocked time for one offering = duration + buffer + processing + finishing.
    Only duration is the customer-facing service time; buffer pads the staff
    calendar after the service.
    """
    __tablename__ = "offerings"
    __table_args__ = (
        db.Index("ix_offerings_provider_active", "provider_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=True)

    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    buffer_minutes = db.Column(db.Integer, nullable=False, default=0)
    processing_minutes = db.Column(db.Integer, nullable=False, default=0)
    finishing_minutes = db.Column(db.Integer, nullable=False, default=0)

    supports_at_home = db.Column(db.Boolean, nullable=False, default=True)
    at_home_price_adjustment = db.Column(db.Numeric(12, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "title": self.title,
            "price": money_str(self.price),
            "currency": self.currency,
            "duration_minutes": self.duration_minutes,
            "buffer_minutes": self.buffer_minutes,
            "processing_minutes": self.processing_minutes,
            "finishing_minutes": self.finishing_minutes,
            "supports_at_home": self.supports_at_home,
            "at_home_price_adjustment": money_str(self.at_home_price_adjustment),
            "is_active": self.is_active,
        }


class ServiceAddon(db.Model):
    __tablename__ = "service_addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "price": money_str(self.price),
            "currency": self.currency,
            "is_active": self.is_active,
        }


class AddonLocation(db.Model):
    """Restricts an add-on to specific salon locations. No rows = available everywhere."""
    __tablename__ = "addon_locations"
    __table_args__ = (
        db.UniqueConstraint("addon_id", "location_id", name="uq_addon_locations_addon_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    addon_id = db.Column(db.Integer, db.ForeignKey("service_addons.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("provider_locations.id"), nullable=False, index=True)


class Product(db.Model):
    """
    Retail product sold alongside a booking.

    Stock is only enforced when track_stock_quantity is set.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    retail_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    track_stock_quantity = db.Column(db.Boolean, nullable=False, default=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "retail_price": money_str(self.retail_price),
            "currency": self.currency,
            "is_active": self.is_active,
            "track_stock_quantity": self.track_stock_quantity,
            "quantity": self.quantity,
        }


class ServicePackage(db.Model):
    """
    Bundle of offerings sold with a combined discount.

    Either a fixed bundle `price` or a `discount_percentage` off the services subtotal.
    A fixed price wins when both are set.
    """
    __tablename__ = "service_packages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    discount_percentage = db.Column(db.Numeric(6, 3), nullable=True)
    currency = db.Column(db.String(3), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "price": money_str(self.price),
            "discount_percentage": money_str(self.discount_percentage),
            "currency": self.currency,
            "is_active": self.is_active,
        }


class PackageLocation(db.Model):
    __tablename__ = "package_locations"
    __table_args__ = (
        db.UniqueConstraint("package_id", "location_id", name="uq_package_locations_package_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(db.Integer, db.ForeignKey("service_packages.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("provider_locations.id"), nullable=False, index=True)


class Resource(db.Model):
    """Shared physical resource or equipment (treatment room, chair, steamer)."""
    __tablename__ = "resources"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    resource_type = db.Column(db.String(32), nullable=False, default="room")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "resource_type": self.resource_type,
            "is_active": self.is_active,
        }


class OfferingResource(db.Model):
    __tablename__ = "offering_resources"
    __table_args__ = (
        db.UniqueConstraint("offering_id", "resource_id", name="uq_offering_resources_offering_resource"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    offering_id = db.Column(db.Integer, db.ForeignKey("offerings.id"), nullable=False, index=True)
    resource_id = db.Column(db.Integer, db.ForeignKey("resources.id"), nullable=False, index=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
