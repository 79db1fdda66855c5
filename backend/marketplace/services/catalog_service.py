# Overview: Catalog reads and entity resolution; turns a booking draft into read-only snapshots.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import (
    Customer,
    Provider,
    ProviderLocation,
    ProviderStaff,
    Offering,
    ServiceAddon,
    AddonLocation,
    Product,
    ServicePackage,
    PackageLocation,
    OfferingResource,
)
from ..errors import (
    BookingValidationError,
    NotFoundError,
    ProviderInactiveError,
    InsufficientStockError,
)
from ..money import ZERO, to_decimal
from ..validation import BookingDraft, LOCATION_AT_SALON
from . import promotions_service
from .promotions_service import PromotionRecord, MembershipRecord
from .fallbacks import safe_lookup


@dataclass(frozen=True)
class ProviderSnapshot:
    id: int
    name: str
    status: str
    currency: str
    tax_rate_percent: Decimal | None
    tips_enabled: bool
    customer_fee_config_id: int | None
    minimum_mobile_booking_amount: Decimal | None

    @classmethod
    def from_model(cls, provider: Provider, default_currency: str) -> "ProviderSnapshot":
        return cls(
            id=provider.id,
            name=provider.name,
            status=provider.status,
            currency=provider.currency or default_currency,
            tax_rate_percent=to_decimal(provider.tax_rate_percent, None),
            tips_enabled=True if provider.tips_enabled is None else bool(provider.tips_enabled),
            customer_fee_config_id=provider.customer_fee_config_id,
            minimum_mobile_booking_amount=to_decimal(provider.minimum_mobile_booking_amount, None),
        )


@dataclass(frozen=True)
class OfferingSnapshot:
    id: int
    provider_id: int
    title: str
    price: Decimal
    is_active: bool
    duration_minutes: int = 0
    buffer_minutes: int = 0
    processing_minutes: int = 0
    finishing_minutes: int = 0
    supports_at_home: bool = True
    at_home_price_adjustment: Decimal = ZERO
    currency: str | None = None

    @property
    def blocked_minutes(self) -> int:
        return self.duration_minutes + self.buffer_minutes + self.processing_minutes + self.finishing_minutes

    @property
    def tail_minutes(self) -> int:
        """Staff time held after the service itself ends."""
        return self.buffer_minutes + self.processing_minutes + self.finishing_minutes

    @classmethod
    def from_model(cls, offering: Offering) -> "OfferingSnapshot":
        return cls(
            id=offering.id,
            provider_id=offering.provider_id,
            title=offering.title,
            price=to_decimal(offering.price),
            currency=offering.currency,
            is_active=bool(offering.is_active),
            duration_minutes=offering.duration_minutes or 0,
            buffer_minutes=offering.buffer_minutes or 0,
            processing_minutes=offering.processing_minutes or 0,
            finishing_minutes=offering.finishing_minutes or 0,
            supports_at_home=bool(offering.supports_at_home),
            at_home_price_adjustment=to_decimal(offering.at_home_price_adjustment),
        )


@dataclass(frozen=True)
class AddonSnapshot:
    id: int
    provider_id: int
    name: str
    price: Decimal
    is_active: bool
    location_ids: frozenset[int] = frozenset()


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    provider_id: int
    name: str
    price: Decimal
    is_active: bool
    track_stock_quantity: bool = False
    quantity: int = 0


@dataclass(frozen=True)
class PackageSnapshot:
    id: int
    provider_id: int
    name: str
    price: Decimal | None
    discount_percentage: Decimal | None
    is_active: bool
    location_ids: frozenset[int] = frozenset()


@dataclass(frozen=True)
class ResolvedBooking:
    """Everything the draft references, loaded and authorized for one provider."""
    customer_id: int
    provider: ProviderSnapshot
    offerings: dict[int, OfferingSnapshot]
    addons: tuple[AddonSnapshot, ...] = ()
    products: dict[int, ProductSnapshot] = field(default_factory=dict)
    package: PackageSnapshot | None = None
    promotion: PromotionRecord | None = None
    membership: MembershipRecord | None = None

    def primary_offerings(self, draft: BookingDraft) -> list[OfferingSnapshot]:
        return [self.offerings[s.offering_id] for s in draft.services]


class CatalogStore:
    """Read-only catalog queries scoped by id; callers decide what a miss means."""

    def __init__(self, *, default_currency: str = "ZAR"):
        self.default_currency = default_currency

    def customer_exists(self, customer_id: int) -> bool:
        return db.session.query(Customer.id).filter_by(id=customer_id).first() is not None

    def get_provider(self, provider_id: int) -> ProviderSnapshot | None:
        provider = db.session.get(Provider, provider_id)
        return ProviderSnapshot.from_model(provider, self.default_currency) if provider else None

    def get_location(self, location_id: int) -> ProviderLocation | None:
        return db.session.get(ProviderLocation, location_id)

    def get_offerings(self, offering_ids: list[int]) -> dict[int, OfferingSnapshot]:
        if not offering_ids:
            return {}
        rows = db.session.query(Offering).filter(Offering.id.in_(offering_ids)).all()
        return {o.id: OfferingSnapshot.from_model(o) for o in rows}

    def get_addons(self, addon_ids: list[int]) -> dict[int, AddonSnapshot]:
        if not addon_ids:
            return {}
        restrictions: dict[int, set[int]] = {}
        for link in db.session.query(AddonLocation).filter(AddonLocation.addon_id.in_(addon_ids)).all():
            restrictions.setdefault(link.addon_id, set()).add(link.location_id)
        rows = db.session.query(ServiceAddon).filter(ServiceAddon.id.in_(addon_ids)).all()
        return {
            a.id: AddonSnapshot(
                id=a.id,
                provider_id=a.provider_id,
                name=a.name,
                price=to_decimal(a.price),
                is_active=bool(a.is_active),
                location_ids=frozenset(restrictions.get(a.id, ())),
            )
            for a in rows
        }

    def get_products(self, product_ids: list[int]) -> dict[int, ProductSnapshot]:
        if not product_ids:
            return {}
        rows = db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        return {
            p.id: ProductSnapshot(
                id=p.id,
                provider_id=p.provider_id,
                name=p.name,
                price=to_decimal(p.retail_price),
                is_active=bool(p.is_active),
                track_stock_quantity=bool(p.track_stock_quantity),
                quantity=p.quantity or 0,
            )
            for p in rows
        }

    def get_package(self, package_id: int) -> PackageSnapshot | None:
        pkg = db.session.get(ServicePackage, package_id)
        if not pkg:
            return None
        location_ids = {
            row.location_id
            for row in db.session.query(PackageLocation).filter_by(package_id=package_id).all()
        }
        return PackageSnapshot(
            id=pkg.id,
            provider_id=pkg.provider_id,
            name=pkg.name,
            price=to_decimal(pkg.price, None),
            discount_percentage=to_decimal(pkg.discount_percentage, None),
            is_active=bool(pkg.is_active),
            location_ids=frozenset(location_ids),
        )

    def find_promotion(self, code: str, provider_id: int) -> PromotionRecord | None:
        return promotions_service.find_promotion_by_code(code, provider_id)

    def get_membership(self, customer_id: int, provider_id: int) -> MembershipRecord | None:
        return promotions_service.get_membership(customer_id, provider_id)

    def required_resource_id(self, offering_id: int) -> int | None:
        link = (
            db.session.query(OfferingResource)
            .filter_by(offering_id=offering_id, is_required=True)
            .order_by(OfferingResource.sort_order.asc(), OfferingResource.id.asc())
            .first()
        )
        return link.resource_id if link else None

    def active_staff_ids(self, provider_id: int, limit: int) -> list[int]:
        rows = (
            db.session.query(ProviderStaff.id)
            .filter_by(provider_id=provider_id, is_active=True)
            .order_by(ProviderStaff.id.asc())
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]


def _invalid(message: str, **details) -> BookingValidationError:
    return BookingValidationError(message, details=details)


def _check_location(draft: BookingDraft, store: CatalogStore) -> None:
    if draft.location_type != LOCATION_AT_SALON:
        return
    location = store.get_location(draft.location_id)
    if (
        location is None
        or location.provider_id != draft.provider_id
        or not location.is_active
    ):
        raise _invalid("Invalid location selection", field="location_id")
    if location.location_type == "base":
        raise _invalid(
            "This location is a base location and does not accept in-salon bookings",
            field="location_id",
        )


def _check_owned(entity, provider_id: int, message: str, field_name: str, entity_id: int) -> None:
    if entity is None or entity.provider_id != provider_id or not entity.is_active:
        raise _invalid(message, field=field_name, id=entity_id)


def _salon_location_id(draft: BookingDraft) -> int | None:
    if draft.location_type == LOCATION_AT_SALON and draft.location_id:
        return draft.location_id
    return None


def resolve_booking_entities(
    draft: BookingDraft,
    customer_id: int,
    *,
    store: CatalogStore,
    subscription_checker=None,
) -> ResolvedBooking:
    """
    Load and authorize every entity the draft references.

    Raises on the first violation; nothing is written. Unknown promotion codes
    are not an error, they simply grant no discount.
    """
    if not store.customer_exists(customer_id):
        raise NotFoundError("User profile not found", details={"customer_id": customer_id})

    provider = store.get_provider(draft.provider_id)
    if provider is None:
        raise NotFoundError("Provider not found", details={"provider_id": draft.provider_id})
    if provider.status != "active":
        raise ProviderInactiveError(
            "Provider is not accepting bookings",
            details={"provider_id": provider.id, "status": provider.status},
        )
    if subscription_checker is not None:
        subscription_checker.check(provider.id)

    _check_location(draft, store)
    salon_location_id = _salon_location_id(draft)

    offering_ids = draft.all_offering_ids()
    offerings = store.get_offerings(offering_ids)
    for offering_id in offering_ids:
        _check_owned(
            offerings.get(offering_id), provider.id,
            "Invalid service selection", "services", offering_id,
        )
    if draft.is_at_home:
        for offering_id in draft.primary_offering_ids:
            if not offerings[offering_id].supports_at_home:
                raise _invalid(
                    f"{offerings[offering_id].title} is not available as a house call",
                    field="services", id=offering_id,
                )

    addon_map = store.get_addons(list(dict.fromkeys(draft.addon_ids)))
    addons = []
    for addon_id in draft.addon_ids:
        addon = addon_map.get(addon_id)
        _check_owned(addon, provider.id, "Invalid add-on selection", "addons", addon_id)
        if salon_location_id and addon.location_ids and salon_location_id not in addon.location_ids:
            raise _invalid(f"{addon.name} is not available at the selected location", field="addons", id=addon_id)
        addons.append(addon)

    products = store.get_products(list(dict.fromkeys(p.product_id for p in draft.products)))
    requested: dict[int, int] = {}
    for line in draft.products:
        product = products.get(line.product_id)
        _check_owned(product, provider.id, "Invalid product selection", "products", line.product_id)
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        if product.track_stock_quantity and requested[line.product_id] > product.quantity:
            raise InsufficientStockError(
                f"Only {product.quantity} units available for {product.name}",
                details={"product_id": product.id, "available": product.quantity},
            )

    package = None
    if draft.package_id:
        package = store.get_package(draft.package_id)
        _check_owned(package, provider.id, "Invalid package selection", "package_id", draft.package_id)
        if salon_location_id and package.location_ids and salon_location_id not in package.location_ids:
            raise _invalid("Package not available at this location", field="package_id", id=package.id)

    promotion = store.find_promotion(draft.promotion_code, provider.id) if draft.promotion_code else None
    membership = None
    if draft.use_membership:
        membership = safe_lookup("membership", lambda: store.get_membership(customer_id, provider.id), None)

    return ResolvedBooking(
        customer_id=customer_id,
        provider=provider,
        offerings=offerings,
        addons=tuple(addons),
        products=products,
        package=package,
        promotion=promotion,
        membership=membership,
    )
