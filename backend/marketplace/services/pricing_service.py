# Overview: Pricing waterfall; turns resolved booking entities into an itemized, immutable price breakdown.

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR

from ..errors import MinimumOrderError
from ..money import ZERO, HUNDRED, round2, money_str
from ..validation import BookingDraft, LOCATION_AT_HOME, LOCATION_AT_SALON
from .catalog_service import OfferingSnapshot, AddonSnapshot, PackageSnapshot, ResolvedBooking
from .promotions_service import PromotionRecord, MembershipRecord, PROMO_PERCENTAGE
from .settings_service import ServiceFeeRule, FEE_PERCENTAGE, FEE_FIXED

PERCENT_FIELDS = ("tax_rate", "service_fee_percentage")


@dataclass(frozen=True)
class PricedProductLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal | None = None

    @property
    def line_total(self) -> Decimal:
        if self.total_price is not None:
            return self.total_price
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricingInputs:
    """Everything the waterfall needs. Built once per booking attempt; never mutated."""
    location_type: str
    now: datetime
    currency: str
    offerings: tuple[OfferingSnapshot, ...]
    location_id: int | None = None
    addons: tuple[AddonSnapshot, ...] = ()
    products: tuple[PricedProductLine, ...] = ()
    travel_fee: Decimal = ZERO
    package: PackageSnapshot | None = None
    promotion: PromotionRecord | None = None
    membership: MembershipRecord | None = None
    tips_enabled: bool = True
    tip_amount: Decimal = ZERO
    tax_rate: Decimal = ZERO
    provider_fee: ServiceFeeRule | None = None
    platform_fee: ServiceFeeRule | None = None
    minimum_mobile_booking_amount: Decimal | None = None
    loyalty_points_per_unit: Decimal = ZERO


@dataclass(frozen=True)
class PriceBreakdown:
    currency: str
    services_subtotal: Decimal
    addons_subtotal: Decimal
    products_subtotal: Decimal
    travel_fee: Decimal
    package_discount_amount: Decimal
    pre_promo_subtotal: Decimal
    promo_discount_amount: Decimal
    subtotal: Decimal
    membership_discount_amount: Decimal
    subtotal_after_membership: Decimal
    commission_base: Decimal
    tip_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    service_fee_percentage: Decimal
    service_fee_amount: Decimal
    total_amount: Decimal
    loyalty_points_earned: int
    promotion_id: int | None = None
    promo_code: str | None = None
    membership_plan_id: int | None = None
    service_fee_config_id: int | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if not isinstance(value, Decimal):
                continue
            if key in PERCENT_FIELDS:
                data[key] = format(value.normalize(), "f")
            else:
                data[key] = money_str(value)
        return data


def promotion_applies(
    promo: PromotionRecord,
    *,
    pre_promo_subtotal: Decimal,
    location_type: str,
    location_id: int | None,
    now: datetime,
) -> bool:
    if not promo.is_active:
        return False
    if promo.valid_from is not None and now < promo.valid_from:
        return False
    if promo.valid_until is not None and now > promo.valid_until:
        return False
    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        return False
    # Inclusive: a subtotal equal to the minimum qualifies
    if promo.min_purchase_amount and pre_promo_subtotal < promo.min_purchase_amount:
        return False
    if promo.location_id is not None:
        return location_type == LOCATION_AT_SALON and location_id == promo.location_id
    return True


def package_discount(package: PackageSnapshot | None, services_subtotal: Decimal) -> Decimal:
    if package is None:
        return ZERO
    if package.price is not None:
        discount = services_subtotal - package.price
    elif package.discount_percentage:
        discount = services_subtotal * package.discount_percentage / HUNDRED
    else:
        return ZERO
    return min(max(ZERO, discount), services_subtotal)


def promo_discount(promo: PromotionRecord, pre_promo_subtotal: Decimal) -> Decimal:
    if promo.promo_type == PROMO_PERCENTAGE:
        discount = pre_promo_subtotal * promo.value / HUNDRED
    else:
        discount = promo.value
    if promo.max_discount_amount:
        discount = min(discount, promo.max_discount_amount)
    return max(ZERO, min(discount, pre_promo_subtotal))


def service_fee(
    provider_fee: ServiceFeeRule | None,
    platform_fee: ServiceFeeRule | None,
    amount: Decimal,
) -> tuple[Decimal, Decimal, int | None]:
    """
    Returns (fee_amount, fee_percentage, config_id).

    A provider fee config, once present, decides the fee even when its
    minimum is not met; the platform setting only applies without one.
    """
    if provider_fee is not None:
        if amount < provider_fee.min_booking_amount:
            return ZERO, ZERO, provider_fee.config_id
        if provider_fee.fee_type == FEE_PERCENTAGE:
            fee = round2(amount * provider_fee.percentage / HUNDRED)
            if provider_fee.max_fee_amount:
                fee = min(fee, provider_fee.max_fee_amount)
            return fee, provider_fee.percentage, provider_fee.config_id
        if provider_fee.fee_type == FEE_FIXED:
            return provider_fee.fixed_amount, ZERO, provider_fee.config_id
        return ZERO, ZERO, provider_fee.config_id

    if platform_fee is None:
        return ZERO, ZERO, None
    if platform_fee.fee_type == FEE_PERCENTAGE:
        return round2(amount * platform_fee.percentage / HUNDRED), platform_fee.percentage, None
    return platform_fee.fixed_amount, ZERO, None


def calculate_price_breakdown(inputs: PricingInputs) -> PriceBreakdown:
    """
    Run the pricing waterfall.

    Step order is significant: package discount before promotion, promotion
    before the minimum-order check, membership after it, then tip, tax, fee.
    Rounding happens only at the tax and service fee steps.
    """
    at_home = inputs.location_type == LOCATION_AT_HOME

    services_subtotal = sum(
        (o.price + (o.at_home_price_adjustment if at_home else ZERO) for o in inputs.offerings),
        ZERO,
    )
    addons_subtotal = sum((a.price for a in inputs.addons), ZERO)
    products_subtotal = sum((line.line_total for line in inputs.products), ZERO)
    travel_fee = inputs.travel_fee if at_home else ZERO

    package_discount_amount = package_discount(inputs.package, services_subtotal)
    discounted_services = max(ZERO, services_subtotal - package_discount_amount)
    pre_promo_subtotal = discounted_services + addons_subtotal + products_subtotal + travel_fee

    promo_discount_amount = ZERO
    promotion_id = None
    promo_code = None
    promo = inputs.promotion
    if promo is not None and promotion_applies(
        promo,
        pre_promo_subtotal=pre_promo_subtotal,
        location_type=inputs.location_type,
        location_id=inputs.location_id,
        now=inputs.now,
    ):
        promo_discount_amount = promo_discount(promo, pre_promo_subtotal)
        promotion_id = promo.id
        promo_code = promo.code

    subtotal = max(ZERO, pre_promo_subtotal - promo_discount_amount)

    minimum = inputs.minimum_mobile_booking_amount
    if at_home and minimum and minimum > 0 and subtotal < minimum:
        raise MinimumOrderError(
            f"Minimum order amount for house calls is {money_str(minimum)} {inputs.currency}. "
            f"Your current order is {money_str(subtotal)} {inputs.currency}.",
            details={"minimum": money_str(minimum), "subtotal": money_str(subtotal)},
        )

    commission_base = discounted_services + addons_subtotal + products_subtotal - promo_discount_amount

    membership_discount_amount = ZERO
    membership_plan_id = None
    membership = inputs.membership
    if membership is not None and membership.is_active_at(inputs.now):
        membership_plan_id = membership.plan_id
        if membership.discount_percent > 0:
            membership_discount_amount = min(
                max(ZERO, subtotal * membership.discount_percent / HUNDRED),
                subtotal,
            )

    subtotal_after_membership = max(ZERO, subtotal - membership_discount_amount)
    commission_base = max(ZERO, commission_base - membership_discount_amount)

    tip_amount = inputs.tip_amount if inputs.tips_enabled else ZERO

    tax_rate = inputs.tax_rate
    tax_amount = round2(subtotal_after_membership * tax_rate / HUNDRED) if tax_rate > 0 else ZERO

    fee_amount, fee_percentage, fee_config_id = service_fee(
        inputs.provider_fee, inputs.platform_fee, subtotal_after_membership
    )

    total_amount = subtotal_after_membership + tip_amount + tax_amount + fee_amount

    loyalty_points = 0
    if inputs.loyalty_points_per_unit > 0:
        loyalty_points = int((total_amount * inputs.loyalty_points_per_unit).to_integral_value(rounding=ROUND_FLOOR))

    return PriceBreakdown(
        currency=inputs.currency,
        services_subtotal=services_subtotal,
        addons_subtotal=addons_subtotal,
        products_subtotal=products_subtotal,
        travel_fee=travel_fee,
        package_discount_amount=package_discount_amount,
        pre_promo_subtotal=pre_promo_subtotal,
        promo_discount_amount=promo_discount_amount,
        subtotal=subtotal,
        membership_discount_amount=membership_discount_amount,
        subtotal_after_membership=subtotal_after_membership,
        commission_base=commission_base,
        tip_amount=tip_amount,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        service_fee_percentage=fee_percentage,
        service_fee_amount=fee_amount,
        total_amount=total_amount,
        loyalty_points_earned=loyalty_points,
        promotion_id=promotion_id,
        promo_code=promo_code,
        membership_plan_id=membership_plan_id,
        service_fee_config_id=fee_config_id,
    )


def build_pricing_inputs(
    draft: BookingDraft,
    resolved: ResolvedBooking,
    *,
    settings_store,
    loyalty_store,
    now: datetime,
) -> PricingInputs:
    """Gather settings-backed values (tax, fees, loyalty) around the resolved entities."""
    provider = resolved.provider
    products = tuple(
        PricedProductLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price if line.unit_price is not None else resolved.products[line.product_id].price,
            total_price=line.total_price,
        )
        for line in draft.products
    )
    return PricingInputs(
        location_type=draft.location_type,
        location_id=draft.location_id,
        now=now,
        currency=provider.currency,
        offerings=tuple(resolved.primary_offerings(draft)),
        addons=resolved.addons,
        products=products,
        travel_fee=draft.travel_fee,
        package=resolved.package,
        promotion=resolved.promotion,
        membership=resolved.membership,
        tips_enabled=provider.tips_enabled,
        tip_amount=draft.tip_amount,
        tax_rate=settings_store.tax_rate(provider.tax_rate_percent),
        provider_fee=settings_store.provider_fee_rule(provider.customer_fee_config_id),
        platform_fee=settings_store.platform_fee_rule(),
        minimum_mobile_booking_amount=provider.minimum_mobile_booking_amount,
        loyalty_points_per_unit=loyalty_store.points_per_currency_unit(provider.currency),
    )
