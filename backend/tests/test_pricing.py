# Overview: Pytest coverage for the pricing waterfall.

"""
Pricing Waterfall Tests

Pure calculations over snapshots; no database needed.

Covers:
- Service, add-on, product and travel subtotals
- Package, promotion and membership discounts (order and clamping)
- House-call minimum order
- Tax and service fee rounding, provider vs platform fee selection
- Loyalty points
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from marketplace.errors import MinimumOrderError
from marketplace.services.catalog_service import OfferingSnapshot, AddonSnapshot, PackageSnapshot
from marketplace.services.pricing_service import (
    PricingInputs,
    PricedProductLine,
    calculate_price_breakdown,
    package_discount,
    promotion_applies,
    service_fee,
)
from marketplace.services.promotions_service import PromotionRecord, MembershipRecord
from marketplace.services.settings_service import ServiceFeeRule, FEE_PERCENTAGE, FEE_FIXED

NOW = datetime(2030, 3, 1, 12, 0)


def offering(oid, price, adjustment="0"):
    return OfferingSnapshot(
        id=oid,
        provider_id=1,
        title=f"Service {oid}",
        price=Decimal(price),
        is_active=True,
        duration_minutes=60,
        at_home_price_adjustment=Decimal(adjustment),
    )


def promo(**overrides):
    fields = dict(
        id=9,
        code="SPRING",
        promo_type="percentage",
        value=Decimal("10"),
        min_purchase_amount=None,
        max_discount_amount=None,
        valid_from=None,
        valid_until=None,
        usage_limit=None,
        usage_count=0,
        is_active=True,
    )
    fields.update(overrides)
    return PromotionRecord(**fields)


def inputs(**overrides):
    fields = dict(
        location_type="at_salon",
        location_id=5,
        now=NOW,
        currency="ZAR",
        offerings=(offering(1, "200"), offering(2, "500")),
    )
    fields.update(overrides)
    return PricingInputs(**fields)


class TestSubtotals:
    """Line item subtotals."""

    def test_salon_services_with_tax(self):
        result = calculate_price_breakdown(inputs(tax_rate=Decimal("15")))

        assert result.services_subtotal == Decimal("700")
        assert result.subtotal == Decimal("700")
        assert result.tax_amount == Decimal("105.00")
        assert result.total_amount == Decimal("805.00")
        assert result.commission_base == Decimal("700")

    def test_at_home_adds_adjustment_and_travel_fee(self):
        result = calculate_price_breakdown(inputs(
            location_type="at_home",
            location_id=None,
            offerings=(offering(1, "200", adjustment="50"),),
            travel_fee=Decimal("40"),
        ))

        assert result.services_subtotal == Decimal("250")
        assert result.travel_fee == Decimal("40")
        assert result.subtotal == Decimal("290")
        # Travel fee is excluded from the commission base
        assert result.commission_base == Decimal("250")

    def test_salon_ignores_travel_fee_and_adjustment(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "200", adjustment="50"),),
            travel_fee=Decimal("40"),
        ))

        assert result.services_subtotal == Decimal("200")
        assert result.travel_fee == Decimal("0")

    def test_addons_and_products(self):
        result = calculate_price_breakdown(inputs(
            addons=(AddonSnapshot(id=3, provider_id=1, name="Massage", price=Decimal("80"), is_active=True),),
            products=(
                PricedProductLine(product_id=4, quantity=2, unit_price=Decimal("120")),
                PricedProductLine(product_id=5, quantity=3, unit_price=Decimal("10"), total_price=Decimal("25")),
            ),
        ))

        assert result.addons_subtotal == Decimal("80")
        assert result.products_subtotal == Decimal("265")
        assert result.subtotal == Decimal("1045")

    def test_tips_dropped_when_disabled(self):
        enabled = calculate_price_breakdown(inputs(tip_amount=Decimal("50")))
        disabled = calculate_price_breakdown(inputs(tip_amount=Decimal("50"), tips_enabled=False))

        assert enabled.tip_amount == Decimal("50")
        assert enabled.total_amount == Decimal("750")
        assert disabled.tip_amount == Decimal("0")
        assert disabled.total_amount == Decimal("700")


class TestPackageDiscount:
    """Package price and percentage discounts."""

    def _package(self, price=None, pct=None):
        return PackageSnapshot(
            id=7, provider_id=1, name="Bundle",
            price=Decimal(price) if price else None,
            discount_percentage=Decimal(pct) if pct else None,
            is_active=True,
        )

    def test_fixed_price_package(self):
        assert package_discount(self._package(price="600"), Decimal("700")) == Decimal("100")

    def test_package_priced_above_services_gives_nothing(self):
        assert package_discount(self._package(price="800"), Decimal("700")) == Decimal("0")

    def test_percentage_package(self):
        assert package_discount(self._package(pct="10"), Decimal("700")) == Decimal("70")

    def test_fixed_price_wins_over_percentage(self):
        assert package_discount(self._package(price="650", pct="50"), Decimal("700")) == Decimal("50")

    def test_package_discount_applies_before_promo(self):
        result = calculate_price_breakdown(inputs(
            package=self._package(price="600"),
            promotion=promo(value=Decimal("10")),
        ))

        assert result.package_discount_amount == Decimal("100")
        assert result.pre_promo_subtotal == Decimal("600")
        assert result.promo_discount_amount == Decimal("60")
        assert result.subtotal == Decimal("540")


class TestPromotions:
    """Promotion eligibility and discount."""

    def test_percentage_promo_capped(self):
        result = calculate_price_breakdown(inputs(
            promotion=promo(value=Decimal("10"), max_discount_amount=Decimal("50")),
        ))

        assert result.promo_discount_amount == Decimal("50")
        assert result.promotion_id == 9
        assert result.promo_code == "SPRING"
        assert result.subtotal == Decimal("650")

    def test_fixed_promo_never_exceeds_subtotal(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "200"),),
            promotion=promo(promo_type="fixed", value=Decimal("300")),
        ))

        assert result.promo_discount_amount == Decimal("200")
        assert result.subtotal == Decimal("0")

    def test_min_purchase_is_inclusive(self):
        eligible = promo(min_purchase_amount=Decimal("700"))
        assert promotion_applies(
            eligible, pre_promo_subtotal=Decimal("700"),
            location_type="at_salon", location_id=5, now=NOW,
        )
        assert not promotion_applies(
            eligible, pre_promo_subtotal=Decimal("699.99"),
            location_type="at_salon", location_id=5, now=NOW,
        )

    def test_location_restricted_promo(self):
        restricted = promo(location_id=5)
        kwargs = dict(pre_promo_subtotal=Decimal("700"), now=NOW)

        assert promotion_applies(restricted, location_type="at_salon", location_id=5, **kwargs)
        assert not promotion_applies(restricted, location_type="at_salon", location_id=6, **kwargs)
        assert not promotion_applies(restricted, location_type="at_home", location_id=None, **kwargs)

    def test_validity_window_and_usage_limit(self):
        kwargs = dict(pre_promo_subtotal=Decimal("700"), location_type="at_salon", location_id=5, now=NOW)

        assert not promotion_applies(promo(valid_until=NOW - timedelta(days=1)), **kwargs)
        assert not promotion_applies(promo(valid_from=NOW + timedelta(days=1)), **kwargs)
        assert not promotion_applies(promo(usage_limit=5, usage_count=5), **kwargs)
        assert not promotion_applies(promo(is_active=False), **kwargs)
        assert promotion_applies(promo(usage_limit=5, usage_count=4), **kwargs)

    def test_ineligible_promo_is_silently_ignored(self):
        result = calculate_price_breakdown(inputs(promotion=promo(is_active=False)))

        assert result.promo_discount_amount == Decimal("0")
        assert result.promotion_id is None
        assert result.promo_code is None


class TestMinimumOrder:
    """House-call minimum order amount."""

    def test_below_minimum_rejected(self):
        with pytest.raises(MinimumOrderError) as exc:
            calculate_price_breakdown(inputs(
                location_type="at_home",
                offerings=(offering(1, "200", adjustment="50"),),
                travel_fee=Decimal("40"),
                minimum_mobile_booking_amount=Decimal("300"),
            ))

        assert exc.value.code == "MINIMUM_ORDER_NOT_MET"
        assert exc.value.details == {"minimum": "300.00", "subtotal": "290.00"}
        assert "300.00 ZAR" in exc.value.message

    def test_minimum_checked_after_promo(self):
        with pytest.raises(MinimumOrderError):
            calculate_price_breakdown(inputs(
                location_type="at_home",
                offerings=(offering(1, "400"),),
                promotion=promo(promo_type="fixed", value=Decimal("150")),
                minimum_mobile_booking_amount=Decimal("300"),
            ))

    def test_exact_minimum_accepted(self):
        result = calculate_price_breakdown(inputs(
            location_type="at_home",
            offerings=(offering(1, "300"),),
            minimum_mobile_booking_amount=Decimal("300"),
        ))
        assert result.subtotal == Decimal("300")

    def test_minimum_does_not_apply_in_salon(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "100"),),
            minimum_mobile_booking_amount=Decimal("300"),
        ))
        assert result.subtotal == Decimal("100")


class TestMembership:
    """Membership discount after promotions."""

    def test_active_membership_discount(self):
        result = calculate_price_breakdown(inputs(
            membership=MembershipRecord(plan_id=3, discount_percent=Decimal("10"), status="active", expires_at=None),
            tax_rate=Decimal("15"),
        ))

        assert result.membership_discount_amount == Decimal("70")
        assert result.subtotal == Decimal("700")
        assert result.subtotal_after_membership == Decimal("630")
        assert result.commission_base == Decimal("630")
        assert result.tax_amount == Decimal("94.50")
        assert result.membership_plan_id == 3

    def test_expired_membership_ignored(self):
        result = calculate_price_breakdown(inputs(
            membership=MembershipRecord(
                plan_id=3, discount_percent=Decimal("10"), status="active",
                expires_at=NOW - timedelta(seconds=1),
            ),
        ))

        assert result.membership_discount_amount == Decimal("0")
        assert result.membership_plan_id is None

    def test_inactive_plan_or_paused_membership_ignored(self):
        paused = MembershipRecord(plan_id=3, discount_percent=Decimal("10"), status="paused", expires_at=None)
        retired = MembershipRecord(
            plan_id=3, discount_percent=Decimal("10"), status="active", expires_at=None, plan_is_active=False,
        )

        assert not paused.is_active_at(NOW)
        assert not retired.is_active_at(NOW)
        assert MembershipRecord(
            plan_id=3, discount_percent=Decimal("10"), status="active", expires_at=NOW,
        ).is_active_at(NOW)


class TestServiceFee:
    """Provider fee config vs platform fee setting."""

    def test_provider_percentage_fee_capped(self):
        rule = ServiceFeeRule(
            fee_type=FEE_PERCENTAGE, percentage=Decimal("5"), max_fee_amount=Decimal("20"), config_id=11,
        )
        assert service_fee(rule, None, Decimal("630")) == (Decimal("20"), Decimal("5"), 11)

    def test_provider_fixed_fee(self):
        rule = ServiceFeeRule(fee_type=FEE_FIXED, fixed_amount=Decimal("15"), config_id=11)
        assert service_fee(rule, None, Decimal("630")) == (Decimal("15"), Decimal("0"), 11)

    def test_provider_minimum_not_met_blocks_platform_fee(self):
        provider_rule = ServiceFeeRule(
            fee_type=FEE_PERCENTAGE, percentage=Decimal("5"), min_booking_amount=Decimal("1000"), config_id=11,
        )
        platform_rule = ServiceFeeRule(fee_type=FEE_PERCENTAGE, percentage=Decimal("3"))

        assert service_fee(provider_rule, platform_rule, Decimal("700")) == (Decimal("0"), Decimal("0"), 11)

    def test_platform_fee_when_provider_has_none(self):
        platform_rule = ServiceFeeRule(fee_type=FEE_PERCENTAGE, percentage=Decimal("5"))
        result = calculate_price_breakdown(inputs(platform_fee=platform_rule))

        assert result.service_fee_amount == Decimal("35.00")
        assert result.service_fee_percentage == Decimal("5")
        assert result.service_fee_config_id is None
        assert result.total_amount == Decimal("735.00")

    def test_no_fee_configured(self):
        assert service_fee(None, None, Decimal("700")) == (Decimal("0"), Decimal("0"), None)


class TestRoundingAndLoyalty:
    """Rounding happens at tax and fee steps only; loyalty floors."""

    def test_tax_rounds_half_up(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "33.33"),),
            tax_rate=Decimal("15"),
        ))
        # 33.33 * 15% = 4.9995
        assert result.tax_amount == Decimal("5.00")
        assert result.total_amount == Decimal("38.33")

    def test_loyalty_points_floor(self):
        result = calculate_price_breakdown(inputs(
            tax_rate=Decimal("15"),
            loyalty_points_per_unit=Decimal("1.5"),
        ))
        # 805.00 * 1.5 = 1207.5
        assert result.loyalty_points_earned == 1207

    def test_breakdown_serialization(self):
        data = calculate_price_breakdown(inputs(tax_rate=Decimal("15.000"))).to_dict()

        assert data["services_subtotal"] == "700.00"
        assert data["tax_amount"] == "105.00"
        assert data["total_amount"] == "805.00"
        assert data["tax_rate"] == "15"
        assert data["service_fee_percentage"] == "0"
        assert data["loyalty_points_earned"] == 0
        assert data["currency"] == "ZAR"


class TestWorkedScenarios:
    """Reference figures for the waterfall."""

    def test_services_and_addon_with_tax(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "200"),),
            addons=(AddonSnapshot(id=3, provider_id=1, name="Massage", price=Decimal("50"), is_active=True),),
            tax_rate=Decimal("15"),
        ))

        assert result.subtotal == Decimal("250")
        assert result.tax_amount == Decimal("37.50")
        assert result.total_amount == Decimal("287.50")

    def test_fixed_price_package(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "300"),),
            package=PackageSnapshot(id=7, provider_id=1, name="Bundle", price=Decimal("250"),
                                    discount_percentage=None, is_active=True),
        ))

        assert result.package_discount_amount == Decimal("50")
        assert result.pre_promo_subtotal == Decimal("250")

    def test_capped_percentage_promo(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "300"),),
            promotion=promo(value=Decimal("10"), max_discount_amount=Decimal("20")),
        ))

        assert result.promo_discount_amount == Decimal("20")
        assert result.subtotal == Decimal("280")

    def test_same_inputs_same_breakdown(self):
        same = inputs(
            tax_rate=Decimal("15"),
            promotion=promo(),
            membership=MembershipRecord(plan_id=3, discount_percent=Decimal("5"), status="active", expires_at=None),
        )
        assert calculate_price_breakdown(same) == calculate_price_breakdown(same)

    def test_amounts_never_negative(self):
        result = calculate_price_breakdown(inputs(
            offerings=(offering(1, "50"),),
            package=PackageSnapshot(id=7, provider_id=1, name="Bundle", price=Decimal("0"),
                                    discount_percentage=None, is_active=True),
            promotion=promo(promo_type="fixed", value=Decimal("30")),
            membership=MembershipRecord(plan_id=3, discount_percent=Decimal("100"), status="active", expires_at=None),
        ))

        assert result.package_discount_amount == Decimal("50")
        assert result.promo_discount_amount == Decimal("0")
        assert result.subtotal_after_membership == Decimal("0")
        assert result.commission_base == Decimal("0")
        assert result.total_amount == Decimal("0")
