# Overview: Provider and platform settings consumed by pricing, conflict arbitration and status.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..models import PlatformFeeConfig, PlatformSetting, ProviderSettings
from ..money import ZERO, to_decimal
from .fallbacks import safe_lookup

KEY_DEFAULT_TAX_RATE = "platform.default_tax_rate"
KEY_SERVICE_FEE = "platform.service_fee"

FEE_PERCENTAGE = "percentage"
FEE_FIXED = "fixed_amount"


@dataclass(frozen=True)
class ServiceFeeRule:
    """
    Customer service fee shape.

    `config_id` is set for provider fee configs and None for the platform fallback.
    """
    fee_type: str
    percentage: Decimal = ZERO
    fixed_amount: Decimal = ZERO
    min_booking_amount: Decimal = ZERO
    max_fee_amount: Decimal | None = None
    config_id: int | None = None


def get_platform_setting(key: str) -> Any:
    row = db.session.query(PlatformSetting).filter_by(key=key, is_active=True).first()
    return row.value_json if row else None


def set_platform_setting(key: str, value: Any) -> PlatformSetting:
    row = db.session.query(PlatformSetting).filter_by(key=key).first()
    if row is None:
        row = PlatformSetting(key=key)
        db.session.add(row)
    row.value_json = value
    row.is_active = True
    return row


def _fee_rule_from_config(config: PlatformFeeConfig) -> ServiceFeeRule:
    return ServiceFeeRule(
        fee_type=config.fee_type,
        percentage=to_decimal(config.fee_percentage),
        fixed_amount=to_decimal(config.fee_fixed_amount),
        min_booking_amount=to_decimal(config.min_booking_amount),
        max_fee_amount=to_decimal(config.max_fee_amount, None),
        config_id=config.id,
    )


def _fee_rule_from_setting(value: Any) -> ServiceFeeRule | None:
    if not isinstance(value, dict):
        return None
    fee_type = value.get("type") or "percentage"
    if fee_type == "percentage":
        return ServiceFeeRule(fee_type=FEE_PERCENTAGE, percentage=to_decimal(value.get("percentage")))
    return ServiceFeeRule(fee_type=FEE_FIXED, fixed_amount=to_decimal(value.get("fixed")))


class ProviderSettingsStore:
    """
    Settings reads for one booking attempt.

    Every method answers with a safe default when the underlying lookup fails:
    platform default tax rate from config, no fee, no double-booking override,
    auto-confirm on.
    """

    def __init__(self, *, default_tax_rate: Decimal = ZERO):
        self.default_tax_rate = default_tax_rate

    def tax_rate(self, provider_rate: Decimal | None) -> Decimal:
        rate = to_decimal(provider_rate)
        if rate > 0:
            return rate
        return safe_lookup("platform tax rate", self._platform_tax_rate, self.default_tax_rate)

    def _platform_tax_rate(self) -> Decimal:
        value = get_platform_setting(KEY_DEFAULT_TAX_RATE)
        if value is None:
            return self.default_tax_rate
        return to_decimal(value)

    def provider_fee_rule(self, fee_config_id: int | None) -> ServiceFeeRule | None:
        if not fee_config_id:
            return None

        def _load():
            config = (
                db.session.query(PlatformFeeConfig)
                .filter_by(id=fee_config_id, is_active=True)
                .first()
            )
            return _fee_rule_from_config(config) if config else None

        return safe_lookup("provider fee config", _load, None)

    def platform_fee_rule(self) -> ServiceFeeRule | None:
        return safe_lookup(
            "platform service fee",
            lambda: _fee_rule_from_setting(get_platform_setting(KEY_SERVICE_FEE)),
            None,
        )

    def _provider_settings(self, provider_id: int) -> ProviderSettings | None:
        return db.session.query(ProviderSettings).filter_by(provider_id=provider_id).first()

    def allows_double_booking(self, provider_id: int) -> bool:
        def _load():
            row = self._provider_settings(provider_id)
            return bool(row and row.allow_double_booking)

        return safe_lookup("double booking override policy", _load, False)

    def auto_confirms(self, provider_id: int) -> bool:
        def _load():
            row = self._provider_settings(provider_id)
            return True if row is None else bool(row.auto_confirm_bookings)

        return safe_lookup("appointment auto-confirm policy", _load, True)
