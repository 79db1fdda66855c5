# Overview: Promotion, membership and loyalty lookups used by booking pricing.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, update

from ..extensions import db
from ..models import Promotion, UserMembership, LoyaltyRule
from ..money import to_decimal
from ..time_utils import as_naive_utc
from .fallbacks import safe_lookup

PROMO_PERCENTAGE = "percentage"
PROMO_FIXED = "fixed"


@dataclass(frozen=True)
class PromotionRecord:
    id: int
    code: str
    promo_type: str
    value: Decimal
    min_purchase_amount: Decimal | None
    max_discount_amount: Decimal | None
    valid_from: datetime | None
    valid_until: datetime | None
    usage_limit: int | None
    usage_count: int
    is_active: bool
    provider_id: int | None = None
    location_id: int | None = None

    @classmethod
    def from_model(cls, promo: Promotion) -> "PromotionRecord":
        return cls(
            id=promo.id,
            code=promo.code,
            promo_type=promo.promo_type,
            value=to_decimal(promo.value),
            min_purchase_amount=to_decimal(promo.min_purchase_amount, None),
            max_discount_amount=to_decimal(promo.max_discount_amount, None),
            valid_from=as_naive_utc(promo.valid_from),
            valid_until=as_naive_utc(promo.valid_until),
            usage_limit=promo.usage_limit,
            usage_count=promo.usage_count or 0,
            is_active=bool(promo.is_active),
            provider_id=promo.provider_id,
            location_id=promo.location_id,
        )


@dataclass(frozen=True)
class MembershipRecord:
    plan_id: int
    discount_percent: Decimal
    status: str
    expires_at: datetime | None
    plan_is_active: bool = True

    def is_active_at(self, now: datetime) -> bool:
        if self.status != "active" or not self.plan_is_active:
            return False
        return self.expires_at is None or self.expires_at >= now


def find_promotion_by_code(code: str, provider_id: int) -> PromotionRecord | None:
    """
    Look up a promotion code usable at this provider (its own or platform-wide).

    Unknown codes return None; eligibility is decided by the pricing waterfall.
    """
    if not code:
        return None
    promo = (
        db.session.query(Promotion)
        .filter(Promotion.code == code.strip().upper())
        .filter((Promotion.provider_id == provider_id) | (Promotion.provider_id.is_(None)))
        .first()
    )
    return PromotionRecord.from_model(promo) if promo else None


def record_promotion_usage(promotion_id: int) -> bool:
    """
    Claim one use of a promotion inside the caller's transaction.

    The usage limit is enforced by the UPDATE itself; returns False when no
    use was left.
    """
    result = db.session.execute(
        update(Promotion)
        .where(Promotion.id == promotion_id)
        .where(or_(Promotion.usage_limit.is_(None), Promotion.usage_count < Promotion.usage_limit))
        .values(usage_count=Promotion.usage_count + 1, version_id=Promotion.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_membership(customer_id: int, provider_id: int) -> MembershipRecord | None:
    membership = (
        db.session.query(UserMembership)
        .filter_by(customer_id=customer_id, provider_id=provider_id)
        .first()
    )
    if not membership or not membership.plan or membership.plan.provider_id != provider_id:
        return None
    return MembershipRecord(
        plan_id=membership.plan.id,
        discount_percent=to_decimal(membership.plan.discount_percent),
        status=membership.status,
        expires_at=as_naive_utc(membership.expires_at),
        plan_is_active=bool(membership.plan.is_active),
    )


class LoyaltyRuleStore:
    """Active loyalty rule lookup; failures degrade to "no points"."""

    def points_per_currency_unit(self, currency: str) -> Decimal:
        def _load():
            rule = (
                db.session.query(LoyaltyRule)
                .filter_by(is_active=True, currency=currency)
                .order_by(LoyaltyRule.effective_from.desc(), LoyaltyRule.id.desc())
                .first()
            )
            return to_decimal(rule.points_per_currency_unit) if rule else Decimal("0")

        return safe_lookup(f"loyalty rule ({currency})", _load, Decimal("0"))
