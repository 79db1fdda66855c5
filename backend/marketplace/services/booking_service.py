# Overview: Booking creation pipeline; validates, prices, arbitrates conflicts and writes the booking atomically.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from flask import current_app

from ..extensions import db
from ..money import money_str, to_decimal
from ..time_utils import utcnow, to_utc_z
from ..validation import BookingDraft
from .appointment_status import AppointmentStatusDeterminer
from .availability_service import (
    AvailabilityStore,
    ConflictDecision,
    NO_CONFLICT_CHECK,
    arbitrate_staff_conflict,
    raise_for_resources,
)
from .booking_graph_service import BookingGraph, StaffPicker, build_booking_graph
from .booking_repository import BookingRepository
from .catalog_service import CatalogStore, ResolvedBooking, resolve_booking_entities
from .concurrency import resource_locks, run_with_retry, staff_schedule_lock
from .pricing_service import PriceBreakdown, build_pricing_inputs, calculate_price_breakdown
from .promotions_service import LoyaltyRuleStore
from .scheduling_service import BookingWindows, compose_windows, destination_of
from .settings_service import ProviderSettingsStore
from .subscription_service import SubscriptionLimitChecker
from .travel_service import HaversineTravelBufferEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingCreationResult:
    booking_id: int
    booking_number: str
    price_breakdown: PriceBreakdown
    status: str
    conflict_overridden: bool
    scheduled_at: datetime
    scheduled_end_at: datetime

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "booking_number": self.booking_number,
            "status": self.status,
            "conflict_overridden": self.conflict_overridden,
            "scheduled_at": to_utc_z(self.scheduled_at),
            "scheduled_end_at": to_utc_z(self.scheduled_end_at),
            "price_breakdown": self.price_breakdown.to_dict(),
        }


@dataclass(frozen=True)
class _PreparedBooking:
    resolved: ResolvedBooking
    breakdown: PriceBreakdown
    windows: BookingWindows
    graph: BookingGraph
    status: str
    resource_ids: tuple[int, ...]


class BookingPipeline:
    """
    Draft -> entities -> price -> windows -> conflicts -> graph -> status -> write.

    Collaborators are fixed at construction. Everything up to the graph is
    read-only; the conflict read, resource read and every insert then run as
    one unit under the staff schedule lock.
    """

    def __init__(
        self,
        *,
        catalog: CatalogStore,
        settings: ProviderSettingsStore,
        availability: AvailabilityStore,
        loyalty: LoyaltyRuleStore,
        subscriptions: SubscriptionLimitChecker,
        travel: HaversineTravelBufferEstimator,
        repository: BookingRepository,
        picker: StaffPicker | None = None,
        default_last_buffer: int = 15,
        staff_pool_limit: int = 10,
        lock_retry_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.settings = settings
        self.availability = availability
        self.loyalty = loyalty
        self.subscriptions = subscriptions
        self.travel = travel
        self.repository = repository
        self.status_determiner = AppointmentStatusDeterminer(settings)
        self.picker = picker or StaffPicker()
        self.default_last_buffer = default_last_buffer
        self.staff_pool_limit = staff_pool_limit
        self.lock_retry_attempts = lock_retry_attempts
        self.clock = clock

    @classmethod
    def from_config(cls, config, **overrides) -> "BookingPipeline":
        options = dict(
            catalog=CatalogStore(default_currency=config.get("DEFAULT_CURRENCY", "ZAR")),
            settings=ProviderSettingsStore(
                default_tax_rate=to_decimal(config.get("PLATFORM_DEFAULT_TAX_RATE", "0")),
            ),
            availability=AvailabilityStore(),
            loyalty=LoyaltyRuleStore(),
            subscriptions=SubscriptionLimitChecker(),
            travel=HaversineTravelBufferEstimator(
                base_minutes=config.get("TRAVEL_BASE_MINUTES", 30),
                minutes_per_km=config.get("TRAVEL_MINUTES_PER_KM", 2.0),
            ),
            repository=BookingRepository(),
            default_last_buffer=config.get("DEFAULT_LAST_SERVICE_BUFFER_MINUTES", 15),
            staff_pool_limit=config.get("FALLBACK_STAFF_POOL_LIMIT", 10),
            lock_retry_attempts=config.get("BOOKING_LOCK_RETRY_ATTEMPTS", 3),
        )
        options.update(overrides)
        return cls(**options)

    @classmethod
    def from_app(cls, app, **overrides) -> "BookingPipeline":
        return cls.from_config(app.config, **overrides)

    def _resolve_and_price(self, draft: BookingDraft, customer_id: int) -> tuple[ResolvedBooking, PriceBreakdown]:
        resolved = resolve_booking_entities(
            draft,
            customer_id,
            store=self.catalog,
            subscription_checker=self.subscriptions,
        )
        inputs = build_pricing_inputs(
            draft,
            resolved,
            settings_store=self.settings,
            loyalty_store=self.loyalty,
            now=self.clock(),
        )
        return resolved, calculate_price_breakdown(inputs)

    def quote(self, draft: BookingDraft, customer_id: int) -> PriceBreakdown:
        """Price preview; nothing is written."""
        _, breakdown = self._resolve_and_price(draft, customer_id)
        return breakdown

    def _required_resource_ids(self, draft: BookingDraft) -> tuple[dict[int, int | None], tuple[int, ...]]:
        if draft.resource_ids:
            return {}, tuple(dict.fromkeys(draft.resource_ids))
        by_offering = {oid: self.catalog.required_resource_id(oid) for oid in draft.primary_offering_ids}
        ids = [by_offering[s.offering_id] for s in draft.services if by_offering[s.offering_id] is not None]
        return by_offering, tuple(dict.fromkeys(ids))

    def _prepare(self, draft: BookingDraft, customer_id: int) -> _PreparedBooking:
        resolved, breakdown = self._resolve_and_price(draft, customer_id)
        provider_id = resolved.provider.id
        status = self.status_determiner.status_for(provider_id)

        travel_minutes = 0
        destination = destination_of(draft)
        if draft.lead_staff_id and destination is not None:
            travel_minutes = self.travel.estimate(
                provider_id=provider_id,
                staff_id=draft.lead_staff_id,
                start=draft.selected_datetime,
                destination=destination,
            )
        windows = compose_windows(
            draft,
            resolved.offerings,
            travel_minutes=travel_minutes,
            default_last_buffer=self.default_last_buffer,
        )

        resource_by_offering, resource_ids = self._required_resource_ids(draft)
        staff_pool = None
        if all(s.staff_id is None for s in draft.services):
            staff_pool = self.catalog.active_staff_ids(provider_id, self.staff_pool_limit)
        graph = build_booking_graph(
            draft,
            resolved.offerings,
            currency=breakdown.currency,
            staff_pool=staff_pool,
            picker=self.picker,
            resource_by_offering=resource_by_offering,
        )
        return _PreparedBooking(
            resolved=resolved,
            breakdown=breakdown,
            windows=windows,
            graph=graph,
            status=status,
            resource_ids=resource_ids,
        )

    def _check_conflicts(self, draft: BookingDraft, prepared: _PreparedBooking) -> ConflictDecision:
        decision = NO_CONFLICT_CHECK
        if draft.lead_staff_id is not None:
            result = self.availability.find_staff_conflicts(
                draft.lead_staff_id,
                prepared.windows.start,
                prepared.windows.conflict_end,
            )
            decision = arbitrate_staff_conflict(
                result,
                provider_id=prepared.resolved.provider.id,
                settings_store=self.settings,
            )
        if prepared.resource_ids:
            raise_for_resources(self.availability.check_resources(
                list(prepared.resource_ids),
                prepared.windows.start,
                prepared.windows.resource_end,
            ))
        return decision

    def create_booking(self, draft: BookingDraft, customer_id: int) -> BookingCreationResult:
        prepared = self._prepare(draft, customer_id)
        # Reads above ran in their own transaction; the write unit starts fresh.
        db.session.rollback()

        def _write_unit():
            windows = prepared.windows
            try:
                staff_schedule_lock(
                    prepared.graph.lead_staff_id,
                    windows.start.date(),
                    max(windows.conflict_end, windows.booking_end).date(),
                )
                resource_locks(prepared.resource_ids)
                decision = self._check_conflicts(draft, prepared)
                booking = self.repository.create(
                    draft=draft,
                    customer_id=customer_id,
                    resolved=prepared.resolved,
                    breakdown=prepared.breakdown,
                    graph=prepared.graph,
                    windows=prepared.windows,
                    status=prepared.status,
                    decision=decision,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            return booking.id, booking.booking_number, decision

        booking_id, booking_number, decision = run_with_retry(
            _write_unit, attempts=self.lock_retry_attempts
        )
        logger.info(
            "Created booking %s for provider %s (total %s %s)",
            booking_number,
            prepared.resolved.provider.id,
            money_str(prepared.breakdown.total_amount),
            prepared.breakdown.currency,
        )
        return BookingCreationResult(
            booking_id=booking_id,
            booking_number=booking_number,
            price_breakdown=prepared.breakdown,
            status=prepared.status,
            conflict_overridden=decision.overridden,
            scheduled_at=prepared.windows.start,
            scheduled_end_at=prepared.windows.booking_end,
        )


def build_pipeline(app=None, **overrides) -> BookingPipeline:
    return BookingPipeline.from_app(app or current_app, **overrides)
