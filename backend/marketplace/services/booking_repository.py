# Overview: Persists a fully validated booking graph inside the caller's locked transaction.

from __future__ import annotations

from ..extensions import db
from ..errors import BookingValidationError, InsufficientStockError
from ..models import (
    Booking,
    BookingServiceLine,
    BookingAddon,
    BookingProduct,
    Customer,
    GroupBooking,
    GroupParticipant,
    GroupParticipantService,
    Product,
    ResourceAssignment,
    BookingEvent,
)
from ..validation import BookingDraft
from .availability_service import ConflictDecision
from .booking_graph_service import BookingGraph, ScheduledLine
from .catalog_service import ResolvedBooking
from .concurrency import lock_for_update
from .document_service import next_booking_number
from .pricing_service import PriceBreakdown
from .promotions_service import record_promotion_usage
from .scheduling_service import BookingWindows

EVENT_DOUBLE_BOOKING_OVERRIDE = "double_booking_override"


class BookingRepository:
    """
    Writes booking rows. Never commits; the booking write unit owns the transaction.
    """

    def create(
        self,
        *,
        draft: BookingDraft,
        customer_id: int,
        resolved: ResolvedBooking,
        breakdown: PriceBreakdown,
        graph: BookingGraph,
        windows: BookingWindows,
        status: str,
        decision: ConflictDecision,
    ) -> Booking:
        provider_id = resolved.provider.id
        booking = Booking(
            booking_number=next_booking_number(provider_id=provider_id),
            customer_id=customer_id,
            provider_id=provider_id,
            status=status,
            booking_source="online",
            location_type=draft.location_type,
            location_id=draft.location_id if not draft.is_at_home else None,
            scheduled_at=windows.start,
            scheduled_end_at=windows.booking_end,
            package_id=resolved.package.id if resolved.package else None,
            promotion_id=breakdown.promotion_id,
            membership_plan_id=breakdown.membership_plan_id,
            service_fee_config_id=breakdown.service_fee_config_id,
            currency=breakdown.currency,
            subtotal=breakdown.subtotal_after_membership,
            travel_fee=breakdown.travel_fee,
            discount_amount=breakdown.package_discount_amount + breakdown.promo_discount_amount,
            discount_code=breakdown.promo_code,
            promotion_discount_amount=breakdown.promo_discount_amount,
            membership_discount_amount=breakdown.membership_discount_amount,
            commission_base=breakdown.commission_base,
            tip_amount=breakdown.tip_amount,
            tax_rate=breakdown.tax_rate,
            tax_amount=breakdown.tax_amount,
            service_fee_percentage=breakdown.service_fee_percentage,
            service_fee_amount=breakdown.service_fee_amount,
            service_fee_paid_by="customer",
            total_amount=breakdown.total_amount,
            loyalty_points_earned=breakdown.loyalty_points_earned,
            payment_status="pending",
            special_requests=draft.special_requests,
            is_group_booking=draft.is_group,
        )
        if draft.address is not None and draft.is_at_home:
            booking.address_line1 = draft.address.line1
            booking.address_line2 = draft.address.line2
            booking.address_city = draft.address.city
            booking.address_state = draft.address.state
            booking.address_country = draft.address.country
            booking.address_postal_code = draft.address.postal_code
            booking.address_latitude = draft.address.latitude
            booking.address_longitude = draft.address.longitude
        db.session.add(booking)
        db.session.flush()

        self._add_service_lines(booking, graph, windows)
        self._add_addons(booking, resolved)
        self._add_products(booking, draft, resolved, graph)
        if draft.is_group:
            self._add_group(booking, draft, customer_id, graph)
        if decision.overridden:
            db.session.add(BookingEvent(
                booking_id=booking.id,
                event_type=EVENT_DOUBLE_BOOKING_OVERRIDE,
                event_data={"conflicting_booking_ids": list(decision.conflicting_booking_ids)},
                created_by=customer_id,
            ))
        if breakdown.promotion_id and not record_promotion_usage(breakdown.promotion_id):
            raise BookingValidationError(
                "Promotion usage limit reached",
                details={"field": "promotion_code", "promotion_id": breakdown.promotion_id},
            )

        db.session.flush()
        return booking

    def _add_service_lines(self, booking: Booking, graph: BookingGraph, windows: BookingWindows) -> None:
        for line in graph.service_lines:
            row = _service_line_row(booking.id, line)
            db.session.add(row)
            if line.resource_id is not None:
                db.session.flush()
                db.session.add(ResourceAssignment(
                    booking_id=booking.id,
                    booking_service_id=row.id,
                    resource_id=line.resource_id,
                    scheduled_start_at=line.start,
                    scheduled_end_at=line.end,
                ))
        for resource_id in graph.explicit_resource_ids:
            db.session.add(ResourceAssignment(
                booking_id=booking.id,
                resource_id=resource_id,
                scheduled_start_at=windows.start,
                scheduled_end_at=windows.resource_end,
            ))

    def _add_addons(self, booking: Booking, resolved: ResolvedBooking) -> None:
        for addon in resolved.addons:
            db.session.add(BookingAddon(
                booking_id=booking.id,
                addon_id=addon.id,
                quantity=1,
                price=addon.price,
                currency=booking.currency,
            ))

    def _add_products(self, booking: Booking, draft: BookingDraft, resolved: ResolvedBooking, graph: BookingGraph) -> None:
        for line in draft.products:
            snapshot = resolved.products[line.product_id]
            unit_price = line.unit_price if line.unit_price is not None else snapshot.price
            total_price = line.total_price if line.total_price is not None else unit_price * line.quantity
            db.session.add(BookingProduct(
                booking_id=booking.id,
                product_id=line.product_id,
                staff_id=graph.lead_staff_id,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=total_price,
                currency=booking.currency,
            ))
            if snapshot.track_stock_quantity:
                product = lock_for_update(
                    db.session.query(Product).filter_by(id=line.product_id)
                ).first()
                available = product.quantity or 0
                # Re-checked under the row lock; the resolver saw an earlier snapshot
                if available < line.quantity:
                    raise InsufficientStockError(
                        f"Only {available} units available for {product.name}",
                        details={"product_id": product.id, "available": available},
                    )
                product.quantity = available - line.quantity

    def _add_group(self, booking: Booking, draft: BookingDraft, customer_id: int, graph: BookingGraph) -> None:
        group = GroupBooking(
            provider_id=booking.provider_id,
            primary_booking_id=booking.id,
            ref_number=f"GRP-{booking.booking_number}",
        )
        db.session.add(group)
        db.session.flush()

        customer = db.session.get(Customer, customer_id)
        contact = draft.client_info
        db.session.add(GroupParticipant(
            group_booking_id=group.id,
            booking_id=booking.id,
            participant_name=contact.name or (customer.full_name if customer else "Primary contact"),
            participant_email=contact.email or (customer.email if customer else None),
            participant_phone=contact.phone or (customer.phone if customer else None),
            is_primary_contact=True,
        ))

        for entry in graph.participant_lines:
            participant = GroupParticipant(
                group_booking_id=group.id,
                booking_id=booking.id,
                participant_name=entry.participant.name,
                participant_email=entry.participant.email,
                participant_phone=entry.participant.phone,
                is_primary_contact=False,
            )
            db.session.add(participant)
            db.session.flush()
            for line in entry.lines:
                db.session.add(GroupParticipantService(
                    participant_id=participant.id,
                    booking_id=booking.id,
                    offering_id=line.offering_id,
                    staff_id=line.staff_id,
                    duration_minutes=line.duration_minutes,
                    price=line.price,
                    currency=line.currency,
                    scheduled_start_at=line.start,
                    scheduled_end_at=line.end,
                ))


def _service_line_row(booking_id: int, line: ScheduledLine) -> BookingServiceLine:
    return BookingServiceLine(
        booking_id=booking_id,
        offering_id=line.offering_id,
        staff_id=line.staff_id,
        duration_minutes=line.duration_minutes,
        price=line.price,
        currency=line.currency,
        scheduled_start_at=line.start,
        scheduled_end_at=line.end,
    )
