# Overview: Public booking API routes; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Booking
from ..errors import BookingError
from ..validation import parse_booking_draft
from ..decorators import require_customer


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/public/bookings")


def _pipeline():
    return current_app.extensions["booking_pipeline"]


def _error_response(e: BookingError):
    return jsonify({"error": e.to_dict()}), e.status


@bookings_bp.post("")
@require_customer
def create_booking_route():
    """
    Create a booking from a customer draft.

    Returns 201 with the booking number, status and full price breakdown,
    or a typed error: {"error": {"code", "message", "details"}}.
    """
    try:
        draft = parse_booking_draft(request.get_json(silent=True))
        result = _pipeline().create_booking(draft, g.customer_id)
        return jsonify({"booking": result.to_dict()}), 201

    except BookingError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/quote")
@require_customer
def quote_booking_route():
    """Price preview for a draft. Nothing is written."""
    try:
        draft = parse_booking_draft(request.get_json(silent=True))
        breakdown = _pipeline().quote(draft, g.customer_id)
        return jsonify({"price_breakdown": breakdown.to_dict()}), 200

    except BookingError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to quote booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>")
@require_customer
def get_booking_route(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if not booking or booking.customer_id != g.customer_id:
        return jsonify({"error": "Booking not found"}), 404

    return jsonify({
        "booking": booking.to_dict(),
        "services": [line.to_dict() for line in booking.service_lines],
    })
