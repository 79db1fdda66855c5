# Overview: Shape validation of incoming booking requests into immutable drafts.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from marketplace.errors import BookingValidationError
from marketplace.money import ZERO, to_decimal
from marketplace.time_utils import parse_iso_datetime

LOCATION_AT_HOME = "at_home"
LOCATION_AT_SALON = "at_salon"
LOCATION_TYPES = {LOCATION_AT_HOME, LOCATION_AT_SALON}

# Largest amount a single draft field may carry: 9,999,999.99
MAX_AMOUNT = Decimal("9999999.99")
MAX_PRODUCT_QUANTITY = 999


@dataclass(frozen=True)
class ServiceSelection:
    offering_id: int
    staff_id: int | None = None


@dataclass(frozen=True)
class Address:
    line1: str
    city: str
    country: str
    line2: str | None = None
    state: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_geocoded(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class ProductLine:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None
    total_price: Decimal | None = None


@dataclass(frozen=True)
class ContactInfo:
    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ParticipantDraft:
    name: str
    service_ids: tuple[int, ...] = ()
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class BookingDraft:
    """
    Booking request as submitted by the customer. Never mutated after parsing.
    """
    provider_id: int
    services: tuple[ServiceSelection, ...]
    selected_datetime: datetime
    location_type: str
    location_id: int | None = None
    address: Address | None = None
    addon_ids: tuple[int, ...] = ()
    products: tuple[ProductLine, ...] = ()
    package_id: int | None = None
    promotion_code: str = ""
    use_membership: bool = True
    is_group_booking: bool = False
    group_participants: tuple[ParticipantDraft, ...] = ()
    tip_amount: Decimal = ZERO
    travel_fee: Decimal = ZERO
    resource_ids: tuple[int, ...] = ()
    special_requests: str | None = None
    client_info: ContactInfo = field(default_factory=ContactInfo)

    @property
    def is_at_home(self) -> bool:
        return self.location_type == LOCATION_AT_HOME

    @property
    def is_group(self) -> bool:
        return self.is_group_booking and len(self.group_participants) > 0

    @property
    def lead_staff_id(self) -> int | None:
        return self.services[0].staff_id

    @property
    def primary_offering_ids(self) -> list[int]:
        return [s.offering_id for s in self.services]

    def all_offering_ids(self) -> list[int]:
        """Primary and group participant offering ids, de-duplicated in request order."""
        ids = self.primary_offering_ids
        if self.is_group:
            for participant in self.group_participants:
                ids.extend(participant.service_ids)
        return list(dict.fromkeys(ids))


def _to_int(value: Any, field_name: str, *, required: bool = False) -> int | None:
    if value is None or value == "":
        if required:
            raise BookingValidationError(f"{field_name} is required", details={"field": field_name})
        return None
    if isinstance(value, bool):
        raise BookingValidationError(f"{field_name} must be an integer", details={"field": field_name})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise BookingValidationError(f"{field_name} must be an integer", details={"field": field_name})


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_money(value: Any, field_name: str, *, allow_none: bool = True) -> Decimal | None:
    if value is None or value == "":
        if allow_none:
            return None
        return ZERO
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError):
        raise BookingValidationError(f"{field_name} must be a number", details={"field": field_name})
    if not amount.is_finite():
        raise BookingValidationError(f"{field_name} must be a number", details={"field": field_name})
    if amount < 0:
        raise BookingValidationError(f"{field_name} cannot be negative", details={"field": field_name})
    if amount > MAX_AMOUNT:
        raise BookingValidationError(
            f"{field_name} cannot exceed {MAX_AMOUNT}",
            details={"field": field_name},
        )
    return amount


def _to_coordinate(value: Any, field_name: str, limit: float) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise BookingValidationError(f"{field_name} must be a number", details={"field": field_name})
    if not math.isfinite(number) or abs(number) > limit:
        raise BookingValidationError(
            f"{field_name} must be between -{limit:g} and {limit:g}",
            details={"field": field_name},
        )
    return number


def _as_list(value: Any, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise BookingValidationError(f"{field_name} must be a list", details={"field": field_name})
    return value


def _parse_services(raw: Any) -> tuple[ServiceSelection, ...]:
    items = _as_list(raw, "services")
    if not items:
        raise BookingValidationError("At least one service is required", details={"field": "services"})
    services = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise BookingValidationError("Invalid service selection", details={"field": f"services[{i}]"})
        services.append(ServiceSelection(
            offering_id=_to_int(item.get("offering_id"), f"services[{i}].offering_id", required=True),
            staff_id=_to_int(item.get("staff_id"), f"services[{i}].staff_id"),
        ))
    return tuple(services)


def _parse_address(raw: Any) -> Address | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise BookingValidationError("address must be an object", details={"field": "address"})
    missing = [k for k in ("line1", "city", "country") if not _to_text(raw.get(k))]
    if missing:
        raise BookingValidationError(
            f"address is missing: {', '.join(missing)}",
            details={"field": "address", "missing": missing},
        )
    return Address(
        line1=_to_text(raw["line1"]),
        line2=_to_text(raw.get("line2")),
        city=_to_text(raw["city"]),
        state=_to_text(raw.get("state")),
        country=_to_text(raw["country"]),
        postal_code=_to_text(raw.get("postal_code")),
        latitude=_to_coordinate(raw.get("latitude"), "address.latitude", 90),
        longitude=_to_coordinate(raw.get("longitude"), "address.longitude", 180),
    )


def _parse_products(raw: Any) -> tuple[ProductLine, ...]:
    lines = []
    for i, item in enumerate(_as_list(raw, "products")):
        if not isinstance(item, dict):
            raise BookingValidationError("Invalid product selection", details={"field": f"products[{i}]"})
        product_id = item.get("product_id", item.get("productId"))
        quantity = _to_int(item.get("quantity"), f"products[{i}].quantity", required=True)
        if quantity <= 0 or quantity > MAX_PRODUCT_QUANTITY:
            raise BookingValidationError(
                f"Product quantity must be between 1 and {MAX_PRODUCT_QUANTITY}",
                details={"field": f"products[{i}].quantity"},
            )
        lines.append(ProductLine(
            product_id=_to_int(product_id, f"products[{i}].product_id", required=True),
            quantity=quantity,
            unit_price=_to_money(item.get("unit_price", item.get("unitPrice")), f"products[{i}].unit_price"),
            total_price=_to_money(item.get("total_price", item.get("totalPrice")), f"products[{i}].total_price"),
        ))
    return tuple(lines)


def _parse_participants(raw: Any) -> tuple[ParticipantDraft, ...]:
    participants = []
    for i, item in enumerate(_as_list(raw, "group_participants")):
        if not isinstance(item, dict):
            raise BookingValidationError("Invalid group participant", details={"field": f"group_participants[{i}]"})
        name = _to_text(item.get("name"))
        if not name:
            raise BookingValidationError(
                "Group participant name is required",
                details={"field": f"group_participants[{i}].name"},
            )
        service_ids = item.get("service_ids", item.get("serviceIds"))
        participants.append(ParticipantDraft(
            name=name,
            email=_to_text(item.get("email")),
            phone=_to_text(item.get("phone")),
            service_ids=tuple(
                _to_int(sid, f"group_participants[{i}].service_ids", required=True)
                for sid in _as_list(service_ids, f"group_participants[{i}].service_ids")
            ),
        ))
    return tuple(participants)


def parse_booking_draft(payload: Any) -> BookingDraft:
    """
    Validate + normalize a booking request body.

    Only shape is checked here; whether the referenced rows exist and belong to
    the provider is the entity resolver's job.
    """
    if not isinstance(payload, dict):
        raise BookingValidationError("Invalid JSON payload")

    provider_id = _to_int(payload.get("provider_id"), "provider_id", required=True)
    services = _parse_services(payload.get("services"))

    raw_dt = payload.get("selected_datetime")
    if not raw_dt or not isinstance(raw_dt, str):
        raise BookingValidationError("selected_datetime is required", details={"field": "selected_datetime"})
    try:
        selected_datetime = parse_iso_datetime(raw_dt)
    except ValueError:
        raise BookingValidationError(
            "selected_datetime must be an ISO-8601 datetime",
            details={"field": "selected_datetime"},
        )

    location_type = payload.get("location_type")
    if location_type not in LOCATION_TYPES:
        raise BookingValidationError(
            "location_type must be one of: at_home, at_salon",
            details={"field": "location_type"},
        )

    location_id = _to_int(payload.get("location_id"), "location_id")
    address = _parse_address(payload.get("address"))
    if location_type == LOCATION_AT_SALON and location_id is None:
        raise BookingValidationError(
            "location_id is required for at_salon bookings",
            details={"field": "location_id"},
        )
    if location_type == LOCATION_AT_HOME and address is None:
        raise BookingValidationError(
            "address is required for at_home bookings",
            details={"field": "address"},
        )

    client_info = payload.get("client_info") or {}
    if not isinstance(client_info, dict):
        raise BookingValidationError("client_info must be an object", details={"field": "client_info"})

    return BookingDraft(
        provider_id=provider_id,
        services=services,
        selected_datetime=selected_datetime,
        location_type=location_type,
        location_id=location_id,
        address=address,
        addon_ids=tuple(
            _to_int(a, "addons", required=True) for a in _as_list(payload.get("addons"), "addons")
        ),
        products=_parse_products(payload.get("products")),
        package_id=_to_int(payload.get("package_id"), "package_id"),
        promotion_code=(_to_text(payload.get("promotion_code")) or "").upper(),
        use_membership=bool(payload.get("use_membership", True)),
        is_group_booking=bool(payload.get("is_group_booking", False)),
        group_participants=_parse_participants(payload.get("group_participants")),
        tip_amount=_to_money(payload.get("tip_amount"), "tip_amount", allow_none=False),
        travel_fee=_to_money(payload.get("travel_fee"), "travel_fee", allow_none=False),
        resource_ids=tuple(
            _to_int(r, "resource_ids", required=True)
            for r in _as_list(payload.get("resource_ids"), "resource_ids")
        ),
        special_requests=_to_text(payload.get("special_requests")),
        client_info=ContactInfo(
            name=_to_text(client_info.get("name")),
            email=_to_text(client_info.get("email")),
            phone=_to_text(client_info.get("phone")),
        ),
    )
