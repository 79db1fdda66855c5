# Overview: Decimal helpers shared by pricing, persistence, and serialization.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce DB/JSON numerics to Decimal; None and "" become `default`."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"Not a monetary value: {value!r}")
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1
        return Decimal(str(value))
    return Decimal(str(value).strip())


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(round2(to_decimal(value)))
