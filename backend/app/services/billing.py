"""Shared billing utilities: money rounding, session pricing and reference codes."""

import secrets
import string
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENTS = Decimal("0.01")
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def quantize_money(value: Decimal | float | int | None) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_session_cost(duration_minutes: int | None, rate_per_hour: Decimal | float | None) -> Decimal | None:
    """Compute session cost using Decimal math; return None for invalid inputs."""
    if duration_minutes is None or rate_per_hour is None:
        return None
    if duration_minutes <= 0:
        return None
    rate = Decimal(str(rate_per_hour))
    if rate <= 0:
        return None
    hours = Decimal(duration_minutes) / Decimal("60")
    cost = hours * rate
    return cost.quantize(CENTS, rounding=ROUND_HALF_UP)


def sum_hours(durations: Iterable[int | None]) -> Decimal:
    minutes = sum((d or 0 for d in durations), 0)
    return (Decimal(minutes) / Decimal("60")).quantize(CENTS, rounding=ROUND_HALF_UP)


def generate_reference(prefix: str, month: int, year: int, length: int = 6) -> str:
    """Build a reference such as ``INV-2401-7Q2K9Z``.

    Uniqueness is enforced by the unique index on the column holding the value;
    the random suffix only makes collisions unlikely.
    """
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}-{str(year)[-2:]}{month:02d}-{suffix}"
