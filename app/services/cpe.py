"""CPE credit arithmetic and certificate numbering (NASBA conventions)."""

from __future__ import annotations

import secrets
import string
import time
from decimal import ROUND_FLOOR, Decimal

MINUTES_PER_CREDIT = 50
_TWO_PLACES = Decimal("0.01")
_BASE36 = string.digits + string.ascii_uppercase


def calculate_cpe_credits(time_spent_minutes: int) -> Decimal:
    """50 minutes = 1 credit, truncated (not rounded) to two decimals."""
    if time_spent_minutes <= 0:
        return Decimal("0.00")
    raw = Decimal(time_spent_minutes) / Decimal(MINUTES_PER_CREDIT)
    return raw.quantize(_TWO_PLACES, rounding=ROUND_FLOOR)


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_certificate_number(now_ms: int | None = None) -> str:
    """``CPE-<base36 millis>-<6 random base36 chars>``, upper case."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"CPE-{_base36(now_ms)}-{suffix}"
