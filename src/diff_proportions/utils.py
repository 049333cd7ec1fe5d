from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal

HUNDRED = Decimal("100")
TARGET_SHARE_DIGITS = 8


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("Boolean values are not numeric amounts.")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def increment_precision(increment: Decimal) -> int:
    fraction = increment - increment.to_integral_value(rounding=ROUND_DOWN)
    if fraction == 0:
        return 0
    return -fraction.normalize().as_tuple().exponent


def round_digits(value: Decimal, digits: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_EVEN)


def percent_share(value: Decimal, total: Decimal) -> Decimal:
    if total == 0:
        return Decimal(0)
    return HUNDRED * value / total


def now_local_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")
