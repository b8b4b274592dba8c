"""Exact money conversion between motes and CSPR.

Backend amounts are integers in motes (1 CSPR = 10^9 motes). Everything is
kept as :class:`~decimal.Decimal`; rounding happens only in the ``format_*``
helpers that produce display strings.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext

from drawsync.core.constants import DISPLAY_DECIMAL_PLACES, MOTES_PER_CSPR

logger = logging.getLogger(__name__)

DecimalInput = Decimal | int | str | float | None

_CONTEXT = Context(prec=40, rounding=ROUND_HALF_UP)


def to_decimal(value: DecimalInput) -> Decimal:
    """Coerce *value* to ``Decimal``; ``None`` and ``""`` become zero.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, bool):
        raise TypeError("bool is not a money amount")
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def parse_motes(value: DecimalInput) -> Decimal | None:
    """Parse a backend motes amount, returning ``None`` when unparseable."""
    try:
        return to_decimal(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed motes amount %r", value)
        return None


def motes_to_cspr(value: DecimalInput) -> Decimal:
    """Convert motes to CSPR exactly."""
    with localcontext(_CONTEXT):
        return to_decimal(value) / MOTES_PER_CSPR


def cspr_to_motes(value: DecimalInput) -> int:
    """Convert CSPR to whole motes (fractions of a mote are rounded half up)."""
    with localcontext(_CONTEXT):
        motes = to_decimal(value) * MOTES_PER_CSPR
        return int(motes.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _quantize(value: Decimal, places: int) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    with localcontext(_CONTEXT):
        return value.quantize(exponent, rounding=ROUND_HALF_UP)


def format_decimal(value: DecimalInput, places: int = DISPLAY_DECIMAL_PLACES) -> str:
    """Round to *places* and drop trailing zeros: ``125.50`` → ``"125.5"``."""
    decimal_value = to_decimal(value)
    if not decimal_value.is_finite():
        return str(decimal_value)

    fixed = f"{_quantize(decimal_value, places):f}"
    if "." in fixed:
        fixed = fixed.rstrip("0").rstrip(".")
    if fixed in ("", "-0"):
        return "0"
    return fixed


def format_motes(value: DecimalInput, places: int = DISPLAY_DECIMAL_PLACES) -> str:
    """Format a motes amount as a CSPR display string."""
    return format_decimal(motes_to_cspr(value), places)


def format_with_commas(value: DecimalInput, places: int = DISPLAY_DECIMAL_PLACES) -> str:
    """Format with thousands separators, trimming trailing fraction zeros."""
    decimal_value = to_decimal(value)
    if not decimal_value.is_finite():
        return str(decimal_value)

    fixed = f"{_quantize(decimal_value, places):,f}"
    if "." not in fixed:
        return fixed
    integer_part, fraction_part = fixed.split(".")
    fraction_part = fraction_part.rstrip("0")
    return f"{integer_part}.{fraction_part}" if fraction_part else integer_part


def format_compact(value: DecimalInput, places: int = 1) -> str:
    """Format with a K/M/B suffix for dashboard stats (``1500`` → ``"1.5K"``)."""
    decimal_value = to_decimal(value)
    if decimal_value >= 1_000_000_000:
        divisor, suffix = Decimal(1_000_000_000), "B"
    elif decimal_value >= 1_000_000:
        divisor, suffix = Decimal(1_000_000), "M"
    elif decimal_value > 999:
        divisor, suffix = Decimal(1_000), "K"
    else:
        return format_decimal(decimal_value, places)

    scaled = f"{_quantize(decimal_value / divisor, places):f}"
    if scaled.endswith(".0"):
        scaled = scaled[:-2]
    return scaled + suffix
