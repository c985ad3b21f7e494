"""Unit and time conversions for raw meter values."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

# One raw unit is 0.01 of the output volume scale.
VOLUME_UNIT = 0.01
DEFAULT_UTC_OFFSET_HOURS = 8

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_volume(raw_units: float) -> float:
    """Convert raw sensor units to cubic meters. Zero and negative values are valid."""
    volume = raw_units / VOLUME_UNIT
    if not math.isfinite(volume):
        raise ValueError(f"Raw value {raw_units!r} overflows the volume scale.")
    return volume


def to_utc(epoch_seconds: int) -> datetime:
    """Interpret ``epoch_seconds`` as UTC seconds since 1970-01-01."""
    try:
        return _EPOCH + timedelta(seconds=epoch_seconds)
    except OverflowError as exc:
        raise ValueError(f"Epoch {epoch_seconds} is outside the supported date range.") from exc


def to_local_time(
    epoch_seconds: int, offset_hours: int = DEFAULT_UTC_OFFSET_HOURS
) -> str:
    """Render UTC epoch seconds as fixed-offset local time ``YYYY-MM-DD HH:MM:SS``.

    Negative epochs yield dates before 1970. Values whose local date falls
    outside years 1..9999 raise ``ValueError``.
    """
    utc = to_utc(epoch_seconds)
    try:
        local = utc.astimezone(timezone(timedelta(hours=offset_hours)))
    except OverflowError as exc:
        raise ValueError(f"Epoch {epoch_seconds} is outside the supported date range.") from exc
    return local.replace(tzinfo=None).isoformat(sep=" ", timespec="seconds")


def format_decimal(value: float) -> str:
    """Fixed 3 fractional digits, ``.`` separator, no grouping or exponent."""
    if not math.isfinite(value):
        raise ValueError(f"Value {value!r} cannot be rendered as a fixed-point decimal.")
    text = f"{value:.3f}"
    if text == "-0.000":
        return "0.000"
    return text
