"""Cumulative series derivation for delta batches."""

from __future__ import annotations

import math

from models.messages import IntervalFlowData
from models.records import CumulativeSeries, NormalizedPoint
from services.conversion import (
    DEFAULT_UTC_OFFSET_HOURS,
    format_decimal,
    to_local_time,
    to_volume,
)


class CumulativeSeriesGenerator:
    """Pure component turning one delta batch entry into cumulative points.

    Point ``i`` carries the baseline plus every converted delta up to and
    including ``i``, stamped ``start + i * interval``. Nothing is persisted here;
    the caller stores ``final_baseline`` once the whole message is accepted.
    """

    def __init__(self, utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> None:
        self.utc_offset_hours = utc_offset_hours

    def generate(self, entry: IntervalFlowData, baseline: float) -> CumulativeSeries:
        series = CumulativeSeries(final_baseline=baseline)

        for index, raw in enumerate(entry.interval_consumption):
            volume = to_volume(raw)
            baseline += volume
            if not math.isfinite(baseline):
                raise ValueError("Cumulative volume overflowed while applying the batch.")
            epoch = entry.start_timestamp + index * entry.interval
            series.points.append(
                NormalizedPoint(
                    timestamp=to_local_time(epoch, self.utc_offset_hours),
                    value=format_decimal(baseline),
                )
            )
            series.deltas.append(volume)
            series.last_epoch = epoch

        series.final_baseline = baseline
        return series
