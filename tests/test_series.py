"""Unit tests for the cumulative series generator."""

from __future__ import annotations

import pytest

from models.messages import IntervalFlowData
from services.series import CumulativeSeriesGenerator


def _entry(consumption, start: int = 0, interval: int = 3600) -> IntervalFlowData:
    """Helper to build deterministic batch entries."""

    return IntervalFlowData.model_validate(
        {
            "startTimeStamp": start,
            "interval": interval,
            "port": 1,
            "intervalConsumption": consumption,
        }
    )


def test_generate_accumulates_from_baseline() -> None:
    generator = CumulativeSeriesGenerator()

    series = generator.generate(_entry([1, 2, 3]), baseline=10.0)

    assert [point.value for point in series.points] == ["110.000", "310.000", "610.000"]
    assert [point.timestamp for point in series.points] == [
        "1970-01-01 08:00:00",
        "1970-01-01 09:00:00",
        "1970-01-01 10:00:00",
    ]
    assert series.deltas == pytest.approx([100.0, 200.0, 300.0])
    assert series.final_baseline == pytest.approx(610.0)
    assert series.last_epoch == 7200


def test_generate_last_point_matches_final_baseline() -> None:
    generator = CumulativeSeriesGenerator()

    series = generator.generate(_entry([7, 13, 1, 0, 22]), baseline=0.3)

    assert series.points[-1].value == f"{series.final_baseline:.3f}"


def test_generate_empty_batch_yields_nothing() -> None:
    generator = CumulativeSeriesGenerator()

    series = generator.generate(_entry([]), baseline=42.0)

    assert series.points == []
    assert series.deltas == []
    assert series.final_baseline == 42.0
    assert series.last_epoch is None


def test_generate_zero_interval_repeats_timestamp() -> None:
    generator = CumulativeSeriesGenerator()

    series = generator.generate(_entry([1, 1, 1], start=60, interval=0), baseline=0.0)

    assert {point.timestamp for point in series.points} == {"1970-01-01 08:01:00"}
    assert [point.value for point in series.points] == ["100.000", "200.000", "300.000"]


def test_generate_allows_negative_deltas() -> None:
    generator = CumulativeSeriesGenerator()

    series = generator.generate(_entry([5, -2]), baseline=0.0)

    assert [point.value for point in series.points] == ["500.000", "300.000"]


def test_generate_uses_configured_offset() -> None:
    generator = CumulativeSeriesGenerator(utc_offset_hours=0)

    series = generator.generate(_entry([1], start=0), baseline=0.0)

    assert series.points[0].timestamp == "1970-01-01 00:00:00"


def test_generate_rejects_out_of_range_timestamps() -> None:
    generator = CumulativeSeriesGenerator()

    with pytest.raises(ValueError):
        generator.generate(_entry([1, 1], start=10**12), baseline=0.0)
