from datetime import datetime, timedelta, timezone

import pytest

from trailcache.runtime.sdk.interval import (
    ONE_SECOND,
    Interval,
    SortedIntervals,
    overlaps,
    parse_timestamp,
    sort_intervals,
    to_utc,
    tolerance_from_seconds,
)
from tests.helpers.events import at, iv


def test_naive_bounds_are_treated_as_utc():
    interval = Interval(datetime(2025, 3, 1, 10), datetime(2025, 3, 1, 12))
    assert interval.start.tzinfo is timezone.utc
    assert interval.start == at(10)


def test_aware_bounds_are_converted_to_utc():
    plus_two = timezone(timedelta(hours=2))
    interval = Interval(datetime(2025, 3, 1, 12, tzinfo=plus_two), at(13))
    assert interval.start == at(10)


def test_to_utc_rejects_non_datetime():
    with pytest.raises(TypeError):
        to_utc("2025-03-01")  # type: ignore[arg-type]


def test_parse_timestamp_accepts_z_suffix():
    assert parse_timestamp("2025-03-01T10:00:00Z") == at(10)


def test_adjacent_intervals_overlap_within_one_second():
    a = iv(at(10), at(12))
    b = iv(at(12, 0, 1), at(14))
    assert a.overlaps(b)
    assert b.overlaps(a)
    assert overlaps(a, b)


def test_two_second_gap_is_not_an_overlap():
    a = iv(at(10), at(12))
    b = iv(at(12, 0, 2), at(14))
    assert not a.overlaps(b)
    assert not b.overlaps(a)


def test_zero_tolerance_requires_intersection():
    a = iv(at(10), at(12))
    b = iv(at(12, 0, 1), at(14))
    assert not a.overlaps(b, timedelta(0))
    assert a.overlaps(iv(at(12), at(14)), timedelta(0))


def test_degenerate_interval_is_constructible():
    point = iv(at(10), at(10))
    assert point.is_degenerate
    assert point.duration == timedelta(0)
    assert iv(at(9), at(11)).contains(point)


def test_contains_time_is_closed_and_ignores_missing_timestamps():
    interval = iv(at(10), at(12))
    assert interval.contains_time(at(10))
    assert interval.contains_time(at(12))
    assert not interval.contains_time(at(12, 0, 1))
    assert not interval.contains_time(None)


def test_sort_intervals_orders_by_start_then_end():
    result = sort_intervals([iv(at(12), at(13)), iv(at(10), at(14)), iv(at(10), at(11))])
    assert isinstance(result, SortedIntervals)
    assert list(result) == [iv(at(10), at(11)), iv(at(10), at(14)), iv(at(12), at(13))]


def test_dict_round_trip():
    interval = iv(at(10), at(12, 30))
    assert Interval.from_dict(interval.to_dict()) == interval


def test_tolerance_from_seconds():
    assert tolerance_from_seconds(None) == ONE_SECOND
    assert tolerance_from_seconds(0.5) == timedelta(milliseconds=500)
    with pytest.raises(ValueError):
        tolerance_from_seconds(-1)
