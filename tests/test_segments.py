from __future__ import annotations

from pathlib import Path

import pytest

from mamflow.ingest.segments import TimeRange, build_chunks, expected_segment_count, segment_time_ranges


def test_last_window_is_clipped_to_source_duration():
    ranges = segment_time_ranges(3, 125.0, 60)

    assert [rng.to_timerange() for rng in ranges] == ["[0:0_60:0)", "[60:0_120:0)", "[120:0_125:0)"]
    assert ranges[-1].end_s == pytest.approx(125.0)


def test_exact_multiple_keeps_full_windows():
    ranges = segment_time_ranges(2, 120.0, 60)

    assert [rng.to_timerange() for rng in ranges] == ["[0:0_60:0)", "[60:0_120:0)"]


def test_unknown_duration_keeps_nominal_windows():
    ranges = segment_time_ranges(2, 0.0, 10)

    assert [rng.to_timerange() for rng in ranges] == ["[0:0_10:0)", "[10:0_20:0)"]


def test_subsecond_timestamps_use_nanoseconds():
    assert TimeRange.from_seconds(10, 10.5).to_timerange() == "[10:0_10:500000000)"


@pytest.mark.parametrize(
    "duration, segment, expected",
    [(125.0, 60, 3), (120.0, 60, 2), (0.5, 10, 1), (0.0, 10, 0)],
)
def test_expected_segment_count(duration, segment, expected):
    assert expected_segment_count(duration, segment) == expected


@pytest.mark.parametrize("count", [2, 4])
def test_count_must_match_known_duration(count):
    with pytest.raises(ValueError, match="expected 3"):
        segment_time_ranges(count, 125.0, 60)


def test_exact_multiple_rejects_trailing_window():
    with pytest.raises(ValueError):
        segment_time_ranges(3, 120.0, 60)


def test_build_chunks_pairs_files_with_windows():
    paths = [Path(f"segment_{index:04d}.ts") for index in range(3)]

    chunks = build_chunks(paths, 125.0, 60)

    assert [chunk.index for chunk in chunks] == [0, 1, 2]
    assert chunks[2].path.name == "segment_0002.ts"
    assert chunks[2].time_range == TimeRange.from_seconds(120, 125)


@pytest.mark.parametrize("start, end", [(-1, 10), (10, 10), (10, 5)])
def test_time_range_rejects_invalid_bounds(start, end):
    with pytest.raises(ValueError):
        TimeRange(start, end)


def test_non_positive_segment_duration_is_rejected():
    with pytest.raises(ValueError):
        segment_time_ranges(1, 10.0, 0)
