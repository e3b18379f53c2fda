"""Tests for merged-record validation checks."""

from __future__ import annotations

from conftest import make_file
from observation_pipeline.pipeline_report import init_report
from observation_pipeline.track_provenance import find_dropped_rows, stamp_merged_rows
from observation_pipeline.validate_merged_data import (
    MARKER_BALANCE_CHECK,
    NO_SECOND_CHECK,
    POINT_SAMPLE_CHECK,
    ROUND_TRIP_CHECK,
    check_consecutive_no_second_timestamps,
    check_marker_balance,
    check_point_sample_intervals,
    check_round_trip_integrity,
    run_merge_validations,
)


def test_marker_balance_flags_unbalanced_files() -> None:
    balanced = make_file("2024.01.01_a.csv", [(0, "F: A"), (1, "end")])
    unbalanced = make_file("2024.01.01_b.csv", [(0, "F: A"), (1, "F: B"), (2, "END")])

    result = check_marker_balance([balanced, unbalanced])

    assert result["check"] == MARKER_BALANCE_CHECK
    assert result["passed"] is False
    assert len(result["issues"]) == 1
    assert result["issues"][0].startswith("2024.01.01_b.csv: Mismatch - Found 2")


def test_three_whole_minute_rows_in_a_row_are_flagged() -> None:
    rows = make_file("2024.01.01_a.csv", [
        (0, "a"), (60, "b"), (120, "c"), (125, "d"), (180, "e"), (240, "f"),
    ]).rows

    result = check_consecutive_no_second_timestamps(stamp_merged_rows(rows))

    assert result["check"] == NO_SECOND_CHECK
    assert result["issues"] == [
        "Rows 1-3: Found 3 consecutive timestamps with no seconds (xx:xx:00)",
    ]


def test_two_whole_minute_rows_pass() -> None:
    rows = make_file("2024.01.01_a.csv", [(0, "a"), (60, "b"), (61, "c")]).rows

    assert check_consecutive_no_second_timestamps(stamp_merged_rows(rows))["passed"] is True


def test_point_sample_intervals_within_window_pass() -> None:
    rows = make_file("2024.01.01_a.csv", [
        (0, "X 1"), (30, "other"), (150, "Y 2"), (300, "X 3"),
    ]).rows

    result = check_point_sample_intervals(stamp_merged_rows(rows))

    assert result["check"] == POINT_SAMPLE_CHECK
    assert result["passed"] is True
    assert result["warnings"] == []


def test_point_sample_intervals_out_of_window_are_issues() -> None:
    rows = make_file("2024.01.01_a.csv", [(0, "X 1"), (60, "X 2"), (400, "Y 3")]).rows

    result = check_point_sample_intervals(stamp_merged_rows(rows))

    assert result["passed"] is False
    assert result["issues"][0].startswith("Rows 1-2: Interval too short (1.00 min)")
    assert result["issues"][1].startswith("Rows 2-3: Interval too long (5.67 min)")


def test_point_sample_average_drift_is_a_warning() -> None:
    rows = make_file("2024.01.01_a.csv", [(0, "X 1"), (90, "X 2"), (180, "X 3")]).rows

    result = check_point_sample_intervals(stamp_merged_rows(rows))

    assert len(result["issues"]) == 2
    assert len(result["warnings"]) == 1
    assert "Average interval between X/Y lines is 1.50 min" in result["warnings"][0]


def test_round_trip_integrity_passes_for_complement() -> None:
    source_file = make_file("2024.01.01_a.csv", [(0, "a"), (1, "b"), (2, "c")])
    merged = stamp_merged_rows(source_file.rows[:2])

    result = check_round_trip_integrity([source_file], merged, find_dropped_rows([source_file], merged))

    assert result["check"] == ROUND_TRIP_CHECK
    assert result["passed"] is True


def test_round_trip_integrity_flags_missing_and_overlap() -> None:
    source_file = make_file("2024.01.01_a.csv", [(0, "a"), (1, "b"), (2, "c")])
    merged = stamp_merged_rows(source_file.rows[:1])

    missing = check_round_trip_integrity([source_file], merged, source_file.rows[1:2])
    overlap = check_round_trip_integrity([source_file], merged, source_file.rows)

    assert any("neither kept nor dropped" in issue for issue in missing["issues"])
    assert any("both kept and dropped" in issue for issue in overlap["issues"])


def test_round_trip_integrity_stops_at_duplicates() -> None:
    source_file = make_file("2024.01.01_a.csv", [(0, "a"), (1, "b")])
    merged = stamp_merged_rows([source_file.rows[0], source_file.rows[0], source_file.rows[1]])

    result = check_round_trip_integrity([source_file], merged, [])

    assert result["passed"] is False
    assert len(result["issues"]) == 1
    assert "more than once" in result["issues"][0]


def test_run_merge_validations_logs_every_check() -> None:
    report = init_report()
    source_file = make_file("2024.01.01_a.csv", [(0, "F: A"), (1, "END")])
    merged = stamp_merged_rows(source_file.rows)

    results = run_merge_validations([source_file], merged, [], report)

    assert [result["check"] for result in results] == [
        MARKER_BALANCE_CHECK, NO_SECOND_CHECK, POINT_SAMPLE_CHECK, ROUND_TRIP_CHECK,
    ]
    assert report["errors"] == []
    assert len(report["info"]) == 4
