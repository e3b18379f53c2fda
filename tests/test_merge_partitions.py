"""Tests for cross-file partition merging and clock-drift correction."""

from __future__ import annotations

from datetime import timedelta

from conftest import BASE_TIME, header_entries, make_file, make_row
from observation_pipeline.merge_partitions import (
    collect_group_partitions,
    collect_group_rows,
    correct_clock_drift,
    sort_rows,
)
from observation_pipeline.partition_sessions import Partition
from observation_pipeline.pipeline_report import init_report


def partition(start_seconds: float, end_seconds: float, source_file: str = "a", start_index: int = 0) -> Partition:
    return Partition(
        start_index=start_index,
        end_index=start_index + 1,
        start_time=BASE_TIME + timedelta(seconds=start_seconds),
        end_time=BASE_TIME + timedelta(seconds=end_seconds),
        source_file=source_file,
        date_key="2024.01.01",
    )


def test_short_gap_is_closed_to_spacing() -> None:
    first = partition(0, 100)
    second = partition(300, 400, source_file="b")

    corrected = correct_clock_drift([first, second], timedelta(seconds=310), timedelta(seconds=1))

    assert corrected[0] == first
    assert corrected[1].start_time - corrected[0].end_time == timedelta(seconds=1)
    assert corrected[1].end_time - corrected[1].start_time == timedelta(seconds=100)
    assert corrected[1].time_shift == timedelta(seconds=-199)


def test_long_gap_is_left_alone() -> None:
    first = partition(0, 100)
    second = partition(500, 600, source_file="b")

    corrected = correct_clock_drift([first, second], timedelta(seconds=310), timedelta(seconds=1))

    assert corrected == [first, second]


def test_overlapping_partition_is_pushed_after_predecessor() -> None:
    first = partition(0, 100)
    second = partition(50, 120, source_file="b")

    corrected = correct_clock_drift([first, second], timedelta(seconds=310), timedelta(seconds=1))

    assert corrected[1].start_time == BASE_TIME + timedelta(seconds=101)
    assert corrected[1].time_shift == timedelta(seconds=51)


def test_corrections_compound_against_corrected_predecessor() -> None:
    first = partition(0, 100)
    second = partition(200, 300, source_file="b")
    third = partition(400, 500, source_file="c")

    corrected = correct_clock_drift([first, second, third], timedelta(seconds=310), timedelta(seconds=1))

    # second: 101..201; third measured against 201, gap 199 -> starts at 202
    assert corrected[1].end_time == BASE_TIME + timedelta(seconds=201)
    assert corrected[2].start_time == BASE_TIME + timedelta(seconds=202)


def test_unparsed_start_is_not_corrected() -> None:
    first = partition(0, 100)
    broken = Partition(2, 3, None, None, "b", "2024.01.01")

    corrected = correct_clock_drift([first, broken])

    assert corrected[1] is broken


def test_anchor_comes_from_first_file_only() -> None:
    files = [
        make_file("2024.01.01_a.csv", header_entries(0) + [(10, "F: A"), (20, "END")]),
        make_file("2024.01.01_b.csv", header_entries(1000) + [(1010, "F: B"), (1020, "END")]),
    ]

    group = collect_group_partitions("2024.01.01", files)

    assert group.anchor is not None
    assert group.anchor.source_file == "2024.01.01_a.csv"
    assert (group.anchor.start_index, group.anchor.end_index) == (0, 4)
    assert [p.source_file for p in group.sessions] == ["2024.01.01_a.csv", "2024.01.01_b.csv"]


def test_group_rows_carry_corrected_timestamps() -> None:
    files = [
        make_file("2024.01.01_a.csv", header_entries(0) + [(10, "F: A"), (20, "END")]),
        make_file("2024.01.01_b.csv", header_entries(0) + [(120, "F: B"), (130, "x"), (140, "END")]),
    ]
    group = collect_group_partitions("2024.01.01", files)

    rows = collect_group_rows(group, files)
    session_b = [row for row in rows if row.source_file == "2024.01.01_b.csv"]

    assert [row.payload for row in session_b] == ["F: B", "x", "END"]
    assert session_b[0].timestamp == BASE_TIME + timedelta(seconds=21)
    assert session_b[0].timestamp_raw == "01/01/2024 9:00:21"
    assert session_b[-1].timestamp == BASE_TIME + timedelta(seconds=41)


def test_group_rows_claim_each_source_row_once() -> None:
    report = init_report()
    # Session starts inside the opening metadata block, so rows 3-4 are claimed twice
    files = [make_file("2024.01.01_a.csv", [(0, "m"), (1, "m"), (2, "m"), (3, "F: A"), (4, "x"), (5, "END")])]
    group = collect_group_partitions("2024.01.01", files, report=report)

    rows = collect_group_rows(group, files, report)

    assert [row.original_index for row in rows] == [0, 1, 2, 3, 4, 5]
    assert any("claimed by more than one zone" in warning for warning in report["warnings"])


def test_sort_rows_breaks_ties_by_file_then_index() -> None:
    first = make_file("a", [(0, "x"), (0, "y")])
    second = make_file("b", [(0, "z")])
    file_order = {"a": 0, "b": 1}

    ordered = sort_rows([second.rows[0], first.rows[1], first.rows[0]], file_order)

    assert [row.payload for row in ordered] == ["x", "y", "z"]


def test_sort_rows_puts_unparsed_last() -> None:
    source_file = make_file("a", [(0, "x")])
    broken = make_row("broken", None, source_file="a", index=5)

    ordered = sort_rows([broken, source_file.rows[0]], {"a": 0})

    assert [row.payload for row in ordered] == ["x", "broken"]
