"""Tests for session partitioning and marker predicates."""

from __future__ import annotations

from conftest import make_file
from observation_pipeline.partition_sessions import (
    find_session_bounds,
    find_session_partitions,
    is_comment,
    is_lost_tracking,
    is_session_end,
    is_session_start,
    starting_partition,
)
from observation_pipeline.pipeline_report import init_report


def test_marker_predicates() -> None:
    assert is_session_start("F: Focal A")
    assert not is_session_start("f: focal a")
    assert is_session_end("END")
    assert is_session_end("end of follow")
    assert is_lost_tracking("C lost focal")
    assert is_lost_tracking("c Lost Focal briefly")
    assert is_comment("C: rain")
    assert is_comment("C lost focal")
    assert not is_comment("c: lowercase")


def test_single_pair_yields_one_partition() -> None:
    source_file = make_file("2024.01.01_a.csv", [
        (0, "meta"), (1, "x"), (2, "F: A"), (3, "eat"), (4, "rest"), (5, "END"), (6, "after"),
    ])

    partitions = find_session_partitions(source_file)

    assert len(partitions) == 1
    assert (partitions[0].start_index, partitions[0].end_index) == (2, 5)
    assert partitions[0].date_key == "2024.01.01"
    assert len(partitions[0]) == 4


def test_start_inside_open_partition_is_not_reused() -> None:
    source_file = make_file("2024.01.01_a.csv", [
        (0, "F: A"), (1, "F: B"), (2, "END"), (3, "END"), (4, "F: C"), (5, "END"),
    ])

    assert find_session_bounds(source_file.rows) == [(0, 2), (4, 5)]


def test_partitions_are_ordered_and_disjoint() -> None:
    source_file = make_file("2024.01.01_a.csv", [
        (0, "F: A"), (1, "END"), (2, "C: gap"), (3, "F: B"), (4, "x"), (5, "end"),
    ])

    bounds = find_session_bounds(source_file.rows)

    assert bounds == [(0, 1), (3, 5)]
    for (_, previous_end), (next_start, _) in zip(bounds, bounds[1:]):
        assert previous_end < next_start


def test_start_without_end_is_dropped_and_logged() -> None:
    report = init_report()
    source_file = make_file("2024.01.01_a.csv", [
        (0, "F: A"), (1, "END"), (2, "F: B"), (3, "x"),
    ])

    partitions = find_session_partitions(source_file, report)

    assert [(p.start_index, p.end_index) for p in partitions] == [(0, 1)]
    assert any("without a closing end marker" in warning for warning in report["warnings"])


def test_end_before_any_start_is_ignored() -> None:
    source_file = make_file("2024.01.01_a.csv", [(0, "END"), (1, "F: A"), (2, "END")])

    assert find_session_bounds(source_file.rows) == [(1, 2)]


def test_starting_partition_clamps_short_files() -> None:
    long_file = make_file("2024.01.01_a.csv", [(second, "m") for second in range(8)])
    short_file = make_file("2024.01.01_b.csv", [(0, "m"), (1, "m")])
    empty_file = make_file("2024.01.01_c.csv", [])

    assert (starting_partition(long_file).start_index, starting_partition(long_file).end_index) == (0, 4)
    assert starting_partition(short_file).end_index == 1
    assert starting_partition(empty_file) is None
