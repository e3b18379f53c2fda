"""Tests for provenance stamping, dropped rows and merge summaries."""

from __future__ import annotations

from conftest import make_file
from observation_pipeline.track_provenance import (
    DROPPED_HEADER,
    METADATA_HEADER,
    STANDARD_HEADER,
    build_dropped_table,
    build_metadata_table,
    build_standard_table,
    find_dropped_rows,
    find_duplicate_provenance,
    stamp_merged_rows,
    summarize_retention,
    summarize_source_runs,
)


def sample_files():
    first = make_file("2024.01.01_a.csv", [(0, "F: A"), (1, "x"), (2, "END"), (3, "junk")])
    second = make_file("2024.01.01_b.csv", [(0, "meta"), (5, "F: B"), (6, "END")])
    return [first, second]


def test_original_row_number_is_one_based() -> None:
    first, _ = sample_files()

    merged = stamp_merged_rows(first.rows[1:3])

    assert [row.original_index for row in merged] == [1, 2]
    assert [row.original_row_number for row in merged] == [2, 3]
    assert merged[0].provenance == ("2024.01.01_a.csv", 1)


def test_kept_and_dropped_partition_every_file() -> None:
    files = sample_files()
    kept_rows = [files[0].rows[0], files[0].rows[2], files[1].rows[1], files[1].rows[2]]

    merged = stamp_merged_rows(kept_rows)
    dropped = find_dropped_rows(files, merged)

    assert [(row.source_file, row.original_index) for row in dropped] == [
        ("2024.01.01_a.csv", 1),
        ("2024.01.01_a.csv", 3),
        ("2024.01.01_b.csv", 0),
    ]
    for source_file in files:
        kept = {row.original_index for row in merged if row.source_file == source_file.name}
        gone = {row.original_index for row in dropped if row.source_file == source_file.name}
        assert kept | gone == {row.original_index for row in source_file.rows}
        assert kept & gone == set()


def test_duplicate_provenance_is_reported() -> None:
    first, _ = sample_files()

    merged = stamp_merged_rows([first.rows[0], first.rows[1], first.rows[0]])

    assert find_duplicate_provenance(merged) == [("2024.01.01_a.csv", 0)]


def test_retention_summary_counts_and_indices() -> None:
    files = sample_files()
    merged = stamp_merged_rows([files[0].rows[0], files[1].rows[1]])

    summary = summarize_retention(files, merged)

    assert summary[0]["file_index"] == 0
    assert summary[0]["total_rows"] == 4
    assert summary[0]["kept_indices"] == [0]
    assert summary[0]["dropped_indices"] == [1, 2, 3]
    assert summary[1]["kept_rows"] == 1
    assert summary[1]["dropped_rows"] == 2


def test_source_runs_follow_merged_order() -> None:
    first, second = sample_files()
    merged = stamp_merged_rows([first.rows[0], first.rows[1], second.rows[1], first.rows[2]])

    runs = summarize_source_runs(merged)

    assert [(run["source_file"], run["start_row_merged"], run["end_row_merged"]) for run in runs] == [
        ("2024.01.01_a.csv", 1, 2),
        ("2024.01.01_b.csv", 3, 3),
        ("2024.01.01_a.csv", 4, 4),
    ]
    assert runs[0]["row_count"] == 2
    assert runs[0]["end_timestamp"] == first.rows[1].timestamp_raw


def test_output_tables_have_headers_and_metadata() -> None:
    first, _ = sample_files()
    merged = stamp_merged_rows(first.rows[:1])
    dropped = first.rows[1:2]

    assert build_standard_table(merged) == [STANDARD_HEADER, ["Observer", "01/01/2024 9:00:00", "F: A"]]
    assert build_metadata_table(merged)[0] == METADATA_HEADER
    assert build_metadata_table(merged)[1][3:] == ["2024.01.01_a.csv", 1]
    assert build_dropped_table(dropped)[0] == DROPPED_HEADER
    assert build_dropped_table(dropped)[1][3:] == ["2024.01.01_a.csv", 1]
