# =============================================================================
# MERGE OBSERVATION LOGS
# =============================================================================
# - Consolidate every observer's log for a date into one chronological record
# - Run partitioning, drift correction, session stitching and provenance in order
# - Export standard, with-metadata and dropped-row tables plus a validation report
# - Designed for deterministic execution: identical input yields identical output


import glob
import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from observation_pipeline.collect_comments import CommentRow
from observation_pipeline.merge_partitions import (
    DRIFT_GAP_THRESHOLD,
    DRIFT_SPACING,
    collect_group_partitions,
    collect_group_rows,
)
from observation_pipeline.normalize_rows import Row, SourceFile, build_source_file, group_files_by_date
from observation_pipeline.pipeline_report import init_report, log_error, log_info
from observation_pipeline.result_slot import LastResultSlot
from observation_pipeline.stitch_sessions import make_continuous_sessions
from observation_pipeline.track_provenance import (
    MergedRow,
    build_dropped_table,
    build_metadata_table,
    build_standard_table,
    find_dropped_rows,
    stamp_merged_rows,
    summarize_retention,
    summarize_source_runs,
)
from observation_pipeline.validate_merged_data import run_merge_validations


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

INPUT_DATA_PATH = os.getenv('OBSERVATION_INPUT_PATH', 'data/raw')
OUTPUT_DATA_PATH = os.getenv('OBSERVATION_OUTPUT_PATH', 'data/merged')
WRITE_DROPPED_ROWS = os.getenv('WRITE_DROPPED_ROWS', 'true').lower() == 'true'

SUPPORTED_EXTENSIONS = ('.csv', '.xls', '.xlsx')

STANDARD_VERSION = 'standard'
METADATA_VERSION = 'withMetadata'
DROPPED_VERSION = 'dropped'

LAST_MERGE_RESULT: LastResultSlot = LastResultSlot()


# ------------------------------------------------------------
# RESULT TYPE
# ------------------------------------------------------------

@dataclass
class DateGroupResult:
    date_key: str
    file_names: List[str]
    merged_rows: List[MergedRow] = field(default_factory=list)
    dropped_rows: List[Row] = field(default_factory=list)
    not_included: List[CommentRow] = field(default_factory=list)
    validations: List[Dict[str, Any]] = field(default_factory=list)
    retention: List[Dict[str, Any]] = field(default_factory=list)
    source_runs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def stats(self) -> Dict[str, int]:
        return {'files': len(self.file_names), 'rows': len(self.merged_rows)}

    def table(self, version: str) -> List[List[Any]]:
        if version == STANDARD_VERSION:

            return build_standard_table(self.merged_rows)

        if version == METADATA_VERSION:

            return build_metadata_table(self.merged_rows)

        if version == DROPPED_VERSION:

            return build_dropped_table(self.dropped_rows)

        raise ValueError(f'Unknown table version: {version}')


# ------------------------------------------------------------
# MERGE
# ------------------------------------------------------------

def merge_date_group(date_key: str,
                     files: Sequence[SourceFile],
                     gap_threshold: timedelta = DRIFT_GAP_THRESHOLD,
                     spacing: timedelta = DRIFT_SPACING,
                     report: Optional[Dict[str, List[str]]] = None
                     ) -> DateGroupResult:
    """
    Merge all files of one date group.

    partitions -> drift correction -> sorted rows -> session stitching
    -> provenance stamping -> dropped rows -> validations
    """

    group = collect_group_partitions(date_key, files, gap_threshold, spacing, report)
    rows = collect_group_rows(group, files, report)
    stitched = make_continuous_sessions(rows)

    removed = len(rows) - len(stitched)
    if removed:
        log_info(f'{date_key}: removed {removed} redundant session marker(s)', report)

    merged_rows = stamp_merged_rows(stitched)
    dropped_rows = find_dropped_rows(files, merged_rows)

    log_info(
        f'{date_key}: merged {len(files)} file(s) into {len(merged_rows)} rows, '
        f'{len(dropped_rows)} row(s) dropped',
        report
        )

    return DateGroupResult(
        date_key=date_key,
        file_names=[source_file.name for source_file in files],
        merged_rows=merged_rows,
        dropped_rows=dropped_rows,
        not_included=group.not_included,
        validations=run_merge_validations(files, merged_rows, dropped_rows, report),
        retention=summarize_retention(files, merged_rows),
        source_runs=summarize_source_runs(merged_rows),
    )


def merge_source_files(files: Sequence[SourceFile],
                       result_slot: Optional[LastResultSlot] = None,
                       gap_threshold: timedelta = DRIFT_GAP_THRESHOLD,
                       spacing: timedelta = DRIFT_SPACING,
                       report: Optional[Dict[str, List[str]]] = None
                       ) -> List[DateGroupResult]:
    """
    Merge every date group, ordered by date key, and store the results in
    the slot (replacing whatever it held).
    """

    groups = group_files_by_date(files, report)

    results = [
        merge_date_group(date_key, groups[date_key], gap_threshold, spacing, report)
        for date_key in sorted(groups)
    ]

    slot = result_slot if result_slot is not None else LAST_MERGE_RESULT
    slot.store(results)

    return results


def fetch_merged_table(version: str,
                       date_key: Optional[str] = None,
                       result_slot: Optional[LastResultSlot] = None
                       ) -> Optional[List[List[Any]]]:
    """
    Table of the last merge for one date (first date when omitted), or None.
    """

    slot = result_slot if result_slot is not None else LAST_MERGE_RESULT
    results = slot.fetch()
    if not results:

        return None

    for result in results:
        if date_key is None or result.date_key == date_key:

            return result.table(version)

    return None


# ------------------------------------------------------------
# INPUT-OUTPUT HELPERS
# ------------------------------------------------------------

def load_raw_rows(path: str,
                  report: Optional[Dict[str, List[str]]] = None
                  ) -> Optional[List[List[Any]]]:
    """
    First sheet (or CSV body) as header-less row lists. None when unreadable.
    """

    try:
        if path.lower().endswith('.csv'):
            df = pd.read_csv(path, header=None)
        else:
            df = pd.read_excel(path, header=None)

        rows = df.values.tolist()
        log_info(f'Loaded {os.path.basename(path)} ({len(rows)} rows)', report)

        return rows

    except Exception as e:
        log_error(f'Failed to load {path}: {e}', report)

        return None


def list_input_files(input_path: str) -> List[str]:
    paths = glob.glob(os.path.join(input_path, '*'))

    return sorted(
        path for path in paths
        if os.path.isfile(path) and path.lower().endswith(SUPPORTED_EXTENSIONS)
        )


def load_source_files(paths: Sequence[str],
                      report: Optional[Dict[str, List[str]]] = None
                      ) -> List[SourceFile]:

    files = []

    for path in paths:
        raw_rows = load_raw_rows(path, report)
        if raw_rows is None:

            continue

        files.append(build_source_file(os.path.basename(path), raw_rows))

    return files


def write_table(table: List[List[Any]],
                output_path: str,
                report: Optional[Dict[str, List[str]]] = None
                ) -> None:

    df = pd.DataFrame(table[1:], columns=table[0])
    df.to_csv(output_path, index=False)
    log_info(f'Wrote {os.path.basename(output_path)} ({len(df)} rows)', report)


def write_group_result(result: DateGroupResult,
                       output_path: str,
                       write_dropped: bool = WRITE_DROPPED_ROWS,
                       report: Optional[Dict[str, List[str]]] = None
                       ) -> None:

    os.makedirs(output_path, exist_ok=True)

    write_table(result.table(STANDARD_VERSION),
                os.path.join(output_path, f'{result.date_key}.csv'), report)
    write_table(result.table(METADATA_VERSION),
                os.path.join(output_path, f'{result.date_key}_with_metadata.csv'), report)

    if write_dropped:
        write_table(result.table(DROPPED_VERSION),
                    os.path.join(output_path, f'{result.date_key}_dropped_rows.csv'), report)


# ------------------------------------------------------------
# MAIN EXECUTION
# ------------------------------------------------------------

def main() -> None:
    report = init_report()

    try:
        paths = list_input_files(INPUT_DATA_PATH)
        if not paths:
            log_error(f'No input files found in {INPUT_DATA_PATH}', report)

        files = load_source_files(paths, report)
        results = merge_source_files(files, report=report)

        for result in results:
            write_group_result(result, OUTPUT_DATA_PATH, report=report)

    except Exception as e:
        log_error(f'Merge failed: {e}', report)

    if report['errors']:
        sys.exit(1)

    sys.exit(0)


if __name__ == '__main__':
    main()


# =============================================================================
# END OF SCRIPT
# =============================================================================
