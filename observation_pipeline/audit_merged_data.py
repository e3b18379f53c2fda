# =============================================================================
# AUDIT MERGED OBSERVATION DATA
# =============================================================================
# - Reconcile original observer files against a merged record, block by block
# - Compare an old and a new version of one record row by row
# - Export row classifications for review in spreadsheets or diff renderers


import os
import sys
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from observation_pipeline.align_blocks import (
    BLOCK_GAP,
    Reconciliation,
    group_rows_by_status,
    reconcile_files,
    summarize_reconciliation,
)
from observation_pipeline.compare_records import (
    MATCH_FALLBACK_WINDOW,
    MATCH_WINDOW,
    MatchResult,
    compare_rows,
    summarize_matches,
)
from observation_pipeline.merge_observation_logs import list_input_files, load_raw_rows, write_table
from observation_pipeline.normalize_rows import SourceFile, build_source_file
from observation_pipeline.pipeline_report import init_report, log_error, log_info, log_warning
from observation_pipeline.track_provenance import STANDARD_HEADER


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

AUDIT_ORIGINAL_PATH = os.getenv('AUDIT_ORIGINAL_PATH', 'data/raw')
AUDIT_MERGED_FILE = os.getenv('AUDIT_MERGED_FILE', '')
AUDIT_OLD_FILE = os.getenv('AUDIT_OLD_FILE', '')
AUDIT_NEW_FILE = os.getenv('AUDIT_NEW_FILE', '')
AUDIT_OUTPUT_PATH = os.getenv('AUDIT_OUTPUT_PATH', 'data/audit')

RECONCILIATION_HEADER = [
    'Source File', 'Original Row', 'Status', 'Merged Row', 'Subject',
    'Original Timestamp', 'New Timestamp', 'Timestamp Changed', 'Behavior',
]
EXCLUDED_HEADER = ['Source File', 'Original Row', 'Subject', 'Timestamp', 'Behavior']
COMPARISON_HEADER = [
    'Status', 'Old Row', 'New Row', 'Old Subject', 'New Subject',
    'Old Timestamp', 'New Timestamp', 'Old Behavior', 'New Behavior',
]


# ------------------------------------------------------------
# HEADER HANDLING
# ------------------------------------------------------------

def is_header_row(raw_row: Sequence[Any]) -> bool:
    """
    True for an exported [Actor, DateTime, Data, ...] header row.
    """

    cells = [str(cell).strip().lower() for cell in list(raw_row)[:len(STANDARD_HEADER)]]

    return cells == [column.lower() for column in STANDARD_HEADER]


def strip_header(raw_rows: List[List[Any]]) -> List[List[Any]]:
    if raw_rows and is_header_row(raw_rows[0]):

        return raw_rows[1:]

    return raw_rows


# ------------------------------------------------------------
# RECONCILIATION
# ------------------------------------------------------------

def run_reconciliation(original_files: Sequence[SourceFile],
                       merged_file: SourceFile,
                       gap: timedelta = BLOCK_GAP,
                       report: Optional[Dict[str, List[str]]] = None
                       ) -> Reconciliation:

    result = reconcile_files(original_files, merged_file, gap)

    for summary in summarize_reconciliation(result):
        log_info(
            f"{summary['file_name']}: {summary['kept_rows']} kept, "
            f"{summary['excluded_rows']} excluded of {summary['total_rows']} rows "
            f"({summary['timestamp_modifications']} timestamp change(s))",
            report
            )

        runs = group_rows_by_status(result.row_diffs[summary['file_name']])
        excluded_runs = [run for run in runs if run['status'] == 'excluded']
        if excluded_runs:
            spans = ', '.join(f"{run['start_row']}-{run['end_row']}" for run in excluded_runs[:10])
            log_info(f"{summary['file_name']}: excluded row span(s) {spans}", report)

    added = result.added_rows
    if added:
        log_warning(f'{merged_file.name}: {len(added)} row(s) with no original counterpart', report)

    return result


def build_reconciliation_table(result: Reconciliation) -> List[List[Any]]:

    table: List[List[Any]] = [RECONCILIATION_HEADER]

    for file_name, diffs in result.row_diffs.items():
        for diff in diffs:
            merged_row = diff.merged_row
            table.append([
                file_name,
                diff.row.original_index,
                diff.status,
                merged_row.original_index + 1 if merged_row is not None else '',
                diff.row.actor,
                diff.row.timestamp_raw,
                merged_row.timestamp_raw if merged_row is not None else '',
                'Yes' if diff.timestamp_modified else 'No',
                diff.row.payload,
            ])

    return table


def build_excluded_table(result: Reconciliation) -> List[List[Any]]:

    return [EXCLUDED_HEADER] + [
        [file_name, diff.row.original_index, diff.row.actor, diff.row.timestamp_raw, diff.row.payload]
        for file_name, diffs in result.row_diffs.items()
        for diff in diffs
        if diff.status == 'excluded'
    ]


# ------------------------------------------------------------
# COMPARISON
# ------------------------------------------------------------

def run_comparison(old_file: SourceFile,
                   new_file: SourceFile,
                   window: timedelta = MATCH_WINDOW,
                   fallback_window: timedelta = MATCH_FALLBACK_WINDOW,
                   report: Optional[Dict[str, List[str]]] = None
                   ) -> List[MatchResult]:

    unparsed = sum(1 for row in [*old_file.rows, *new_file.rows] if row.timestamp is None)
    if unparsed:
        log_warning(f'{unparsed} row(s) with an unparseable timestamp cannot be matched', report)

    results = compare_rows(old_file.rows, new_file.rows, window, fallback_window)
    counts = summarize_matches(results)

    log_info(
        f'{old_file.name} -> {new_file.name}: '
        + ', '.join(f'{count} {status}' for status, count in counts.items()),
        report
        )

    return results


def build_comparison_table(results: Sequence[MatchResult],
                           old_file: SourceFile,
                           new_file: SourceFile
                           ) -> List[List[Any]]:

    table: List[List[Any]] = [COMPARISON_HEADER]

    for result in results:
        old_row = old_file.rows[result.old_index] if result.old_index is not None else None
        new_row = new_file.rows[result.new_index] if result.new_index is not None else None

        table.append([
            result.status,
            result.old_index if result.old_index is not None else '',
            result.new_index if result.new_index is not None else '',
            old_row.actor if old_row else '',
            new_row.actor if new_row else '',
            old_row.timestamp_raw if old_row else '',
            new_row.timestamp_raw if new_row else '',
            old_row.payload if old_row else '',
            new_row.payload if new_row else '',
        ])

    return table


# ------------------------------------------------------------
# INPUT-OUTPUT HELPERS
# ------------------------------------------------------------

def load_audit_file(path: str,
                    report: Optional[Dict[str, List[str]]] = None
                    ) -> Optional[SourceFile]:

    raw_rows = load_raw_rows(path, report)
    if raw_rows is None:

        return None

    return build_source_file(os.path.basename(path), strip_header(raw_rows))


def audit_reconciliation(report: Dict[str, List[str]]) -> None:
    merged_file = load_audit_file(AUDIT_MERGED_FILE, report)
    if merged_file is None:

        return

    merged_path = os.path.abspath(AUDIT_MERGED_FILE)
    original_files = []

    for path in list_input_files(AUDIT_ORIGINAL_PATH):
        if os.path.abspath(path) == merged_path:

            continue

        original = load_audit_file(path, report)
        if original is not None:
            original_files.append(original)

    if not original_files:
        log_error(f'No original files found in {AUDIT_ORIGINAL_PATH}', report)

        return

    result = run_reconciliation(original_files, merged_file, report=report)
    stem = os.path.splitext(merged_file.name)[0]

    write_table(build_reconciliation_table(result),
                os.path.join(AUDIT_OUTPUT_PATH, f'{stem}_reconciliation.csv'), report)
    write_table(build_excluded_table(result),
                os.path.join(AUDIT_OUTPUT_PATH, f'{stem}_excluded_rows.csv'), report)


def audit_comparison(report: Dict[str, List[str]]) -> None:
    old_file = load_audit_file(AUDIT_OLD_FILE, report)
    new_file = load_audit_file(AUDIT_NEW_FILE, report)
    if old_file is None or new_file is None:

        return

    results = run_comparison(old_file, new_file, report=report)
    stem = os.path.splitext(new_file.name)[0]

    write_table(build_comparison_table(results, old_file, new_file),
                os.path.join(AUDIT_OUTPUT_PATH, f'{stem}_comparison.csv'), report)


# ------------------------------------------------------------
# MAIN EXECUTION
# ------------------------------------------------------------

def main() -> None:
    report = init_report()

    try:
        if not AUDIT_MERGED_FILE and not (AUDIT_OLD_FILE and AUDIT_NEW_FILE):
            log_error('Set AUDIT_MERGED_FILE and/or AUDIT_OLD_FILE with AUDIT_NEW_FILE', report)

        os.makedirs(AUDIT_OUTPUT_PATH, exist_ok=True)

        if AUDIT_MERGED_FILE:
            audit_reconciliation(report)

        if AUDIT_OLD_FILE and AUDIT_NEW_FILE:
            audit_comparison(report)

    except Exception as e:
        log_error(f'Audit failed: {e}', report)

    if report['errors']:
        sys.exit(1)

    sys.exit(0)


if __name__ == '__main__':
    main()


# =============================================================================
# END OF SCRIPT
# =============================================================================
