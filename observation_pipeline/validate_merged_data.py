# =============================================================================
# VALIDATE MERGED OBSERVATION DATA
# =============================================================================
# - Check source files for structural marker integrity before merging
# - Check the merged record for timestamp resolution and point-sample cadence
# - Prove round-trip completeness: every source row is either kept or dropped


from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from observation_pipeline.normalize_rows import Row, SourceFile
from observation_pipeline.partition_sessions import SESSION_END_PREFIX, SESSION_START_PREFIX
from observation_pipeline.pipeline_report import add_issue, add_warning, init_check, log_check
from observation_pipeline.track_provenance import MergedRow, find_duplicate_provenance


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

NO_SECOND_PATTERN = r':\d{2}:00$'
NO_SECOND_RUN_LENGTH = 3

POINT_SAMPLE_PREFIXES = ('X', 'Y')
POINT_SAMPLE_MIN_MINUTES = 2.0
POINT_SAMPLE_MAX_MINUTES = 3.0
POINT_SAMPLE_EXPECTED_MINUTES = 2.5
POINT_SAMPLE_AVERAGE_TOLERANCE = 0.5

MARKER_BALANCE_CHECK = 'F: and END Line Balance'
NO_SECOND_CHECK = 'Consecutive No-Second Timestamps'
POINT_SAMPLE_CHECK = 'Point Sample Intervals'
ROUND_TRIP_CHECK = 'Round-Trip Integrity'


# ------------------------------------------------------------
# FRAME HELPERS
# ------------------------------------------------------------

def rows_to_frame(rows: Sequence[Any]) -> pd.DataFrame:
    """
    One record per row: actor, datetime (as rendered), data, timestamp (datetime64).
    """

    frame = pd.DataFrame({
        'actor': [row.actor for row in rows],
        'datetime': [row.timestamp_raw for row in rows],
        'data': [row.payload for row in rows],
    }, dtype=object)
    frame['timestamp'] = pd.to_datetime(
        pd.Series([row.timestamp for row in rows], dtype=object),
        errors='coerce'
        )

    return frame


# ------------------------------------------------------------
# SOURCE FILE VALIDATIONS
# ------------------------------------------------------------

def check_marker_balance(files: Sequence[SourceFile]) -> Dict[str, Any]:
    """
    Every source file should hold as many session starts as session ends.
    """

    result = init_check(MARKER_BALANCE_CHECK)

    for source_file in files:
        payloads = pd.Series([row.payload for row in source_file.rows], dtype=object).astype(str)

        start_count = int(payloads.str.startswith(SESSION_START_PREFIX).sum())
        end_count = int(payloads.str.lower().str.startswith(SESSION_END_PREFIX).sum())

        if start_count != end_count:
            add_issue(
                result,
                f'{source_file.name}: Mismatch - Found {start_count} "F:" lines but '
                f'{end_count} "END" lines. This may indicate a data issue.'
                )

    return result


# ------------------------------------------------------------
# MERGED RECORD VALIDATIONS
# ------------------------------------------------------------

def check_consecutive_no_second_timestamps(merged_rows: Sequence[MergedRow],
                                           run_length: int = NO_SECOND_RUN_LENGTH
                                           ) -> Dict[str, Any]:
    """
    Runs of run_length or more rows stamped exactly on the minute (xx:xx:00).
    """

    result = init_check(NO_SECOND_CHECK)
    if not merged_rows:

        return result

    frame = rows_to_frame(merged_rows)
    no_seconds = frame['datetime'].astype(str).str.contains(NO_SECOND_PATTERN, regex=True)
    run_ids = (no_seconds != no_seconds.shift()).cumsum()

    for _, run in no_seconds.groupby(run_ids):
        if not run.iloc[0] or len(run) < run_length:

            continue

        add_issue(
            result,
            f'Rows {run.index[0] + 1}-{run.index[-1] + 1}: Found {len(run)} consecutive '
            f'timestamps with no seconds (xx:xx:00)'
            )

    return result


def check_point_sample_intervals(merged_rows: Sequence[MergedRow],
                                 min_minutes: float = POINT_SAMPLE_MIN_MINUTES,
                                 max_minutes: float = POINT_SAMPLE_MAX_MINUTES
                                 ) -> Dict[str, Any]:
    """
    Point-sample rows (payload starting X or Y) should be 2-3 minutes apart,
    about 2.5 minutes on average.
    """

    result = init_check(POINT_SAMPLE_CHECK)
    if not merged_rows:

        return result

    frame = rows_to_frame(merged_rows)
    is_sample = frame['data'].astype(str).apply(
        lambda data: data.startswith(POINT_SAMPLE_PREFIXES)
        ).astype(bool)
    samples = frame[is_sample & frame['timestamp'].notna()]

    if len(samples) < 2:

        return result

    intervals = samples['timestamp'].diff().dt.total_seconds() / 60
    positions = samples.index.tolist()

    for offset in range(1, len(samples)):
        interval = intervals.iloc[offset]
        rows_label = f'Rows {positions[offset - 1] + 1}-{positions[offset] + 1}'

        if interval < min_minutes:
            add_issue(
                result,
                f'{rows_label}: Interval too short ({interval:.2f} min). '
                f'Expected {min_minutes:g}-{max_minutes:g} min.'
                )

        elif interval > max_minutes:
            add_issue(
                result,
                f'{rows_label}: Interval too long ({interval:.2f} min). '
                f'Expected {min_minutes:g}-{max_minutes:g} min.'
                )

    span_minutes = (samples['timestamp'].iloc[-1] - samples['timestamp'].iloc[0]).total_seconds() / 60
    average = span_minutes / (len(samples) - 1)

    if abs(average - POINT_SAMPLE_EXPECTED_MINUTES) > POINT_SAMPLE_AVERAGE_TOLERANCE:
        add_warning(
            result,
            f'Average interval between X/Y lines is {average:.2f} min '
            f'(expected ~{POINT_SAMPLE_EXPECTED_MINUTES:g} min). '
            f'Found {len(samples)} X/Y lines over {span_minutes:.1f} minutes.'
            )

    return result


# ------------------------------------------------------------
# ROUND-TRIP VALIDATIONS
# ------------------------------------------------------------

def check_round_trip_integrity(files: Sequence[SourceFile],
                               merged_rows: Sequence[MergedRow],
                               dropped_rows: Sequence[Row]
                               ) -> Dict[str, Any]:
    """
    Kept and dropped rows must partition every source file exactly.

    Stops at provenance duplicates, since set arithmetic hides them.
    """

    result = init_check(ROUND_TRIP_CHECK)

    duplicates = find_duplicate_provenance(merged_rows)
    if duplicates:
        add_issue(
            result,
            f'{len(duplicates)} (source file, index) pair(s) appear more than once '
            f'in the merged record: {duplicates[:10]}'
            )

        return result

    for source_file in files:
        all_indices = {row.original_index for row in source_file.rows}
        kept = [row.original_index for row in merged_rows if row.source_file == source_file.name]
        dropped = [row.original_index for row in dropped_rows if row.source_file == source_file.name]

        if len(set(dropped)) != len(dropped):
            add_issue(result, f'{source_file.name}: duplicated dropped row(s)')

        overlap = set(kept) & set(dropped)
        if overlap:
            add_issue(
                result,
                f'{source_file.name}: {len(overlap)} row(s) both kept and dropped: {sorted(overlap)[:10]}'
                )

        missing = all_indices - set(kept) - set(dropped)
        if missing:
            add_issue(
                result,
                f'{source_file.name}: {len(missing)} row(s) neither kept nor dropped: {sorted(missing)[:10]}'
                )

        unknown = (set(kept) | set(dropped)) - all_indices
        if unknown:
            add_issue(
                result,
                f'{source_file.name}: {len(unknown)} index(es) not present in source: {sorted(unknown)[:10]}'
                )

    return result


# ------------------------------------------------------------
# MAIN EXECUTION
# ------------------------------------------------------------

def run_merge_validations(files: Sequence[SourceFile],
                          merged_rows: Sequence[MergedRow],
                          dropped_rows: Sequence[Row],
                          report: Optional[Dict[str, List[str]]] = None
                          ) -> List[Dict[str, Any]]:

    results = [
        check_marker_balance(files),
        check_consecutive_no_second_timestamps(merged_rows),
        check_point_sample_intervals(merged_rows),
        check_round_trip_integrity(files, merged_rows, dropped_rows),
    ]

    for result in results:
        log_check(result, report)

    return results


# =============================================================================
# END OF SCRIPT
# =============================================================================
