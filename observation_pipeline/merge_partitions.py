# =============================================================================
# MERGE OBSERVATION PARTITIONS
# =============================================================================
# - Restore one chronological record per date from every observer's session partitions
# - Correct small inter-device clock skew between consecutive sessions
# - Preserve source origin for traceability


import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from observation_pipeline.collect_comments import CommentRow, collect_comments
from observation_pipeline.normalize_rows import Row, SourceFile, shift_row
from observation_pipeline.partition_sessions import (
    Partition,
    find_session_partitions,
    starting_partition,
)
from observation_pipeline.pipeline_report import log_info, log_warning


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

# Gaps above this are real pauses, not clock skew
DRIFT_GAP_THRESHOLD = timedelta(
    seconds=float(os.getenv('DRIFT_GAP_THRESHOLD_SECONDS', '310'))
    )

# Corrected gap between a partition and its predecessor
DRIFT_SPACING = timedelta(
    seconds=float(os.getenv('DRIFT_SPACING_SECONDS', '1'))
    )


# ------------------------------------------------------------
# GROUP TYPES
# ------------------------------------------------------------

@dataclass
class GroupPartitions:
    date_key: str
    file_order: Dict[str, int]
    anchor: Optional[Partition] = None
    sessions: List[Partition] = field(default_factory=list)
    comments: List[CommentRow] = field(default_factory=list)
    not_included: List[CommentRow] = field(default_factory=list)


# ------------------------------------------------------------
# ORDERING
# ------------------------------------------------------------

def time_sort_key(value: Optional[datetime]) -> Tuple[bool, datetime]:
    # Unparsed times sort after every parsed one
    return value is None, value or datetime.min


def sort_partitions(partitions: Sequence[Partition],
                    file_order: Dict[str, int]
                    ) -> List[Partition]:

    return sorted(
        partitions,
        key=lambda p: (*time_sort_key(p.start_time),
                       file_order.get(p.source_file, len(file_order)),
                       p.start_index)
        )


def sort_rows(rows: Sequence[Row], file_order: Dict[str, int]) -> List[Row]:

    return sorted(
        rows,
        key=lambda r: (*time_sort_key(r.timestamp),
                       file_order.get(r.source_file, len(file_order)),
                       r.original_index)
        )


# ------------------------------------------------------------
# DRIFT CORRECTION
# ------------------------------------------------------------

def correct_clock_drift(partitions: Sequence[Partition],
                        gap_threshold: timedelta = DRIFT_GAP_THRESHOLD,
                        spacing: timedelta = DRIFT_SPACING
                        ) -> List[Partition]:
    """
    Walk time-sorted partitions pairwise and close short gaps.

    When a partition starts no more than gap_threshold after its predecessor
    ends, it is shifted so the gap becomes exactly spacing. The predecessor
    is the already-corrected partition, so successive short gaps compound.
    Partitions with an unparsed start or predecessor end are left untouched.
    """

    corrected: List[Partition] = []
    previous: Optional[Partition] = None

    for partition in partitions:
        if (previous is None
                or previous.end_time is None
                or partition.start_time is None):
            corrected.append(partition)
            previous = partition

            continue

        gap = partition.start_time - previous.end_time

        if gap > gap_threshold:
            corrected.append(partition)
        else:
            shift = spacing - gap
            partition = replace(
                partition,
                start_time=partition.start_time + shift,
                end_time=partition.end_time + shift if partition.end_time else None,
                time_shift=partition.time_shift + shift,
            )
            corrected.append(partition)

        previous = partition

    return corrected


# ------------------------------------------------------------
# GROUP ASSEMBLY
# ------------------------------------------------------------

def collect_group_partitions(date_key: str,
                             files: Sequence[SourceFile],
                             gap_threshold: timedelta = DRIFT_GAP_THRESHOLD,
                             spacing: timedelta = DRIFT_SPACING,
                             report: Optional[Dict[str, List[str]]] = None
                             ) -> GroupPartitions:
    """
    Gather sessions and out-of-session comments of one date group.

    Only the first file's starting partition is kept, as the anchor that
    defines the group's reference clock. It is never drift-corrected.
    """

    group = GroupPartitions(
        date_key=date_key,
        file_order={source_file.name: order for order, source_file in enumerate(files)},
    )
    sessions: List[Partition] = []

    for source_file in files:
        partitions = find_session_partitions(source_file, report)
        comments = collect_comments(source_file, partitions, report)

        sessions.extend(partitions)
        group.comments.extend(comments.comments)
        group.not_included.extend(comments.not_included)

        log_info(
            f'{source_file.name}: {len(partitions)} session(s), '
            f'{len(comments.comments)} comment(s)',
            report
            )

    if files:
        group.anchor = starting_partition(files[0])

    group.sessions = correct_clock_drift(
        sort_partitions(sessions, group.file_order),
        gap_threshold,
        spacing,
        )

    shifted = sum(1 for partition in group.sessions if partition.time_shift)
    if shifted:
        log_info(f'{date_key}: drift-corrected {shifted} of {len(group.sessions)} session(s)', report)

    return group


def collect_group_rows(group: GroupPartitions,
                       files: Sequence[SourceFile],
                       report: Optional[Dict[str, List[str]]] = None
                       ) -> List[Row]:
    """
    Materialize anchor, session and comment rows, sorted by corrected time.

    Each (source file, original index) is emitted at most once; the first
    claim wins in anchor, session, comment order.
    """

    rows_by_file = {source_file.name: source_file.rows for source_file in files}
    claimed: Dict[Tuple[str, int], Row] = {}
    duplicates = 0

    def claim(row: Row) -> None:
        nonlocal duplicates
        key = (row.source_file, row.original_index)
        if key in claimed:
            duplicates += 1

            return

        claimed[key] = row

    partitions = [group.anchor] if group.anchor is not None else []
    partitions.extend(group.sessions)

    for partition in partitions:
        rows = rows_by_file.get(partition.source_file, [])
        for row in rows[partition.start_index:partition.end_index + 1]:
            claim(shift_row(row, partition.time_shift))

    for comment in group.comments:
        claim(comment.row)

    if duplicates:
        log_warning(
            f'{group.date_key}: {duplicates} row(s) claimed by more than one zone, kept once',
            report
            )

    return sort_rows(list(claimed.values()), group.file_order)


# =============================================================================
# END OF SCRIPT
# =============================================================================
