# =============================================================================
# PARTITION OBSERVATION SESSIONS
# =============================================================================
# - Locate focal-follow sessions (start marker -> end marker) within one file
# - Define the fixed opening-metadata partition every file carries
# - Guarantee non-overlapping, index-ordered partitions in a single forward pass


from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from observation_pipeline.normalize_rows import UNKNOWN_DATE_KEY, Row, SourceFile
from observation_pipeline.pipeline_report import log_warning


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

SESSION_START_PREFIX = 'F:'
SESSION_END_PREFIX = 'end'
LOST_TRACKING_PREFIX = 'c lost focal'
COMMENT_PREFIX = 'C'

# Rows 0-4 of every file hold the opening metadata block
STARTING_PARTITION_END_INDEX = 4


# ------------------------------------------------------------
# MARKER PREDICATES
# ------------------------------------------------------------

def is_session_start(payload: str) -> bool:
    return payload.startswith(SESSION_START_PREFIX)


def is_session_end(payload: str) -> bool:
    return payload.lower().startswith(SESSION_END_PREFIX)


def is_lost_tracking(payload: str) -> bool:
    return payload.lower().startswith(LOST_TRACKING_PREFIX)


def is_comment(payload: str) -> bool:
    return payload.startswith(COMMENT_PREFIX)


# ------------------------------------------------------------
# PARTITION TYPE
# ------------------------------------------------------------

@dataclass(frozen=True)
class Partition:
    start_index: int
    end_index: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    source_file: str
    date_key: str
    # Drift correction applied to every row of the partition
    time_shift: timedelta = timedelta(0)

    def __len__(self) -> int:
        return self.end_index - self.start_index + 1

    def contains(self, index: int) -> bool:
        return self.start_index <= index <= self.end_index


def build_partition(rows: Sequence[Row],
                    start_index: int,
                    end_index: int,
                    source_file: str,
                    date_key: Optional[str]
                    ) -> Partition:

    return Partition(
        start_index=start_index,
        end_index=end_index,
        start_time=rows[start_index].timestamp,
        end_time=rows[end_index].timestamp,
        source_file=source_file,
        date_key=date_key or UNKNOWN_DATE_KEY,
    )


# ------------------------------------------------------------
# SESSION SCAN
# ------------------------------------------------------------

def find_session_bounds(rows: Sequence[Row]) -> List[Tuple[int, int]]:
    """
    Pair start markers with end markers in one forward pass.

    A start that precedes the end of the last accepted session is skipped.
    The end pointer never rewinds. A start with no later end is dropped.
    """

    starts = [index for index, row in enumerate(rows) if is_session_start(row.payload)]
    ends = [index for index, row in enumerate(rows) if is_session_end(row.payload)]

    bounds: List[Tuple[int, int]] = []
    previous_end: Optional[int] = None
    end_pointer = 0

    for start in starts:
        if previous_end is not None and start < previous_end:

            continue

        while end_pointer < len(ends) and ends[end_pointer] < start:
            end_pointer += 1

        if end_pointer == len(ends):

            break

        end = ends[end_pointer]
        bounds.append((start, end))
        previous_end = end
        end_pointer += 1

    return bounds


def find_session_partitions(source_file: SourceFile,
                            report: Optional[Dict[str, List[str]]] = None
                            ) -> List[Partition]:

    rows = source_file.rows
    bounds = find_session_bounds(rows)

    unmatched_starts = [
        index for index, row in enumerate(rows)
        if is_session_start(row.payload)
        and not any(start == index for start, _ in bounds)
        and not any(start < index <= end for start, end in bounds)
    ]
    if unmatched_starts:
        log_warning(
            f'{source_file.name}: {len(unmatched_starts)} session start(s) '
            f'without a closing end marker: rows {unmatched_starts}',
            report
            )

    return [
        build_partition(rows, start, end, source_file.name, source_file.date_key)
        for start, end in bounds
    ]


def starting_partition(source_file: SourceFile) -> Optional[Partition]:
    """
    Opening metadata partition, rows 0-4. Clamped for short files, None when empty.
    """

    rows = source_file.rows
    if not rows:

        return None

    end_index = min(STARTING_PARTITION_END_INDEX, len(rows) - 1)

    return build_partition(rows, 0, end_index, source_file.name, source_file.date_key)


# =============================================================================
# END OF SCRIPT
# =============================================================================
