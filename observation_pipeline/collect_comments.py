# =============================================================================
# COLLECT OUT-OF-SESSION COMMENTS
# =============================================================================
# - Recover annotation rows that sit outside every focal-follow session
# - Scan three disjoint zones: before the first session, between sessions, after the last
# - Keep non-annotation gap rows visible for auditing instead of discarding them


from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from observation_pipeline.normalize_rows import Row, SourceFile
from observation_pipeline.partition_sessions import (
    STARTING_PARTITION_END_INDEX,
    Partition,
    is_comment,
)
from observation_pipeline.pipeline_report import log_info


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

INITIAL_ZONE = 'initial'
GAP_ZONE = 'gap'
TAIL_ZONE = 'tail'

INITIAL_ZONE_START_INDEX = STARTING_PARTITION_END_INDEX + 1


# ------------------------------------------------------------
# COMMENT TYPES
# ------------------------------------------------------------

@dataclass(frozen=True)
class CommentRow:
    row: Row
    zone: str

    @property
    def index(self) -> int:
        return self.row.original_index


@dataclass
class CommentCollection:
    source_file: str
    initial: List[CommentRow] = field(default_factory=list)
    gaps: List[CommentRow] = field(default_factory=list)
    tail: List[CommentRow] = field(default_factory=list)
    # Gap rows that are not annotations
    not_included: List[CommentRow] = field(default_factory=list)

    @property
    def comments(self) -> List[CommentRow]:
        return [*self.initial, *self.gaps, *self.tail]


# ------------------------------------------------------------
# ZONE SCANS
# ------------------------------------------------------------

def collect_zone(rows: Sequence[Row], start: int, stop: int, zone: str) -> List[CommentRow]:
    """
    Annotation rows with start <= index < stop.
    """

    return [
        CommentRow(row=row, zone=zone)
        for row in rows[max(start, 0):max(stop, 0)]
        if is_comment(row.payload)
    ]


def collect_initial_comments(rows: Sequence[Row],
                             partitions: Sequence[Partition]
                             ) -> List[CommentRow]:
    if not partitions:

        return []

    return collect_zone(rows, INITIAL_ZONE_START_INDEX, partitions[0].start_index, INITIAL_ZONE)


def collect_gap_comments(rows: Sequence[Row],
                         partitions: Sequence[Partition]
                         ) -> Tuple[List[CommentRow], List[CommentRow]]:
    """
    Split rows between adjacent partitions into (comments, not_included).
    """

    comments: List[CommentRow] = []
    not_included: List[CommentRow] = []

    for previous, following in zip(partitions, partitions[1:]):
        for row in rows[previous.end_index + 1:following.start_index]:
            entry = CommentRow(row=row, zone=GAP_ZONE)
            if is_comment(row.payload):
                comments.append(entry)
            else:
                not_included.append(entry)

    return comments, not_included


def collect_tail_comments(rows: Sequence[Row],
                          partitions: Sequence[Partition]
                          ) -> List[CommentRow]:
    """
    Comments after the last partition, or across the whole file when it has none.
    """

    start = partitions[-1].end_index + 1 if partitions else 0

    return collect_zone(rows, start, len(rows), TAIL_ZONE)


def collect_comments(source_file: SourceFile,
                     partitions: Sequence[Partition],
                     report: Optional[Dict[str, List[str]]] = None
                     ) -> CommentCollection:

    rows = source_file.rows
    gap_comments, not_included = collect_gap_comments(rows, partitions)

    collection = CommentCollection(
        source_file=source_file.name,
        initial=collect_initial_comments(rows, partitions),
        gaps=gap_comments,
        tail=collect_tail_comments(rows, partitions),
        not_included=not_included,
    )

    if not partitions:
        log_info(
            f'{source_file.name}: no sessions detected, '
            f'scanned whole file for comments ({len(collection.tail)} found)',
            report
            )

    return collection


# =============================================================================
# END OF SCRIPT
# =============================================================================
