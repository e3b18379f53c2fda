# =============================================================================
# TRACK ROW PROVENANCE
# =============================================================================
# - Stamp every surviving merged row with its source file and original position
# - Derive the complement set of dropped rows per source file
# - Summarize retention and merged-record source runs for audit consumers
# - Shape merged, metadata and dropped rows into plain output tables


from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from observation_pipeline.normalize_rows import Row, SourceFile


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

STANDARD_HEADER = ['Actor', 'DateTime', 'Data']
METADATA_HEADER = ['Actor', 'DateTime', 'Data', 'Source File', 'Original Row #']
DROPPED_HEADER = ['Actor', 'DateTime', 'Data', 'Source File', 'Original Index']


# ------------------------------------------------------------
# MERGED ROW TYPE
# ------------------------------------------------------------

@dataclass(frozen=True)
class MergedRow:
    actor: str
    timestamp_raw: str
    timestamp: Optional[datetime]
    payload: str
    source_file: str
    original_index: int
    # 1-based position in the source file
    original_row_number: int

    @property
    def provenance(self) -> Tuple[str, int]:
        return self.source_file, self.original_index


def stamp_merged_row(row: Row) -> MergedRow:

    return MergedRow(
        actor=row.actor,
        timestamp_raw=row.timestamp_raw,
        timestamp=row.timestamp,
        payload=row.payload,
        source_file=row.source_file,
        original_index=row.original_index,
        original_row_number=row.original_index + 1,
    )


def stamp_merged_rows(rows: Sequence[Row]) -> List[MergedRow]:
    return [stamp_merged_row(row) for row in rows]


# ------------------------------------------------------------
# KEPT / DROPPED BOOKKEEPING
# ------------------------------------------------------------

def kept_provenance(merged_rows: Sequence[MergedRow]) -> Set[Tuple[str, int]]:
    return {row.provenance for row in merged_rows}


def find_duplicate_provenance(merged_rows: Sequence[MergedRow]) -> List[Tuple[str, int]]:
    counts = Counter(row.provenance for row in merged_rows)

    return sorted(key for key, count in counts.items() if count > 1)


def find_dropped_rows(files: Sequence[SourceFile],
                      merged_rows: Sequence[MergedRow]
                      ) -> List[Row]:
    """
    Source rows with no counterpart in the merged record, in file then index order.
    """

    kept = kept_provenance(merged_rows)

    return [
        row
        for source_file in files
        for row in source_file.rows
        if (source_file.name, row.original_index) not in kept
    ]


def summarize_retention(files: Sequence[SourceFile],
                        merged_rows: Sequence[MergedRow]
                        ) -> List[Dict[str, Any]]:

    kept = kept_provenance(merged_rows)
    summary = []

    for order, source_file in enumerate(files):
        kept_indices = []
        dropped_indices = []

        for row in source_file.rows:
            if (source_file.name, row.original_index) in kept:
                kept_indices.append(row.original_index)
            else:
                dropped_indices.append(row.original_index)

        summary.append({
            'file_index': order,
            'file_name': source_file.name,
            'total_rows': len(source_file.rows),
            'kept_rows': len(kept_indices),
            'dropped_rows': len(dropped_indices),
            'kept_indices': kept_indices,
            'dropped_indices': dropped_indices,
        })

    return summary


def summarize_source_runs(merged_rows: Sequence[MergedRow]) -> List[Dict[str, Any]]:
    """
    Maximal runs of consecutive merged rows from one source file.

    Merged row positions are 1-based.
    """

    runs: List[Dict[str, Any]] = []

    for position, row in enumerate(merged_rows, start=1):
        if runs and runs[-1]['source_file'] == row.source_file:
            run = runs[-1]
            run['end_row_merged'] = position
            run['end_timestamp'] = row.timestamp_raw
            run['row_count'] += 1

            continue

        runs.append({
            'source_file': row.source_file,
            'start_row_merged': position,
            'end_row_merged': position,
            'start_timestamp': row.timestamp_raw,
            'end_timestamp': row.timestamp_raw,
            'row_count': 1,
        })

    return runs


# ------------------------------------------------------------
# OUTPUT TABLES
# ------------------------------------------------------------

def build_standard_table(merged_rows: Sequence[MergedRow]) -> List[List[Any]]:

    return [STANDARD_HEADER] + [
        [row.actor, row.timestamp_raw, row.payload] for row in merged_rows
    ]


def build_metadata_table(merged_rows: Sequence[MergedRow]) -> List[List[Any]]:

    return [METADATA_HEADER] + [
        [row.actor, row.timestamp_raw, row.payload, row.source_file, row.original_row_number]
        for row in merged_rows
    ]


def build_dropped_table(dropped_rows: Sequence[Row]) -> List[List[Any]]:

    return [DROPPED_HEADER] + [
        [row.actor, row.timestamp_raw, row.payload, row.source_file, row.original_index]
        for row in dropped_rows
    ]


# =============================================================================
# END OF SCRIPT
# =============================================================================
