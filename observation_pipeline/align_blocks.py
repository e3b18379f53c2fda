# =============================================================================
# ALIGN ORIGINAL AND MERGED BLOCKS
# =============================================================================
# - Split original and merged records into same-actor runs ("blocks")
# - Align each merged block with the single original block it best reflects
# - Classify every original row as kept or excluded, every merged row as matched or added
# - Stay robust to reordering and drift by matching on actor + payload, not time


import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from observation_pipeline.normalize_rows import Row, SourceFile


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

BLOCK_GAP = timedelta(minutes=float(os.getenv('BLOCK_GAP_MINUTES', '10')))

KEPT = 'kept'
EXCLUDED = 'excluded'


# ------------------------------------------------------------
# BLOCK TYPES
# ------------------------------------------------------------

@dataclass
class Block:
    actor: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    source_file: str
    block_index: int
    rows: List[Row] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f'{normalize_actor(self.actor)[:15]}_{self.block_index}'


@dataclass
class BlockAlignment:
    original_block: Block
    merged_block: Optional[Block]
    matched_row_pairs: List[Tuple[Row, Row]] = field(default_factory=list)
    excluded_rows: List[Row] = field(default_factory=list)
    added_rows: List[Row] = field(default_factory=list)


@dataclass(frozen=True)
class RowDiff:
    row: Row
    status: str
    merged_row: Optional[Row] = None
    timestamp_modified: bool = False


@dataclass
class Reconciliation:
    alignments: List[BlockAlignment] = field(default_factory=list)
    unaligned_merged_blocks: List[Block] = field(default_factory=list)
    row_diffs: Dict[str, List[RowDiff]] = field(default_factory=dict)

    @property
    def added_rows(self) -> List[Row]:
        added = [row for alignment in self.alignments for row in alignment.added_rows]
        added.extend(row for block in self.unaligned_merged_blocks for row in block.rows)

        return sorted(added, key=lambda row: row.original_index)


# ------------------------------------------------------------
# NORMALIZATION HELPERS
# ------------------------------------------------------------

def normalize_actor(actor: str) -> str:
    return ' '.join(actor.split()).upper()


def row_key(row: Row) -> Tuple[str, str]:
    return normalize_actor(row.actor), row.payload.strip()


def normalize_timestamp_text(text: str) -> str:
    return ' '.join(text.split())


def gap_exceeds(previous: Row, current: Row, gap: timedelta) -> bool:
    # Unparsed timestamps are infinitely far apart
    if previous.timestamp is None or current.timestamp is None:

        return True

    return abs(current.timestamp - previous.timestamp) > gap


# ------------------------------------------------------------
# BLOCKING
# ------------------------------------------------------------

def create_blocks(rows: Sequence[Row],
                  source_file: str,
                  gap: timedelta = BLOCK_GAP
                  ) -> List[Block]:
    """
    Sequential runs of one actor. A new block starts when the actor changes
    or the time since the previous row exceeds gap; blocks never re-merge.
    """

    blocks: List[Block] = []

    for position, row in enumerate(rows):
        previous = rows[position - 1] if position else None

        if (previous is None
                or normalize_actor(row.actor) != normalize_actor(previous.actor)
                or gap_exceeds(previous, row, gap)):
            blocks.append(Block(
                actor=row.actor,
                start_time=row.timestamp,
                end_time=row.timestamp,
                source_file=source_file,
                block_index=len(blocks),
            ))

        block = blocks[-1]
        block.rows.append(row)
        block.end_time = row.timestamp

    return blocks


# ------------------------------------------------------------
# LINEAGE & ALIGNMENT
# ------------------------------------------------------------

def build_lineage(merged_blocks: Sequence[Block]) -> Tuple[Dict[Any, List[Tuple[int, int]]],
                                                           Dict[Any, List[Tuple[int, int]]]]:
    """
    Lookups to (merged block, position) by (actor, payload, position) and (actor, payload).
    """

    exact: Dict[Any, List[Tuple[int, int]]] = defaultdict(list)
    loose: Dict[Any, List[Tuple[int, int]]] = defaultdict(list)

    for block_number, block in enumerate(merged_blocks):
        for position, row in enumerate(block.rows):
            key = row_key(row)
            exact[(*key, position)].append((block_number, position))
            loose[key].append((block_number, position))

    return exact, loose


def trace_block(original_block: Block,
                exact: Dict[Any, List[Tuple[int, int]]],
                loose: Dict[Any, List[Tuple[int, int]]]
                ) -> Dict[int, List[int]]:
    """
    Merged block number -> merged positions hit by this original block's rows.

    Each original row counts at most once per merged block.
    """

    hits: Dict[int, List[int]] = defaultdict(list)

    for position, row in enumerate(original_block.rows):
        key = row_key(row)
        candidates = exact.get((*key, position)) or loose.get(key) or []
        seen: Set[int] = set()

        for block_number, merged_position in candidates:
            if block_number in seen:

                continue

            seen.add(block_number)
            hits[block_number].append(merged_position)

    return hits


def alignment_key(match_count: int,
                  positions: Sequence[int],
                  original_block: Block,
                  file_order: int,
                  merged_number: int
                  ) -> Tuple[Any, ...]:
    """
    Lower is better: more matches, then tighter merged span, then the
    earliest original block (start time, file order, block index).
    """

    span = max(positions) - min(positions) if positions else 0

    return (
        -match_count,
        span,
        original_block.start_time is None,
        original_block.start_time or datetime.min,
        file_order,
        original_block.block_index,
        merged_number,
        )


def align_blocks(original_blocks: Sequence[Tuple[int, Block]],
                 merged_blocks: Sequence[Block]
                 ) -> Dict[int, int]:
    """
    One-to-one pairing, merged block number -> original block number.

    original_blocks holds (file order, block) pairs. Candidate pairs are
    taken best-first, each side claimed at most once.
    """

    exact, loose = build_lineage(merged_blocks)
    candidates = []

    for original_number, (file_order, original_block) in enumerate(original_blocks):
        for merged_number, positions in trace_block(original_block, exact, loose).items():
            key = alignment_key(len(positions), positions, original_block, file_order, merged_number)
            candidates.append((key, merged_number, original_number))

    pairing: Dict[int, int] = {}
    claimed_originals: Set[int] = set()

    for _, merged_number, original_number in sorted(candidates):
        if merged_number in pairing or original_number in claimed_originals:

            continue

        pairing[merged_number] = original_number
        claimed_originals.add(original_number)

    return pairing


# ------------------------------------------------------------
# ROW-LEVEL COMPARISON
# ------------------------------------------------------------

def compare_blocks(original_block: Block, merged_block: Optional[Block]) -> BlockAlignment:
    """
    Match rows by (actor, payload, position) first, then (actor, payload).
    """

    alignment = BlockAlignment(original_block=original_block, merged_block=merged_block)

    if merged_block is None:
        alignment.excluded_rows = list(original_block.rows)

        return alignment

    claimed: Set[int] = set()
    merged_keys = [row_key(row) for row in merged_block.rows]

    for position, row in enumerate(original_block.rows):
        key = row_key(row)

        if position < len(merged_keys) and position not in claimed and merged_keys[position] == key:
            match = position
        else:
            match = next(
                (candidate for candidate, merged_key in enumerate(merged_keys)
                 if candidate not in claimed and merged_key == key),
                None
                )

        if match is None:
            alignment.excluded_rows.append(row)

            continue

        claimed.add(match)
        alignment.matched_row_pairs.append((row, merged_block.rows[match]))

    alignment.added_rows = [
        row for position, row in enumerate(merged_block.rows) if position not in claimed
    ]

    return alignment


# ------------------------------------------------------------
# RECONCILIATION
# ------------------------------------------------------------

def reconcile_files(original_files: Sequence[SourceFile],
                    merged_file: SourceFile,
                    gap: timedelta = BLOCK_GAP
                    ) -> Reconciliation:

    original_blocks: List[Tuple[int, Block]] = [
        (file_order, block)
        for file_order, source_file in enumerate(original_files)
        for block in create_blocks(source_file.rows, source_file.name, gap)
    ]
    merged_blocks = create_blocks(merged_file.rows, merged_file.name, gap)

    pairing = align_blocks(original_blocks, merged_blocks)
    merged_for_original = {original: merged for merged, original in pairing.items()}

    result = Reconciliation()

    for original_number, (_, original_block) in enumerate(original_blocks):
        merged_number = merged_for_original.get(original_number)
        merged_block = merged_blocks[merged_number] if merged_number is not None else None
        result.alignments.append(compare_blocks(original_block, merged_block))

    result.unaligned_merged_blocks = [
        block for number, block in enumerate(merged_blocks) if number not in pairing
    ]
    result.row_diffs = classify_rows(original_files, result.alignments)

    return result


def classify_rows(original_files: Sequence[SourceFile],
                  alignments: Sequence[BlockAlignment]
                  ) -> Dict[str, List[RowDiff]]:

    matched: Dict[Tuple[str, int], Row] = {}
    for alignment in alignments:
        for original_row, merged_row in alignment.matched_row_pairs:
            matched[(original_row.source_file, original_row.original_index)] = merged_row

    diffs: Dict[str, List[RowDiff]] = {}

    for source_file in original_files:
        file_diffs = []

        for row in source_file.rows:
            merged_row = matched.get((source_file.name, row.original_index))

            if merged_row is None:
                file_diffs.append(RowDiff(row=row, status=EXCLUDED))

                continue

            modified = (normalize_timestamp_text(row.timestamp_raw)
                        != normalize_timestamp_text(merged_row.timestamp_raw))
            file_diffs.append(RowDiff(row=row, status=KEPT, merged_row=merged_row,
                                      timestamp_modified=modified))

        diffs[source_file.name] = file_diffs

    return diffs


# ------------------------------------------------------------
# SUMMARIES
# ------------------------------------------------------------

def summarize_reconciliation(result: Reconciliation) -> List[Dict[str, Any]]:
    summary = []

    for file_name, diffs in result.row_diffs.items():
        summary.append({
            'file_name': file_name,
            'total_rows': len(diffs),
            'kept_rows': sum(1 for diff in diffs if diff.status == KEPT),
            'excluded_rows': sum(1 for diff in diffs if diff.status == EXCLUDED),
            'timestamp_modifications': sum(1 for diff in diffs if diff.timestamp_modified),
        })

    return summary


def group_rows_by_status(diffs: Sequence[RowDiff]) -> List[Dict[str, Any]]:
    """
    Consecutive original rows sharing a status, for compact display.
    """

    groups: List[Dict[str, Any]] = []

    for diff in sorted(diffs, key=lambda item: item.row.original_index):
        index = diff.row.original_index
        current = groups[-1] if groups else None

        if current is None or current['status'] != diff.status or index != current['end_row'] + 1:
            groups.append({
                'status': diff.status,
                'start_row': index,
                'end_row': index,
                'count': 1,
                'has_timestamp_mods': diff.timestamp_modified,
            })

            continue

        current['end_row'] = index
        current['count'] += 1
        current['has_timestamp_mods'] = current['has_timestamp_mods'] or diff.timestamp_modified

    return groups


def reconstruct_original(result: Reconciliation, file_name: str) -> List[Row]:
    """
    Kept and excluded rows of one original file back in original order.
    """

    diffs = result.row_diffs.get(file_name, [])

    return [diff.row for diff in sorted(diffs, key=lambda item: item.row.original_index)]


# =============================================================================
# END OF SCRIPT
# =============================================================================
