# =============================================================================
# COMPARE RECORD VERSIONS
# =============================================================================
# - Align an old and a new version of an observation record row by row
# - Score candidates inside a tight time window by time proximity and text overlap
# - Fall back to exact-signature matches inside a wider window
# - Classify rows as unchanged, modified, deleted or added for diff renderers


import os
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

from observation_pipeline.normalize_rows import Row


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

MATCH_WINDOW = timedelta(seconds=float(os.getenv('MATCH_WINDOW_SECONDS', '4')))
MATCH_FALLBACK_WINDOW = timedelta(seconds=float(os.getenv('MATCH_FALLBACK_WINDOW_SECONDS', '30')))

TIME_WEIGHT = 0.5
DATA_WEIGHT = 0.5
EXACT_SIGNATURE_BONUS = 0.25

UNCHANGED = 'unchanged'
MODIFIED = 'modified'
DELETED = 'deleted'
ADDED = 'added'

TOKEN_PATTERN = re.compile(r'\w+')


# ------------------------------------------------------------
# MATCH TYPES
# ------------------------------------------------------------

@dataclass(frozen=True)
class MatchResult:
    old_index: Optional[int]
    new_index: Optional[int]
    status: str


# ------------------------------------------------------------
# SIMILARITY
# ------------------------------------------------------------

def tokenize(text: str) -> Set[str]:
    return set(TOKEN_PATTERN.findall(text.lower()))


def token_set_similarity(left: str, right: str) -> float:
    """
    Jaccard overlap of word tokens. Two token-less texts count as identical.
    """

    left_tokens = tokenize(left)
    right_tokens = tokenize(right)

    if not left_tokens and not right_tokens:

        return 1.0

    return len(left_tokens & right_tokens) / len(left_tokens | right_tokens)


def row_signature(row: Row) -> str:
    # Actor and timestamp are volatile between versions
    return ' '.join(row.payload.split())


def rows_identical(old_row: Row, new_row: Row) -> bool:
    return (
        old_row.actor == new_row.actor
        and old_row.timestamp_raw == new_row.timestamp_raw
        and old_row.payload == new_row.payload
        )


def score_candidate(old_row: Row,
                    new_row: Row,
                    delta_seconds: float,
                    window_seconds: float,
                    time_weight: float = TIME_WEIGHT,
                    data_weight: float = DATA_WEIGHT,
                    signature_bonus: float = EXACT_SIGNATURE_BONUS
                    ) -> float:

    time_score = max(0.0, 1 - delta_seconds / window_seconds) if window_seconds > 0 else 0.0
    data_score = token_set_similarity(old_row.payload, new_row.payload)
    bonus = signature_bonus if row_signature(old_row) == row_signature(new_row) else 0.0

    return time_weight * time_score + data_weight * data_score + bonus


# ------------------------------------------------------------
# MATCHING
# ------------------------------------------------------------

def timed_rows(rows: Sequence[Row]) -> List[Tuple[int, Row]]:
    """
    (position, row) pairs with a parsed timestamp, sorted by time then position.
    """

    return sorted(
        ((position, row) for position, row in enumerate(rows) if row.timestamp is not None),
        key=lambda pair: (pair[1].timestamp, pair[0])
        )


def find_matches(old_rows: Sequence[Row],
                 new_rows: Sequence[Row],
                 window: timedelta = MATCH_WINDOW,
                 fallback_window: timedelta = MATCH_FALLBACK_WINDOW,
                 time_weight: float = TIME_WEIGHT,
                 data_weight: float = DATA_WEIGHT,
                 signature_bonus: float = EXACT_SIGNATURE_BONUS
                 ) -> Dict[int, int]:
    """
    Greedy old -> new position mapping, old rows claimed in time order.

    Pass A scores unused candidates strictly inside window and keeps the best.
    Pass B runs only when A found none: the closest unused candidate inside
    fallback_window with an identical signature. Each new row is consumed at
    most once. Rows without a parsed timestamp never match.
    """

    old_timed = timed_rows(old_rows)
    new_timed = timed_rows(new_rows)

    window_seconds = window.total_seconds()
    fallback_seconds = fallback_window.total_seconds()

    used: Set[int] = set()
    matches: Dict[int, int] = {}
    left = 0

    for old_position, old_row in old_timed:
        old_time = old_row.timestamp

        while (left < len(new_timed)
               and new_timed[left][1].timestamp < old_time - fallback_window):
            left += 1

        best_scored: Optional[Tuple[Tuple[float, float, int], int]] = None
        best_exact: Optional[Tuple[Tuple[float, int], int]] = None

        cursor = left
        while cursor < len(new_timed) and new_timed[cursor][1].timestamp <= old_time + fallback_window:
            new_position, new_row = new_timed[cursor]
            cursor += 1

            if new_position in used:

                continue

            delta = abs((new_row.timestamp - old_time).total_seconds())

            if delta < window_seconds:
                score = score_candidate(
                    old_row, new_row, delta, window_seconds,
                    time_weight, data_weight, signature_bonus,
                    )
                key = (-score, delta, new_position)
                if best_scored is None or key < best_scored[0]:
                    best_scored = (key, new_position)

            if delta <= fallback_seconds and row_signature(old_row) == row_signature(new_row):
                key = (delta, new_position)
                if best_exact is None or key < best_exact[0]:
                    best_exact = (key, new_position)

        chosen = best_scored or best_exact
        if chosen is not None:
            used.add(chosen[1])
            matches[old_position] = chosen[1]

    return matches


def result_sort_key(result: MatchResult,
                    old_rows: Sequence[Row],
                    new_rows: Sequence[Row]
                    ) -> Tuple[bool, datetime, int, int, int]:

    if result.old_index is not None:
        timestamp = old_rows[result.old_index].timestamp
    else:
        timestamp = new_rows[result.new_index].timestamp

    return (
        timestamp is None,
        timestamp or datetime.min,
        0 if result.old_index is not None else 1,
        result.old_index if result.old_index is not None else -1,
        result.new_index if result.new_index is not None else -1,
        )


def compare_rows(old_rows: Sequence[Row],
                 new_rows: Sequence[Row],
                 window: timedelta = MATCH_WINDOW,
                 fallback_window: timedelta = MATCH_FALLBACK_WINDOW,
                 time_weight: float = TIME_WEIGHT,
                 data_weight: float = DATA_WEIGHT,
                 signature_bonus: float = EXACT_SIGNATURE_BONUS
                 ) -> List[MatchResult]:
    """
    Classify every old and new row, ordered chronologically.
    """

    matches = find_matches(
        old_rows, new_rows, window, fallback_window,
        time_weight, data_weight, signature_bonus,
        )
    consumed = set(matches.values())
    results: List[MatchResult] = []

    for old_position, old_row in enumerate(old_rows):
        new_position = matches.get(old_position)

        if new_position is None:
            results.append(MatchResult(old_position, None, DELETED))

            continue

        status = UNCHANGED if rows_identical(old_row, new_rows[new_position]) else MODIFIED
        results.append(MatchResult(old_position, new_position, status))

    for new_position in range(len(new_rows)):
        if new_position not in consumed:
            results.append(MatchResult(None, new_position, ADDED))

    return sorted(results, key=lambda result: result_sort_key(result, old_rows, new_rows))


# ------------------------------------------------------------
# RESOLUTION & SUMMARY
# ------------------------------------------------------------

def resolve_matches(results: Sequence[MatchResult],
                    old_rows: Sequence[Row],
                    new_rows: Sequence[Row]
                    ) -> List[Row]:
    """
    One resolved record: matched rows take the new version, deleted rows stay.
    """

    resolved: List[Row] = []

    for result in results:
        if result.new_index is not None:
            resolved.append(new_rows[result.new_index])
        else:
            resolved.append(old_rows[result.old_index])

    return resolved


def summarize_matches(results: Sequence[MatchResult]) -> Dict[str, int]:
    counts = Counter(result.status for result in results)

    return {status: counts.get(status, 0) for status in (UNCHANGED, MODIFIED, DELETED, ADDED)}


# =============================================================================
# END OF SCRIPT
# =============================================================================
