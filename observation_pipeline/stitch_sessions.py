# =============================================================================
# STITCH FRAGMENTED SESSIONS
# =============================================================================
# - Collapse focal-follow fragments split by "lost focal" resets into one session
# - Keep the first start and the last end marker of every logical run
# - Retain the lost-tracking annotations themselves and every non-marker row


from typing import Callable, List, Optional, Sequence, Set, Tuple, TypeVar

from observation_pipeline.partition_sessions import (
    is_lost_tracking,
    is_session_end,
    is_session_start,
)


T = TypeVar('T')


# ------------------------------------------------------------
# DIVIDER PARTITIONING
# ------------------------------------------------------------

def split_by_dividers(items: Sequence[Tuple[int, T]],
                      dividers: Sequence[int]
                      ) -> List[List[Tuple[int, T]]]:
    """
    Bucket (position, item) pairs between consecutive divider positions.

    Both inputs are sorted first. An item at a divider's position falls
    after that divider. Groups closed by a divider are emitted even when
    empty, the trailing group only when it holds items:

        split_by_dividers([(1, a), (4, b), (9, c)], [3, 5])
        -> [[(1, a)], [(4, b)], [(9, c)]]
    """

    sorted_items = sorted(items, key=lambda pair: pair[0])
    sorted_dividers = sorted(dividers)

    groups: List[List[Tuple[int, T]]] = []
    current: List[Tuple[int, T]] = []
    divider_pointer = 0

    for position, item in sorted_items:
        while (divider_pointer < len(sorted_dividers)
               and position >= sorted_dividers[divider_pointer]):
            groups.append(current)
            current = []
            divider_pointer += 1

        current.append((position, item))

    if current:
        groups.append(current)

    return groups


# ------------------------------------------------------------
# CONTINUITY REDUCTION
# ------------------------------------------------------------

def find_redundant_markers(rows: Sequence[T],
                           payload_of: Optional[Callable[[T], str]] = None
                           ) -> Set[int]:
    """
    Positions of internal start/end markers left behind by lost-tracking resets.

    A start opens a new logical run unless a lost-tracking row appears
    between it and the previous start. Within each run every start but the
    first and every end but the last is redundant.
    """

    payload_of = payload_of or (lambda row: row.payload)

    starts: List[Tuple[int, T]] = []
    ends: List[Tuple[int, T]] = []
    run_openers: List[int] = []
    lost_since_start = False

    for position, row in enumerate(rows):
        payload = payload_of(row)
        if not payload.strip():

            continue

        if is_session_start(payload):
            if not lost_since_start:
                run_openers.append(position)
            starts.append((position, row))
            lost_since_start = False
        elif is_session_end(payload):
            ends.append((position, row))
        elif is_lost_tracking(payload):
            lost_since_start = True

    redundant: Set[int] = set()

    for group in split_by_dividers(starts, run_openers):
        redundant.update(position for position, _ in group[1:])

    for group in split_by_dividers(ends, run_openers):
        redundant.update(position for position, _ in group[:-1])

    return redundant


def make_continuous_sessions(rows: Sequence[T],
                             payload_of: Optional[Callable[[T], str]] = None
                             ) -> List[T]:

    redundant = find_redundant_markers(rows, payload_of)

    return [row for position, row in enumerate(rows) if position not in redundant]


# =============================================================================
# END OF SCRIPT
# =============================================================================
