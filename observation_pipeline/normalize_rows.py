# =============================================================================
# NORMALIZE OBSERVATION ROWS
# =============================================================================
# - Convert raw 3-column sheet rows into canonical (actor, timestamp, payload) rows
# - Decode spreadsheet day-serial timestamps and parse literal timestamp text
# - Stamp every row with its source file and immutable 0-based original index
# - Group source files into date groups by their filename date key


import math
import numbers
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from observation_pipeline.pipeline_report import log_info, log_warning


# ------------------------------------------------------------
# CONFIGURATIONS
# ------------------------------------------------------------

ACTOR_COLUMN = 0
TIMESTAMP_COLUMN = 1
PAYLOAD_COLUMN = 2

# Day 25569 of the spreadsheet serial calendar is 1970-01-01
SERIAL_EPOCH_OFFSET = 25569
SECONDS_PER_DAY = 86400
SERIAL_ROUNDING_NUDGE = 0.0000001

TIMESTAMP_FORMAT = '%m/%d/%Y %H:%M:%S'
UNIX_EPOCH = datetime(1970, 1, 1)

# Fallback parsing only accepts text that names a full calendar date
DATE_COMPONENT_PATTERN = re.compile(
    r'\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}'
    r'|[A-Za-z]{3,}\.?\s+\d{1,2},?\s+\d{4}'
    r'|\d{1,2}\s+[A-Za-z]{3,}\.?,?\s+\d{4}'
    )

DATE_KEY_PATTERN = re.compile(r'^(\d{4}\.\d{2}\.\d{2})')
UNKNOWN_DATE_KEY = 'unknown'


# ------------------------------------------------------------
# ROW TYPES
# ------------------------------------------------------------

@dataclass(frozen=True)
class Row:
    actor: str
    timestamp_raw: str
    timestamp: Optional[datetime]
    payload: str
    source_file: str
    original_index: int


@dataclass(frozen=True)
class SourceFile:
    name: str
    rows: List[Row] = field(default_factory=list)

    @property
    def date_key(self) -> Optional[str]:
        return extract_date_key(self.name)


# ------------------------------------------------------------
# TIMESTAMP HELPERS
# ------------------------------------------------------------

def decode_day_serial(serial: float) -> Optional[datetime]:
    """
    Decode a spreadsheet day-serial into a naive UTC datetime.

        44897.225069444445 -> 2022-12-02 05:24:06
    """

    try:
        whole_days = math.floor(serial - SERIAL_EPOCH_OFFSET)
        fractional_day = serial - math.floor(serial) + SERIAL_ROUNDING_NUDGE
        seconds = whole_days * SECONDS_PER_DAY + math.floor(SECONDS_PER_DAY * fractional_day)

        return UNIX_EPOCH + timedelta(seconds=seconds)

    except (OverflowError, ValueError):

        return None


def format_timestamp(value: datetime) -> str:
    """
    Render as MM/DD/YYYY H:mm:ss, hour without leading zero.
    """

    return (f'{value.month:02d}/{value.day:02d}/{value.year} '
            f'{value.hour}:{value.minute:02d}:{value.second:02d}')


def parse_timestamp(text: str) -> Optional[datetime]:
    """
    Parse literal timestamp text.

    Tries the canonical MM/DD/YYYY H:mm:ss layout first, then lets pandas
    infer the layout for text that carries a full date. Time-only text and
    bare numbers return None rather than borrowing the current date.
    """

    text = text.strip()
    if not text:

        return None

    parsed = pd.to_datetime(text, format=TIMESTAMP_FORMAT, errors='coerce')
    if pd.isna(parsed):
        if not DATE_COMPONENT_PATTERN.search(text):

            return None

        try:
            parsed = pd.to_datetime(text, errors='coerce')
        except (ValueError, TypeError, OverflowError):

            return None

    if pd.isna(parsed):

        return None

    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert('UTC').tz_localize(None)

    return parsed.to_pydatetime()


def is_day_serial(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and not math.isnan(float(value))
        )


# ------------------------------------------------------------
# ROW NORMALIZATION
# ------------------------------------------------------------

def normalize_cell(value: Any) -> str:
    if value is None:

        return ''

    try:
        if pd.isna(value):

            return ''

    except (TypeError, ValueError):
        pass

    return str(value)


def get_cell(raw_row: Optional[Sequence[Any]], column: int) -> Any:
    if raw_row is None:

        return None

    try:

        return raw_row[column]

    except (IndexError, KeyError, TypeError):

        return None


def normalize_timestamp_cell(value: Any) -> Tuple[str, Optional[datetime]]:
    """
    Returns (timestamp_raw, timestamp) for one timestamp cell.

    Blank cells, including the NaT pandas reads from an empty cell in a
    datetime column, yield ('', None).
    """

    if normalize_cell(value) == '':

        return '', None

    if isinstance(value, datetime):
        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()

        return format_timestamp(value), value

    if is_day_serial(value):
        decoded = decode_day_serial(float(value))
        if decoded is None:

            return normalize_cell(value), None

        return format_timestamp(decoded), decoded

    text = normalize_cell(value)

    return text, parse_timestamp(text)


def normalize_row(raw_row: Optional[Sequence[Any]],
                  source_file: str,
                  original_index: int
                  ) -> Row:

    timestamp_raw, timestamp = normalize_timestamp_cell(get_cell(raw_row, TIMESTAMP_COLUMN))

    return Row(
        actor=normalize_cell(get_cell(raw_row, ACTOR_COLUMN)),
        timestamp_raw=timestamp_raw,
        timestamp=timestamp,
        payload=normalize_cell(get_cell(raw_row, PAYLOAD_COLUMN)),
        source_file=source_file,
        original_index=original_index,
    )


def normalize_rows(raw_rows: Sequence[Optional[Sequence[Any]]],
                   source_file: str
                   ) -> List[Row]:

    return [
        normalize_row(raw_row, source_file, index)
        for index, raw_row in enumerate(raw_rows)
    ]


def build_source_file(name: str,
                      raw_rows: Sequence[Optional[Sequence[Any]]]
                      ) -> SourceFile:

    return SourceFile(name=name, rows=normalize_rows(raw_rows, name))


def shift_row(row: Row, offset: timedelta) -> Row:
    """
    New row with its timestamp moved by offset. Unparsed timestamps stay as-is.
    """

    if row.timestamp is None or not offset:

        return row

    shifted = row.timestamp + offset

    return replace(row, timestamp=shifted, timestamp_raw=format_timestamp(shifted))


# ------------------------------------------------------------
# DATE GROUPING
# ------------------------------------------------------------

def extract_date_key(file_name: str) -> Optional[str]:
    match = DATE_KEY_PATTERN.match(file_name)

    return match.group(1) if match else None


def group_files_by_date(files: Sequence[SourceFile],
                        report: Optional[Dict[str, List[str]]] = None
                        ) -> Dict[str, List[SourceFile]]:
    """
    Group files sharing a date key, keeping file arrival order in each group.

    Files without a date key belong to no group.
    """

    groups: Dict[str, List[SourceFile]] = {}

    for source_file in files:
        date_key = source_file.date_key
        if date_key is None:
            log_warning(f'{source_file.name}: no date key prefix, skipped from merge', report)

            continue

        groups.setdefault(date_key, []).append(source_file)

    for date_key, group in groups.items():
        log_info(f'{date_key}: grouped {len(group)} file(s)', report)

    return groups


# =============================================================================
# END OF SCRIPT
# =============================================================================
