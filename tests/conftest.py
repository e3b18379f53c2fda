"""Shared row and source-file builders for the test suite."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from observation_pipeline.normalize_rows import Row, SourceFile, format_timestamp

BASE_TIME = datetime(2024, 1, 1, 9, 0, 0)


def make_row(payload: str,
             seconds: Optional[float] = 0,
             actor: str = "Observer",
             source_file: str = "2024.01.01_a.xlsx",
             index: int = 0) -> Row:
    """Row stamped BASE_TIME + seconds, or with an unparseable timestamp when seconds is None."""
    if seconds is None:
        return Row(actor, "not a time", None, payload, source_file, index)

    timestamp = BASE_TIME + timedelta(seconds=seconds)
    return Row(actor, format_timestamp(timestamp), timestamp, payload, source_file, index)


def make_file(name: str, entries: Sequence[Tuple[float, str]], actor: str = "Observer") -> SourceFile:
    """Source file whose rows are (seconds after BASE_TIME, payload) pairs."""
    rows = [
        make_row(payload, seconds, actor=actor, source_file=name, index=index)
        for index, (seconds, payload) in enumerate(entries)
    ]
    return SourceFile(name=name, rows=rows)


def header_entries(start: float) -> List[Tuple[float, str]]:
    """The 5-row opening metadata block every observation file carries."""
    return [(start + offset, f"meta {offset}") for offset in range(5)]


@pytest.fixture()
def row_factory() -> Callable[..., Row]:
    return make_row


@pytest.fixture()
def file_factory() -> Callable[..., SourceFile]:
    return make_file
