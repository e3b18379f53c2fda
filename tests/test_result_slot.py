"""Tests for the single-slot last-result cache."""

from __future__ import annotations

from observation_pipeline.result_slot import LastResultSlot


def test_empty_slot_fetches_none() -> None:
    slot: LastResultSlot[str] = LastResultSlot()

    assert slot.is_empty
    assert slot.fetch() is None
    assert slot.generation == 0


def test_store_replaces_previous_value() -> None:
    slot: LastResultSlot[str] = LastResultSlot()

    slot.store("first")
    slot.store("second")

    assert slot.fetch() == "second"
    assert slot.generation == 2


def test_fetch_does_not_consume() -> None:
    slot: LastResultSlot[int] = LastResultSlot()
    slot.store(7)

    assert slot.fetch() == 7
    assert slot.fetch() == 7


def test_clear_empties_slot() -> None:
    slot: LastResultSlot[int] = LastResultSlot()
    slot.store(7)

    slot.clear()

    assert slot.is_empty
    assert slot.generation == 1
