# =============================================================================
# LAST RESULT SLOT
# =============================================================================
# - Hold exactly one computed result for a later retrieval/download step
# - Every store overwrites the previous value; there is no expiry or eviction
# - Injectable, so callers can swap in a per-session store


from typing import Generic, Optional, TypeVar


T = TypeVar('T')


class LastResultSlot(Generic[T]):
    """
    Single-slot holder. store() replaces, fetch() never clears.

    Consumers must fetch before triggering the next computation.
    """

    def __init__(self) -> None:
        self._value: Optional[T] = None
        self._generation = 0

    @property
    def is_empty(self) -> bool:
        return self._value is None

    @property
    def generation(self) -> int:
        # Number of stores so far
        return self._generation

    def store(self, value: T) -> None:
        self._value = value
        self._generation += 1

    def fetch(self) -> Optional[T]:
        return self._value

    def clear(self) -> None:
        self._value = None


# =============================================================================
# END OF SCRIPT
# =============================================================================
