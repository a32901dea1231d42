"""Purchase-order sequence generator.

The counter is a single scalar collection. Increments go through
:meth:`RecordStore.compare_and_swap` so a second writer in the same process
cannot hand out a number twice; inside a lifecycle operation the increment is
staged on the operation's transaction and only becomes visible when the
purchase itself commits.
"""

from __future__ import annotations

from typing import Any

from . import log
from .constants import CollectionName
from .data_manager import RecordStore, StoreTransaction
from .errors import ConcurrentUpdateError


PURCHASE_ID_PREFIX = "PO"
MAX_ATTEMPTS = 5


def format_purchase_id(sequence: int) -> str:
    """Render a sequence value as a purchase-order id, e.g. ``PO00042``."""
    return f"{PURCHASE_ID_PREFIX}{sequence:05d}"


def _coerce_counter(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        log.warning("Sequence counter holds a non-integer value %r; treating it as 0", raw)
        return 0
    return max(value, 0)


class SequenceGenerator:
    """Monotonically increasing counter persisted in the record store."""

    def __init__(self, store: RecordStore, name: str = CollectionName.COUNTER.value) -> None:
        self.store = store
        self.name = name

    def current(self) -> int:
        return _coerce_counter(self.store.load(self.name, 0))

    def next(self) -> int:
        """Increment the stored counter and return the new value.

        Raises:
            ConcurrentUpdateError: If the counter kept changing underneath us
                for ``MAX_ATTEMPTS`` consecutive attempts.
        """
        for _ in range(MAX_ATTEMPTS):
            raw = self.store.load(self.name, 0)
            new_value = _coerce_counter(raw) + 1
            if self.store.compare_and_swap(self.name, raw, new_value, default=0):
                log.debug("Sequence '%s' advanced to %d", self.name, new_value)
                return new_value
        raise ConcurrentUpdateError(f"Could not advance sequence '{self.name}'")

    def reserve(self, tx: StoreTransaction) -> int:
        """Stage the next value on ``tx``; the counter moves only if ``tx`` commits."""
        new_value = _coerce_counter(tx.load(self.name, 0, guard=True)) + 1
        tx.stage(self.name, new_value)
        return new_value
