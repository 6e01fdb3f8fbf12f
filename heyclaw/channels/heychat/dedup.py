"""
Message dedup and concurrency gate.

Each message id moves ``unseen -> processing -> processed``:

- admission adds the id to *processed* immediately and to *processing*
  until the pipeline for it finishes;
- an id in either set is rejected;
- *processed* is bounded and evicts its oldest entry first.

No locks: every mutation happens between event-loop suspension points.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger


DEFAULT_CAPACITY = 1000


class Admission(str, Enum):
    ADMITTED = "admitted"
    DUPLICATE = "duplicate"
    IN_FLIGHT = "in_flight"

    def __bool__(self) -> bool:
        return self is Admission.ADMITTED


class DedupCache:
    """Bounded set of seen message ids plus the set of ids being processed."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        # dict preserves insertion order; values unused
        self._processed: dict[str, None] = {}
        self._processing: set[str] = set()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def check(self, msg_id: str) -> Admission:
        """Peek at the verdict ``admit`` would give, without mutating."""
        if msg_id in self._processed:
            return Admission.DUPLICATE
        if msg_id in self._processing:
            return Admission.IN_FLIGHT
        return Admission.ADMITTED

    def admit(self, msg_id: str) -> Admission:
        """Admit ``msg_id`` for processing unless seen or in flight."""
        verdict = self.check(msg_id)
        if verdict is not Admission.ADMITTED:
            return verdict

        self._processed[msg_id] = None
        self._processing.add(msg_id)

        if len(self._processed) > self.capacity:
            evicted = next(iter(self._processed))
            del self._processed[evicted]
            logger.debug("Dedup cache full, evicted | msg_id={}", evicted)

        return Admission.ADMITTED

    def release(self, msg_id: str) -> None:
        """Mark processing finished; *processed* membership is kept."""
        self._processing.discard(msg_id)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_processing(self, msg_id: str) -> bool:
        return msg_id in self._processing

    def __contains__(self, msg_id: object) -> bool:
        return msg_id in self._processed

    @property
    def processed_count(self) -> int:
        return len(self._processed)

    @property
    def in_flight_count(self) -> int:
        return len(self._processing)
