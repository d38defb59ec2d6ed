from __future__ import annotations

from collections import deque
from typing import Deque, Dict

from .models import AlleleCounts, ConformationState


class ConformationCache:
    """Live conformation states keyed by allele counts, plus the FIFO worklist.

    A state is created and queued on first reference and evicted once it has
    been processed, so only the frontier of the search is resident.
    """

    def __init__(self, num_samples: int) -> None:
        self.num_samples = int(num_samples)
        self._states: Dict[AlleleCounts, ConformationState] = {}
        self._queue: Deque[ConformationState] = deque()
        self.peak_size = 0
        self.created = 0

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, counts: object) -> bool:
        return counts in self._states

    def has_pending(self) -> bool:
        return bool(self._queue)

    def get_or_create(self, counts: AlleleCounts) -> ConformationState:
        state = self._states.get(counts)
        if state is None:
            state = ConformationState(counts, self.num_samples)
            self._states[counts] = state
            self._queue.append(state)
            self.created += 1
            self.peak_size = max(self.peak_size, len(self._states))
        return state

    def pop(self) -> ConformationState:
        """Next state to process, in order of creation."""
        return self._queue.popleft()

    def evict(self, counts: AlleleCounts) -> None:
        state = self._states.pop(counts)
        state.mark_evicted()
