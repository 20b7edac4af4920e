"""
In-memory import progress tracking.

Import jobs live in this process only: a restart forgets them, and pollers
cannot tell an unknown id from a forgotten or evicted one. The tracker is
only touched from the event loop, so it takes no locks.
"""

import logging
import time
from typing import Callable, Dict, Optional

from tradebook.schemas import ImportProgress

logger = logging.getLogger(__name__)


class ImportProgressTracker:
    """Import id -> progress state, with finished jobs evicted after a TTL."""

    def __init__(self, ttl_seconds: int = 3600, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._jobs: Dict[str, ImportProgress] = {}
        self._finished_at: Dict[str, float] = {}

    def create(self, import_id: str, state: Optional[ImportProgress] = None) -> ImportProgress:
        self.evict_expired()
        state = state or ImportProgress()
        self._jobs[import_id] = state
        self._mark_if_finished(import_id, state)
        return state

    def get(self, import_id: str) -> Optional[ImportProgress]:
        self.evict_expired()
        return self._jobs.get(import_id)

    def update(self, import_id: str, **changes) -> Optional[ImportProgress]:
        state = self._jobs.get(import_id)
        if state is None:
            return None
        for name, value in changes.items():
            setattr(state, name, value)
        self._mark_if_finished(import_id, state)
        return state

    def _mark_if_finished(self, import_id: str, state: ImportProgress) -> None:
        if state.finished:
            self._finished_at.setdefault(import_id, self._clock())

    def evict_expired(self) -> int:
        if self.ttl_seconds <= 0:
            return 0
        cutoff = self._clock() - self.ttl_seconds
        expired = [job_id for job_id, done in self._finished_at.items() if done <= cutoff]
        for job_id in expired:
            self._jobs.pop(job_id, None)
            self._finished_at.pop(job_id, None)
        if expired:
            logger.info(f"Evicted {len(expired)} finished import job(s)")
        return len(expired)
