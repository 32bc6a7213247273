"""Bounded, newest-first history of submitted jobs."""

from collections import deque
from typing import Deque, Iterator, List, Optional

from zimage.jobs.models import Job


class JobHistory:
    """Keeps the most recent jobs for re-inspection.

    - Newest entry first
    - Inserting past capacity evicts the oldest entry
    - Entries are the live Job objects, so later status changes show up here
    """

    def __init__(self, capacity: int = 12):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._entries: Deque[Job] = deque(maxlen=capacity)
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, job: Job) -> Optional[Job]:
        """Insert a job at the front. Returns the evicted job, if any."""
        evicted = None
        if len(self._entries) == self._capacity:
            evicted = self._entries[-1]
        self._entries.appendleft(job)
        return evicted

    def get(self, entry_id: str) -> Optional[Job]:
        for job in self._entries:
            if job.entry_id == entry_id:
                return job
        return None

    def clear(self) -> None:
        self._entries.clear()

    def list(self) -> List[Job]:
        return list(self._entries)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
