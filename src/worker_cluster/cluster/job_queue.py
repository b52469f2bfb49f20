"""Job identifier queue with optional ring (loop) semantics."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable


class JobQueue:
    """Hands out job identifiers from the tail of the configured list.

    The last listed job is handed out first. With ``loop`` enabled every
    dequeued identifier is put back at the head, so the queue behaves as a
    ring and never drains unless it started empty.
    """

    def __init__(self, jobs: Iterable[str], *, loop: bool = False) -> None:
        self._jobs: deque[str] = deque(jobs)
        self.loop = loop
        self.current_job: str | None = None

    def next_job(self) -> str | None:
        """Take the next job identifier, or ``None`` when none is available."""

        if not self._jobs:
            return None
        job_id = self._jobs.pop()
        if self.loop:
            self._jobs.appendleft(job_id)
        self.current_job = job_id
        return job_id

    def is_drained(self) -> bool:
        return not self._jobs

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)
