"""Shared test fixtures."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable

import pytest

from worker_cluster.cluster.models import (
    ClusterEvent,
    WorkerExited,
    WorkerForked,
    WorkerOnline,
    WorkerSpec,
)
from worker_cluster.config import CURRENT_JOB_ENV_KEY


class FakeHost:
    """In-memory host: workers finish in spawn order when events are pulled."""

    def __init__(self, *, exit_code_for: Callable[[str], int] | None = None) -> None:
        self.exit_code_for = exit_code_for or (lambda _job_id: 0)
        self.specs: dict[int, WorkerSpec] = {}
        self.live: list[int] = []
        self.pending: deque[ClusterEvent] = deque()
        self.spawned_jobs: list[str] = []
        self.max_live = 0
        self.exits = 0
        self.terminate_calls = 0
        self._next_worker_id = 1
        self._stop_after: tuple[int, Callable[[], None]] | None = None

    def stop_after_exits(self, count: int, callback: Callable[[], None]) -> None:
        self._stop_after = (count, callback)

    def spawn(self, spec: WorkerSpec) -> int:
        worker_id = self._next_worker_id
        self._next_worker_id += 1
        self.specs[worker_id] = spec
        self.live.append(worker_id)
        self.spawned_jobs.append(spec.env[CURRENT_JOB_ENV_KEY])
        self.max_live = max(self.max_live, len(self.live))
        self.pending.append(WorkerForked(worker_id=worker_id, pid=1000 + worker_id))
        return worker_id

    def next_events(self, timeout: float | None = None) -> list[ClusterEvent]:
        if self.pending:
            events = list(self.pending)
            self.pending.clear()
            return events
        if not self.live:
            return []

        worker_id = self.live.pop(0)
        job_id = self.specs[worker_id].env[CURRENT_JOB_ENV_KEY]
        events: list[ClusterEvent] = [
            WorkerOnline(worker_id=worker_id, pid=1000 + worker_id),
            WorkerExited(
                worker_id=worker_id,
                exit_code=self.exit_code_for(job_id),
                pid=1000 + worker_id,
            ),
        ]
        self.exits += 1
        if self._stop_after is not None and self.exits == self._stop_after[0]:
            self._stop_after[1]()
        return events

    def terminate_all(self) -> None:
        self.terminate_calls += 1
        while self.live:
            worker_id = self.live.pop(0)
            self.pending.append(
                WorkerExited(worker_id=worker_id, exit_code=None, signal="SIGTERM"),
            )

    def live_count(self) -> int:
        return len(self.live)

    def finish(self, worker_id: int, exit_code: int | None = 0, signal: str | None = None) -> list:
        self.live.remove(worker_id)
        return [WorkerExited(worker_id=worker_id, exit_code=exit_code, signal=signal)]


@pytest.fixture()
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture()
def make_host() -> type[FakeHost]:
    return FakeHost
