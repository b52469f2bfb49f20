"""Domain models for worker lifecycle and spawn bookkeeping."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class WorkerState(str, Enum):
    """Per-worker lifecycle states."""

    CREATED = "created"
    ONLINE = "online"
    EXITED_CLEAN = "exited_clean"
    EXITED_CRASHED = "exited_crashed"


class SpawnStatus(str, Enum):
    """Outcome of one spawn attempt."""

    SPAWNED = "spawned"
    AT_CAPACITY = "at_capacity"
    QUEUE_DRAINED = "queue_drained"
    STOPPED = "stopped"


@dataclass(slots=True)
class WorkerRecord:
    """Running worker identity plus its lifecycle state."""

    worker_id: int
    job_id: str
    state: WorkerState = WorkerState.CREATED
    pid: int | None = None


@dataclass(slots=True)
class SpawnResult:
    """Result of ``ProcessSupervisor.try_spawn``."""

    status: SpawnStatus
    worker_id: int | None = None
    job_id: str | None = None

    @property
    def spawned(self) -> bool:
        return self.status is SpawnStatus.SPAWNED


@dataclass(slots=True)
class WorkerSpec:
    """Everything the host needs to start one worker process."""

    job: Callable[[], Any]
    env: dict[str, str]
    args: tuple[str, ...] = ()
    silent: bool = False


@dataclass(slots=True, frozen=True)
class WorkerForked:
    worker_id: int
    pid: int | None = None


@dataclass(slots=True, frozen=True)
class WorkerOnline:
    worker_id: int
    pid: int | None = None


@dataclass(slots=True, frozen=True)
class WorkerExited:
    """Worker process ended; ``signal`` is set when it was killed by one."""

    worker_id: int
    exit_code: int | None
    signal: str | None = None
    pid: int | None = None

    @property
    def clean(self) -> bool:
        return self.exit_code == 0 and self.signal is None


@dataclass(slots=True, frozen=True)
class WorkerMessageReceived:
    worker_id: int
    payload: Any = None


ClusterEvent = WorkerForked | WorkerOnline | WorkerExited | WorkerMessageReceived


@dataclass(slots=True)
class ClusterRunSummary:
    """Aggregate coordinator counters for CLI reporting."""

    spawned: int = 0
    succeeded: int = 0
    crashed: int = 0
    messages: int = 0
    jobs: list[str] = field(default_factory=list)
