"""Concurrency-bounded spawning and running-worker bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from worker_cluster.cluster.host import ProcessHost
from worker_cluster.cluster.job_queue import JobQueue
from worker_cluster.cluster.models import (
    SpawnResult,
    SpawnStatus,
    WorkerRecord,
    WorkerSpec,
    WorkerState,
)
from worker_cluster.cluster.protocol import ControlMessageListener, parse_control_message
from worker_cluster.config import ClusterConfig

logger = logging.getLogger(__name__)

MessageListener = Callable[[int, Any], None]


class ProcessSupervisor:
    """Owns the running-worker set and gates spawning by ``worker_limit``.

    All methods are expected to be called from the coordinator's single event
    loop; the capacity check and the spawn it guards are never interleaved.
    """

    def __init__(
        self,
        *,
        config: ClusterConfig,
        job_queue: JobQueue,
        host: ProcessHost,
        job: Callable[[], Any],
        listener_factory: Callable[[], MessageListener] = ControlMessageListener,
    ) -> None:
        self.config = config
        self.job_queue = job_queue
        self.host = host
        self.job = job
        self.listener_factory = listener_factory
        self.running_count = 0
        self.spawned_total = 0
        self._records: dict[int, WorkerRecord] = {}
        self._listeners: dict[int, MessageListener] = {}
        self._accepting = True

    @property
    def worker_limit(self) -> int:
        return self.config.worker_limit

    @property
    def running_workers(self) -> dict[int, WorkerRecord]:
        return dict(self._records)

    def record(self, worker_id: int) -> WorkerRecord | None:
        return self._records.get(worker_id)

    def try_spawn(self) -> SpawnResult:
        """Spawn one worker for the next job when capacity allows."""

        if not self._accepting:
            return SpawnResult(status=SpawnStatus.STOPPED)
        if self.running_count >= self.worker_limit:
            logger.info(
                "FULL QUEUE: running=%d limit=%d",
                self.running_count,
                self.worker_limit,
            )
            return SpawnResult(status=SpawnStatus.AT_CAPACITY)

        job_id = self.job_queue.next_job()
        if job_id is None:
            return SpawnResult(status=SpawnStatus.QUEUE_DRAINED)

        worker_id = self.host.spawn(
            WorkerSpec(
                job=self.job,
                env=self.config.worker_env(job_id),
                args=self.config.args,
                silent=self.config.silent_mode,
            ),
        )
        if worker_id in self._records:
            raise RuntimeError(f"Host reused live worker id {worker_id}.")
        self._records[worker_id] = WorkerRecord(worker_id=worker_id, job_id=job_id)
        self._listeners[worker_id] = self.listener_factory()
        self.running_count += 1
        self.spawned_total += 1
        self._check_invariants()
        return SpawnResult(status=SpawnStatus.SPAWNED, worker_id=worker_id, job_id=job_id)

    def release(self, worker_id: int) -> WorkerRecord:
        """Forget an exited worker and free its slot."""

        record = self._records.pop(worker_id, None)
        if record is None:
            raise RuntimeError(f"Worker #{worker_id} is not running or was already released.")
        self._listeners.pop(worker_id, None)
        self.running_count -= 1
        self._check_invariants()
        return record

    def mark_forked(self, worker_id: int, pid: int | None) -> WorkerRecord | None:
        record = self._records.get(worker_id)
        if record is not None:
            record.pid = pid
        return record

    def mark_online(self, worker_id: int) -> WorkerRecord | None:
        record = self._records.get(worker_id)
        if record is not None and record.state is WorkerState.CREATED:
            record.state = WorkerState.ONLINE
        return record

    def mark_exited(self, worker_id: int, *, clean: bool) -> WorkerRecord | None:
        record = self._records.get(worker_id)
        if record is not None:
            record.state = WorkerState.EXITED_CLEAN if clean else WorkerState.EXITED_CRASHED
        return record

    def dispatch_message(self, worker_id: int, payload: object) -> None:
        listener = self._listeners.get(worker_id)
        if listener is None:
            logger.warning("Dropping message from unknown worker #%d", worker_id)
            return
        listener(worker_id, parse_control_message(payload))

    def stop_spawning(self) -> None:
        self._accepting = False

    def _check_invariants(self) -> None:
        if self.running_count > self.worker_limit:
            raise RuntimeError(
                f"Running workers {self.running_count} exceed limit {self.worker_limit}.",
            )
        if self.running_count != len(self._records):
            raise RuntimeError(
                f"Running count {self.running_count} does not match "
                f"{len(self._records)} tracked workers.",
            )
