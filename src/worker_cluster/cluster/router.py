"""Routes worker lifecycle events to supervisor decisions."""

from __future__ import annotations

import logging

from worker_cluster.cluster.job_queue import JobQueue
from worker_cluster.cluster.models import (
    ClusterEvent,
    ClusterRunSummary,
    WorkerExited,
    WorkerForked,
    WorkerMessageReceived,
    WorkerOnline,
)
from worker_cluster.cluster.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)
process_logger = logging.getLogger("worker_cluster.process")


class LifecycleRouter:
    """Reacts to fork/online/exit/message events from the host.

    Handler failures are logged and swallowed: one misbehaving worker must
    not take the coordinator down.
    """

    def __init__(
        self,
        *,
        supervisor: ProcessSupervisor,
        job_queue: JobQueue,
        summary: ClusterRunSummary | None = None,
    ) -> None:
        self.supervisor = supervisor
        self.job_queue = job_queue
        self.summary = summary or ClusterRunSummary()

    def dispatch(self, event: ClusterEvent) -> None:
        try:
            if isinstance(event, WorkerForked):
                self.on_fork(event)
            elif isinstance(event, WorkerOnline):
                self.on_online(event)
            elif isinstance(event, WorkerExited):
                self.on_exit(event)
            elif isinstance(event, WorkerMessageReceived):
                self.on_message(event)
            else:
                logger.warning("Ignoring unknown cluster event %r", event)
        except Exception:  # noqa: BLE001
            logger.exception("Lifecycle handler failed for worker #%s", event.worker_id)

    def on_fork(self, event: WorkerForked) -> None:
        record = self.supervisor.mark_forked(event.worker_id, event.pid)
        self.summary.spawned += 1
        if record is not None:
            self.summary.jobs.append(record.job_id)
        process_logger.info(
            "The worker #%d is being created. Process pid %s.",
            event.worker_id,
            event.pid,
        )
        if self.job_queue.is_drained():
            return
        self.supervisor.try_spawn()

    def on_online(self, event: WorkerOnline) -> None:
        self.supervisor.mark_online(event.worker_id)
        process_logger.info(
            "The worker #%d is starting job... Process pid %s.",
            event.worker_id,
            event.pid,
        )

    def on_exit(self, event: WorkerExited) -> None:
        self.supervisor.mark_exited(event.worker_id, clean=event.clean)
        if event.clean:
            self.summary.succeeded += 1
            process_logger.info(
                "The worker #%d done his job. Process pid %s.",
                event.worker_id,
                event.pid,
            )
        else:
            self.summary.crashed += 1
            logger.warning(
                "The worker #%d crashed with code %s and signal %s. Starting a new worker...",
                event.worker_id,
                event.exit_code,
                event.signal,
            )

        self.supervisor.release(event.worker_id)
        logger.debug("Current queue length in exit: %d", len(self.job_queue))
        self.supervisor.try_spawn()

    def on_message(self, event: WorkerMessageReceived) -> None:
        self.summary.messages += 1
        self.supervisor.dispatch_message(event.worker_id, event.payload)
