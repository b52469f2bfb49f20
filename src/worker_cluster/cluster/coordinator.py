"""Coordinator process: owns the job queue and supervises workers."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from worker_cluster.cluster.errors import handle_error
from worker_cluster.cluster.host import MultiprocessingHost, ProcessHost
from worker_cluster.cluster.job_queue import JobQueue
from worker_cluster.cluster.models import ClusterRunSummary, SpawnStatus
from worker_cluster.cluster.router import LifecycleRouter
from worker_cluster.cluster.supervisor import ProcessSupervisor
from worker_cluster.config import ClusterConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class ClusterCoordinator:
    """Runs jobs from the configured queue in at most ``worker_limit`` processes.

    The coordinator returns once the queue is drained (loop disabled) and
    every in-flight worker has exited; running jobs are always allowed to
    finish.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        config: ClusterConfig,
        job: Callable[[], Any],
        before_start: Callable[[], Any] | None = None,
        host: ProcessHost | None = None,
        poll_interval_seconds: float = 0.5,
    ) -> None:
        self.config = config
        self.before_start = before_start
        self.host = host or MultiprocessingHost()
        self.poll_interval_seconds = poll_interval_seconds
        self.job_queue = JobQueue(config.queue, loop=config.loop)
        self.summary = ClusterRunSummary()
        self.supervisor = ProcessSupervisor(
            config=config,
            job_queue=self.job_queue,
            host=self.host,
            job=job,
        )
        self.router = LifecycleRouter(
            supervisor=self.supervisor,
            job_queue=self.job_queue,
            summary=self.summary,
        )
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def start(self) -> int:
        """Run the coordinator and return the process exit status."""

        try:
            return self.run()
        except Exception as error:  # noqa: BLE001
            handle_error(error)
            self.host.terminate_all()
            return EXIT_FAILURE

    def run(self) -> int:
        _run_hook(self.before_start)

        logger.info("Coordinator process running with pid %d", os.getpid())
        logger.info("WORKER WILL START WITH ENV VARIABLES: %s", self.config.describe_env())

        with self._signal_handlers():
            first = self.supervisor.try_spawn()
            if first.status is SpawnStatus.QUEUE_DRAINED:
                logger.info("Finished work, empty queue. Cluster will be terminated...")
                return EXIT_OK

            while not self.finished:
                if self.supervisor.running_count == 0:
                    retry = self.supervisor.try_spawn()
                    if retry.status is SpawnStatus.AT_CAPACITY:
                        raise RuntimeError("No worker can be spawned with zero running workers.")
                    continue
                for event in self.host.next_events(self.poll_interval_seconds):
                    self.router.dispatch(event)

        if self._stop_requested:
            logger.info("Cluster stopped by %s.", self._stop_signal_name or "request")
        else:
            logger.info("Finished work, empty queue. Cluster will be terminated...")
        logger.info(
            "Workers spawned=%d succeeded=%d crashed=%d",
            self.summary.spawned,
            self.summary.succeeded,
            self.summary.crashed,
        )
        return EXIT_OK

    @property
    def finished(self) -> bool:
        if self.supervisor.running_count > 0:
            return False
        if self._stop_requested:
            return True
        return not self.job_queue.loop and self.job_queue.is_drained()

    def request_stop(self, *, signal_name: str | None = None) -> None:
        """Stop spawning and ask live workers to terminate."""

        if self._stop_requested:
            return
        self._stop_requested = True
        self._stop_signal_name = signal_name
        self.supervisor.stop_spawning()
        logger.warning("Stop requested (%s); terminating workers...", signal_name or "manual")
        self.host.terminate_all()

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return

        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def _run_hook(hook: Callable[[], Any] | None) -> None:
    if hook is None:
        return
    result = hook()
    if asyncio.iscoroutine(result):
        asyncio.run(result)
