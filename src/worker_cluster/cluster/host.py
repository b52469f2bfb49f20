"""Host process manager backed by ``multiprocessing``."""

from __future__ import annotations

import asyncio
import multiprocessing
import os
import signal
import sys
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from multiprocessing.connection import Connection, wait
from multiprocessing.process import BaseProcess
from typing import Any, Protocol

from worker_cluster.cluster.models import (
    ClusterEvent,
    WorkerExited,
    WorkerForked,
    WorkerMessageReceived,
    WorkerOnline,
    WorkerSpec,
)
from worker_cluster.cluster.protocol import (
    FRAME_MESSAGE,
    FRAME_ONLINE,
    WORKER_ID_ENV_KEY,
    bind_channel,
)


class ProcessHost(Protocol):
    """Protocol implemented by process managers the supervisor delegates to."""

    def spawn(self, spec: WorkerSpec) -> int:
        """Start a worker process and return its worker id."""

    def next_events(self, timeout: float | None = None) -> list[ClusterEvent]:
        """Return the next batch of lifecycle events, in delivery order."""

    def terminate_all(self) -> None:
        """Ask every live worker to stop."""

    def live_count(self) -> int:
        """Return how many spawned workers have not been reaped yet."""


@dataclass(slots=True)
class _LiveWorker:
    worker_id: int
    process: BaseProcess
    connection: Connection | None


class MultiprocessingHost:
    """Spawn workers as OS processes and turn their lifecycle into events."""

    def __init__(self, *, start_method: str | None = None) -> None:
        self._context = multiprocessing.get_context(start_method)
        self._next_worker_id = 1
        self._workers: dict[int, _LiveWorker] = {}
        self._pending: deque[ClusterEvent] = deque()

    def spawn(self, spec: WorkerSpec) -> int:
        worker_id = self._next_worker_id
        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=run_worker,
            args=(worker_id, spec, sender),
            name=f"cluster-worker-{worker_id}",
        )
        try:
            process.start()
        except BaseException:
            receiver.close()
            raise
        finally:
            sender.close()
        self._next_worker_id += 1
        self._workers[worker_id] = _LiveWorker(
            worker_id=worker_id,
            process=process,
            connection=receiver,
        )
        self._pending.append(WorkerForked(worker_id=worker_id, pid=process.pid))
        return worker_id

    def next_events(self, timeout: float | None = None) -> list[ClusterEvent]:
        if self._pending:
            events = list(self._pending)
            self._pending.clear()
            return events

        waitables: dict[Any, _LiveWorker] = {}
        for worker in self._workers.values():
            if worker.connection is not None:
                waitables[worker.connection] = worker
            waitables[worker.process.sentinel] = worker
        if not waitables:
            return []

        events: list[ClusterEvent] = []
        exited: dict[int, _LiveWorker] = {}
        for handle in wait(list(waitables), timeout):
            worker = waitables[handle]
            if handle is worker.connection:
                events.extend(self._drain(worker))
            else:
                exited[worker.worker_id] = worker

        for worker in exited.values():
            # Messages written before exit must be seen before the exit itself.
            events.extend(self._drain(worker))
            events.append(self._reap(worker))
        return events

    def terminate_all(self) -> None:
        for worker in self._workers.values():
            if worker.process.is_alive():
                worker.process.terminate()

    def live_count(self) -> int:
        return len(self._workers)

    def _drain(self, worker: _LiveWorker) -> list[ClusterEvent]:
        events: list[ClusterEvent] = []
        connection = worker.connection
        while connection is not None:
            try:
                if not connection.poll():
                    break
                frame = connection.recv()
            except (EOFError, OSError):
                connection.close()
                worker.connection = None
                break

            kind, payload = frame if _is_frame(frame) else (FRAME_MESSAGE, frame)
            if kind == FRAME_ONLINE:
                events.append(WorkerOnline(worker_id=worker.worker_id, pid=worker.process.pid))
            else:
                events.append(WorkerMessageReceived(worker_id=worker.worker_id, payload=payload))
        return events

    def _reap(self, worker: _LiveWorker) -> WorkerExited:
        process = worker.process
        process.join()
        pid = process.pid
        exitcode = process.exitcode
        if worker.connection is not None:
            worker.connection.close()
            worker.connection = None
        process.close()
        del self._workers[worker.worker_id]

        if exitcode is not None and exitcode < 0:
            return WorkerExited(
                worker_id=worker.worker_id,
                exit_code=None,
                signal=_signal_name(-exitcode),
                pid=pid,
            )
        return WorkerExited(worker_id=worker.worker_id, exit_code=exitcode, pid=pid)


def run_worker(worker_id: int, spec: WorkerSpec, connection: Connection) -> None:
    """Entry point executed inside every worker process."""

    signal.signal(signal.SIGINT, signal.default_int_handler)
    signal.signal(signal.SIGTERM, signal.SIG_DFL)

    os.environ.update(spec.env)
    os.environ[WORKER_ID_ENV_KEY] = str(worker_id)
    program = sys.argv[0] if sys.argv else "worker"
    sys.argv = [program, *spec.args]
    if spec.silent:
        _silence_output()

    bind_channel(connection)
    connection.send((FRAME_ONLINE, None))
    start_job(spec.job)


def start_job(job: Callable[[], Any]) -> None:
    """Run the user job body; coroutine results are driven to completion."""

    result = job()
    if asyncio.iscoroutine(result):
        asyncio.run(result)


def _silence_output() -> None:
    sys.stdout.flush()
    sys.stderr.flush()
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, 1)
        os.dup2(devnull, 2)
    finally:
        os.close(devnull)


def _is_frame(frame: object) -> bool:
    return isinstance(frame, tuple) and len(frame) == 2  # noqa: PLR2004


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
