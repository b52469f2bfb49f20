from __future__ import annotations

import logging

import allure
import pytest

from worker_cluster.cluster.job_queue import JobQueue
from worker_cluster.cluster.models import SpawnStatus, WorkerState
from worker_cluster.cluster.supervisor import ProcessSupervisor
from worker_cluster.config import CURRENT_JOB_ENV_KEY, ClusterConfig

pytestmark = [
    allure.epic("Cluster Runtime"),
    allure.feature("Process Supervisor"),
]


def _job() -> None:
    return None


def _supervisor(host, *, jobs, limit, loop=False, **config) -> ProcessSupervisor:
    cluster_config = ClusterConfig(worker_limit=limit, queue=tuple(jobs), loop=loop, **config)
    return ProcessSupervisor(
        config=cluster_config,
        job_queue=JobQueue(cluster_config.queue, loop=loop),
        host=host,
        job=_job,
    )


def test_try_spawn_passes_job_env_args_and_silent_flag(fake_host) -> None:
    supervisor = _supervisor(
        fake_host,
        jobs=["j1"],
        limit=1,
        args=("--fast",),
        env={"TARGET": "prod"},
        silent_mode=True,
    )

    result = supervisor.try_spawn()

    assert result.status is SpawnStatus.SPAWNED
    assert result.job_id == "j1"
    spec = fake_host.specs[result.worker_id]
    assert spec.env == {"TARGET": "prod", CURRENT_JOB_ENV_KEY: "j1"}
    assert spec.args == ("--fast",)
    assert spec.silent is True
    assert spec.job is _job
    assert supervisor.running_count == 1
    assert supervisor.record(result.worker_id).state is WorkerState.CREATED


def test_try_spawn_at_capacity_is_rejected_without_consuming_queue(fake_host, caplog) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1", "j2"], limit=1)
    supervisor.try_spawn()

    with caplog.at_level(logging.INFO, logger="worker_cluster"):
        result = supervisor.try_spawn()

    assert result.status is SpawnStatus.AT_CAPACITY
    assert len(supervisor.job_queue) == 1
    assert "running=1 limit=1" in caplog.text


def test_try_spawn_with_drained_queue_is_a_no_op(fake_host) -> None:
    supervisor = _supervisor(fake_host, jobs=[], limit=2)

    result = supervisor.try_spawn()

    assert result.status is SpawnStatus.QUEUE_DRAINED
    assert fake_host.specs == {}
    assert supervisor.running_count == 0


def test_env_snapshot_is_not_shared_between_spawns(fake_host) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1", "j2"], limit=2, env={"TARGET": "prod"})

    first = supervisor.try_spawn()
    second = supervisor.try_spawn()

    assert fake_host.specs[first.worker_id].env[CURRENT_JOB_ENV_KEY] == "j2"
    assert fake_host.specs[second.worker_id].env[CURRENT_JOB_ENV_KEY] == "j1"
    assert supervisor.config.env == {"TARGET": "prod"}


def test_release_frees_slot_once(fake_host) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1"], limit=1)
    worker_id = supervisor.try_spawn().worker_id

    record = supervisor.release(worker_id)

    assert record.job_id == "j1"
    assert supervisor.running_count == 0
    assert supervisor.running_workers == {}
    with pytest.raises(RuntimeError, match="already released"):
        supervisor.release(worker_id)


def test_stop_spawning_blocks_new_workers(fake_host) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1"], limit=1)
    supervisor.stop_spawning()

    assert supervisor.try_spawn().status is SpawnStatus.STOPPED
    assert len(supervisor.job_queue) == 1


def test_lifecycle_marks_update_record_state(fake_host) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1"], limit=1)
    worker_id = supervisor.try_spawn().worker_id

    supervisor.mark_forked(worker_id, 4242)
    supervisor.mark_online(worker_id)
    assert supervisor.record(worker_id).pid == 4242
    assert supervisor.record(worker_id).state is WorkerState.ONLINE

    supervisor.mark_exited(worker_id, clean=False)
    assert supervisor.record(worker_id).state is WorkerState.EXITED_CRASHED


def test_dispatch_message_from_unknown_worker_is_dropped(fake_host, caplog) -> None:
    supervisor = _supervisor(fake_host, jobs=["j1"], limit=1)

    supervisor.dispatch_message(99, {"message": "hi"})

    assert "unknown worker #99" in caplog.text
