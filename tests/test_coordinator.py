from __future__ import annotations

import logging

import allure

from worker_cluster.cluster.coordinator import EXIT_FAILURE, EXIT_OK, ClusterCoordinator
from worker_cluster.config import ClusterConfig

pytestmark = [
    allure.epic("Cluster Runtime"),
    allure.feature("Coordinator"),
]


def _job() -> None:
    return None


def _coordinator(host, *, jobs, limit, loop=False, before_start=None) -> ClusterCoordinator:
    return ClusterCoordinator(
        config=ClusterConfig(worker_limit=limit, queue=tuple(jobs), loop=loop),
        job=_job,
        before_start=before_start,
        host=host,
        poll_interval_seconds=0.01,
    )


def test_two_workers_run_three_jobs_exactly_once(fake_host) -> None:
    coordinator = _coordinator(fake_host, jobs=["j1", "j2", "j3"], limit=2)

    assert coordinator.start() == EXIT_OK

    assert fake_host.spawned_jobs == ["j3", "j2", "j1"]
    assert fake_host.max_live == 2
    assert coordinator.summary.spawned == 3
    assert coordinator.summary.succeeded == 3
    assert coordinator.supervisor.running_count == 0
    assert coordinator.job_queue.is_drained()


def test_non_looping_run_spawns_one_worker_per_job(make_host) -> None:
    host = make_host()
    jobs = [f"job-{index}" for index in range(7)]
    coordinator = _coordinator(host, jobs=jobs, limit=3)

    assert coordinator.start() == EXIT_OK
    assert sorted(host.spawned_jobs) == sorted(jobs)
    assert len(host.spawned_jobs) == len(jobs)


def test_empty_queue_terminates_without_spawning(fake_host, caplog) -> None:
    coordinator = _coordinator(fake_host, jobs=[], limit=2)

    with caplog.at_level(logging.INFO, logger="worker_cluster"):
        assert coordinator.start() == EXIT_OK

    assert fake_host.specs == {}
    assert "Finished work, empty queue" in caplog.text


def test_empty_looping_queue_also_terminates(fake_host) -> None:
    coordinator = _coordinator(fake_host, jobs=[], limit=1, loop=True)

    assert coordinator.start() == EXIT_OK
    assert fake_host.specs == {}


def test_crashing_jobs_are_replaced_and_run_still_finishes(make_host) -> None:
    host = make_host(exit_code_for=lambda job_id: 1 if job_id == "bad" else 0)
    coordinator = _coordinator(host, jobs=["ok-1", "bad", "ok-2"], limit=1)

    assert coordinator.start() == EXIT_OK
    assert host.spawned_jobs == ["ok-2", "bad", "ok-1"]
    assert coordinator.summary.crashed == 1
    assert coordinator.summary.succeeded == 2


def test_looping_queue_respawns_crashing_job_until_stopped(make_host) -> None:
    host = make_host(exit_code_for=lambda _job_id: 1)
    coordinator = _coordinator(host, jobs=["j1"], limit=1, loop=True)
    host.stop_after_exits(6, coordinator.request_stop)

    assert coordinator.start() == EXIT_OK
    assert host.spawned_jobs == ["j1"] * 6
    assert coordinator.summary.crashed == 6
    assert not coordinator.job_queue.is_drained()


def test_request_stop_terminates_live_workers(make_host) -> None:
    host = make_host()
    coordinator = _coordinator(host, jobs=["a", "b", "c", "d"], limit=2, loop=True)
    host.stop_after_exits(1, coordinator.request_stop)

    assert coordinator.start() == EXIT_OK
    assert host.terminate_calls == 1
    assert coordinator.supervisor.running_count == 0


def test_sync_and_async_before_start_hooks_run_once(fake_host) -> None:
    calls: list[str] = []

    def sync_hook() -> None:
        calls.append("sync")

    async def async_hook() -> None:
        calls.append("async")

    assert _coordinator(fake_host, jobs=["a"], limit=1, before_start=sync_hook).start() == EXIT_OK
    assert _coordinator(fake_host, jobs=[], limit=1, before_start=async_hook).start() == EXIT_OK
    assert calls == ["sync", "async"]


def test_before_start_failure_is_fatal_and_classified(fake_host, caplog) -> None:
    def broken_hook() -> None:
        raise RuntimeError("proxy pool unavailable")

    coordinator = _coordinator(fake_host, jobs=["a"], limit=1, before_start=broken_hook)

    assert coordinator.start() == EXIT_FAILURE
    assert fake_host.specs == {}
    assert "Coordinator failed with reason: proxy pool unavailable" in caplog.text


def test_spawn_failure_at_startup_is_fatal(make_host, caplog) -> None:
    class BrokenHost(make_host):
        def spawn(self, spec):
            raise OSError("fork failed")

    host = BrokenHost()
    coordinator = _coordinator(host, jobs=["a"], limit=1)

    assert coordinator.start() == EXIT_FAILURE
    assert host.terminate_calls == 1
    assert "fork failed" in caplog.text


def test_no_spawn_capacity_with_idle_cluster_is_fatal(fake_host, monkeypatch, caplog) -> None:
    coordinator = _coordinator(fake_host, jobs=["a"], limit=1)
    monkeypatch.setattr(type(coordinator.supervisor), "worker_limit", property(lambda _self: 0))

    assert coordinator.start() == EXIT_FAILURE
    assert fake_host.specs == {}
    assert "No worker can be spawned" in caplog.text


def test_host_has_no_live_workers_after_run(fake_host) -> None:
    assert _coordinator(fake_host, jobs=["a", "b"], limit=2).start() == EXIT_OK
    assert fake_host.live_count() == 0
