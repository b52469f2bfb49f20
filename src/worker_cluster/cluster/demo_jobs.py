"""Deterministic job bodies for local runs and integration tests."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

from worker_cluster.cluster.protocol import ControlAction, send_to_coordinator
from worker_cluster.config import CURRENT_JOB_ENV_KEY


def echo_job() -> None:
    """Print the job id and worker args, then finish cleanly."""

    print(f"job={os.getenv(CURRENT_JOB_ENV_KEY, '')} args={' '.join(sys.argv[1:])}")


async def async_echo_job() -> None:
    await asyncio.sleep(0)
    echo_job()


def crash_job() -> None:
    """Exit with ``WORKER_CLUSTER_DEMO_EXIT_CODE`` (default 1)."""

    sys.exit(int(os.getenv("WORKER_CLUSTER_DEMO_EXIT_CODE", "1")))


def recording_job() -> None:
    """Write the job id, worker args and environment to ``WORKER_CLUSTER_DEMO_OUTPUT``."""

    job_id = os.getenv(CURRENT_JOB_ENV_KEY, "")
    target = Path(os.environ["WORKER_CLUSTER_DEMO_OUTPUT"]) / f"{job_id}.json"
    target.write_text(
        json.dumps({"job": job_id, "args": sys.argv[1:], "env": dict(os.environ)}),
        "utf-8",
    )


def reporting_job() -> None:
    """Report the job id back to the coordinator before finishing."""

    send_to_coordinator(
        ControlAction.CHECK_QUEUE,
        f"finished {os.getenv(CURRENT_JOB_ENV_KEY, '')}",
    )


def announce_start() -> None:
    """Sample pre-start hook."""

    print("Cluster is starting.")
