"""Failure types and top-level failure classification for the coordinator."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields, is_dataclass
from enum import Enum

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Caught unknown error."


class ClusterError(Exception):
    """Base class for cluster failures."""


class ConfigError(ClusterError):
    """Cluster configuration could not be loaded or validated."""


class WorkerCrash(ClusterError):
    """Worker process ended with a non-zero exit code or a signal."""

    def __init__(self, worker_id: int, *, exit_code: int | None, signal: str | None) -> None:
        super().__init__(
            f"Worker #{worker_id} crashed with code {exit_code} and signal {signal}.",
        )
        self.worker_id = worker_id
        self.exit_code = exit_code
        self.signal = signal


class UnhandledFault(ClusterError):
    """Wraps an arbitrary failure value that escaped the coordinator."""

    def __init__(self, payload: object) -> None:
        super().__init__(str(payload))
        self.payload = payload


class FailureKind(str, Enum):
    """Normalized failure kinds reported by the classifier."""

    CONFIG = "config"
    WORKER_CRASH = "worker_crash"
    STRUCTURED = "structured"
    UNKNOWN = "unknown"
    OPAQUE = "opaque"


@dataclass(slots=True)
class FailureReport:
    """Log-ready failure classification result."""

    kind: FailureKind
    lines: list[str]


def classify_failure(value: object) -> FailureReport:
    """Turn any failure value into uniform report lines."""

    error = value if isinstance(value, ClusterError) else UnhandledFault(value)

    if isinstance(error, ConfigError):
        return FailureReport(kind=FailureKind.CONFIG, lines=[f"Cannot load config: {error}"])
    if isinstance(error, WorkerCrash):
        return FailureReport(
            kind=FailureKind.WORKER_CRASH,
            lines=[
                f"worker_id: {error.worker_id}",
                f"exit_code: {error.exit_code}",
                f"signal: {error.signal}",
            ],
        )
    if isinstance(error, UnhandledFault):
        return _classify_payload(error.payload)
    return _classify_payload(error)


def handle_error(value: object) -> FailureReport:
    """Log a failure that reached the top-level boundary."""

    report = classify_failure(value)
    for line in report.lines:
        logger.error(line)
    return report


def _classify_payload(payload: object) -> FailureReport:
    if payload is None:
        return FailureReport(kind=FailureKind.UNKNOWN, lines=[UNKNOWN_ERROR_MESSAGE])

    pairs = _enumerable_pairs(payload)
    if pairs or isinstance(payload, Mapping):
        return FailureReport(
            kind=FailureKind.STRUCTURED,
            lines=[f"{key}: {item}" for key, item in pairs],
        )
    return FailureReport(
        kind=FailureKind.OPAQUE,
        lines=[f"Coordinator failed with reason: {payload}"],
    )


def _enumerable_pairs(payload: object) -> list[tuple[str, object]]:
    if isinstance(payload, Mapping):
        return [(str(key), item) for key, item in payload.items()]
    if is_dataclass(payload) and not isinstance(payload, type):
        return [(item.name, getattr(payload, item.name)) for item in fields(payload)]
    if isinstance(payload, (str, bytes, int, float, bool)):
        return []
    attributes = getattr(payload, "__dict__", None)
    if not attributes:
        return []
    return [(key, item) for key, item in attributes.items() if not key.startswith("_")]
