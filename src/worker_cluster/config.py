"""Runtime configuration for the worker cluster."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from worker_cluster.cluster.errors import ConfigError

logger = logging.getLogger(__name__)

CURRENT_JOB_ENV_KEY = "SCRAPER"
DEFAULT_CONFIG_PATH = Path("cluster-config.yml")
_SUPPORTED_START_METHODS = ("fork", "forkserver", "spawn")


@dataclass(slots=True, frozen=True)
class ClusterConfig:
    """Cluster settings loaded once at coordinator startup."""

    worker_limit: int
    queue: tuple[str, ...] = ()
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    silent_mode: bool = False
    loop: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.worker_limit, bool) or self.worker_limit < 1:
            raise ConfigError(
                f"WORKER_LIMIT must be a positive integer, got {self.worker_limit}.",
            )

    def worker_env(self, job_id: str) -> dict[str, str]:
        """Build the environment snapshot handed to the worker for ``job_id``."""

        return {**self.env, CURRENT_JOB_ENV_KEY: job_id}

    def describe_env(self) -> str:
        return " ".join(f"{key}: {value}" for key, value in self.env.items())


@dataclass(slots=True)
class RuntimeSettings:
    """Process-level knobs that do not belong in the cluster document."""

    config_path: Path = DEFAULT_CONFIG_PATH
    start_method: str | None = None
    poll_interval_seconds: float = 0.5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> RuntimeSettings:
        """Load settings from environment with defaults for local runs."""

        start_method = os.getenv("WORKER_CLUSTER_START_METHOD", "").strip().lower() or None
        return cls(
            config_path=config_path
            or Path(os.getenv("WORKER_CLUSTER_CONFIG_PATH", str(DEFAULT_CONFIG_PATH))),
            start_method=start_method,
            poll_interval_seconds=float(
                os.getenv("WORKER_CLUSTER_POLL_INTERVAL_SECONDS", "0.5"),
            ),
            log_level=os.getenv("WORKER_CLUSTER_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for unusable runtime settings."""

        if self.start_method is not None and self.start_method not in _SUPPORTED_START_METHODS:
            raise ConfigError(
                f"Unsupported start method {self.start_method!r}; "
                f"expected one of {', '.join(_SUPPORTED_START_METHODS)}.",
            )
        if self.poll_interval_seconds <= 0:
            raise ConfigError("WORKER_CLUSTER_POLL_INTERVAL_SECONDS must be > 0.")


def clamp_worker_limit(limit: int, cpu_count: int | None = None) -> int:
    """Keep ``limit`` within the number of available CPUs."""

    if limit <= 0:
        raise ConfigError(f"WORKER_LIMIT must be a positive integer, got {limit}.")
    cpus = cpu_count or os.cpu_count() or 1
    if limit > cpus:
        logger.warning(
            "WORKER_LIMIT %d is bigger than the CPU count %d. Limit will be changed.",
            limit,
            cpus,
        )
        return cpus
    return limit


def load_cluster_config(path: Path, *, cpu_count: int | None = None) -> ClusterConfig:
    """Load the cluster YAML document and validate its fields."""

    try:
        raw = yaml.safe_load(Path(path).read_text("utf-8"))
    except FileNotFoundError as error:
        raise ConfigError(f"Cluster config not found: {path}") from error
    except (OSError, yaml.YAMLError) as error:
        raise ConfigError(f"Cannot load initial config {path}: {error}") from error

    if not isinstance(raw, dict):
        kind = "empty document" if raw is None else type(raw).__name__
        raise ConfigError(f"Expected YAML mapping at top level of {path}, got {kind}.")

    worker_limit = _require(raw, "WORKER_LIMIT", int)
    if isinstance(worker_limit, bool):
        raise ConfigError("WORKER_LIMIT must be an integer.")

    return ClusterConfig(
        worker_limit=clamp_worker_limit(worker_limit, cpu_count),
        queue=tuple(_string_list(raw, "QUEUE")),
        args=tuple(_string_list(raw, "ARGS")),
        env=_string_mapping(raw, "ENV_VARIABLES"),
        silent_mode=_require(raw, "SILENT_MODE", bool),
        loop=_optional_bool(raw, "LOOP"),
    )


def _require(raw: dict[str, Any], key: str, kind: type) -> Any:
    if key not in raw:
        raise ConfigError(f"Missing required config field {key}.")
    value = raw[key]
    if not isinstance(value, kind):
        raise ConfigError(f"{key} must be of type {kind.__name__}, got {type(value).__name__}.")
    return value


def _optional_bool(raw: dict[str, Any], key: str) -> bool:
    value = raw.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean, got {type(value).__name__}.")
    return value


def _string_list(raw: dict[str, Any], key: str) -> list[str]:
    value = raw.get(key)
    if value is None:
        if key == "QUEUE":
            raise ConfigError("Missing required config field QUEUE.")
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list of strings.")
    return [str(item) for item in value]


def _string_mapping(raw: dict[str, Any], key: str) -> dict[str, str]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping of strings.")
    return {str(name): str(item) for name, item in value.items()}
