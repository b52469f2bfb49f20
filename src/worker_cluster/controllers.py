"""Controllers for worker-cluster CLI commands."""

from __future__ import annotations

import importlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from worker_cluster.cluster.coordinator import EXIT_FAILURE, ClusterCoordinator
from worker_cluster.cluster.errors import ConfigError, handle_error
from worker_cluster.cluster.host import MultiprocessingHost
from worker_cluster.cluster.models import ClusterRunSummary
from worker_cluster.config import ClusterConfig, RuntimeSettings, load_cluster_config


@dataclass(slots=True)
class ClusterRunCommand:
    """CLI input for a coordinator run."""

    config_path: Path | None
    job_ref: str
    before_start_ref: str | None = None
    start_method: str | None = None
    poll_interval_seconds: float | None = None


@dataclass(slots=True)
class ClusterCheckConfigCommand:
    """CLI input for configuration inspection."""

    config_path: Path | None


@dataclass(slots=True)
class ClusterRunResult:
    """Coordinator outcome to report in CLI."""

    exit_code: int
    summary: ClusterRunSummary | None


class ClusterCliController:
    """Coordinates configuration loading and coordinator runs for the CLI."""

    def run(self, command: ClusterRunCommand) -> ClusterRunResult:
        settings = _settings(command.config_path)
        if command.start_method is not None:
            settings.start_method = command.start_method
        if command.poll_interval_seconds is not None:
            settings.poll_interval_seconds = command.poll_interval_seconds

        try:
            settings.validate()
            config = load_cluster_config(settings.config_path)
            job = resolve_callable(command.job_ref)
            before_start = (
                resolve_callable(command.before_start_ref) if command.before_start_ref else None
            )
        except ConfigError as error:
            handle_error(error)
            return ClusterRunResult(exit_code=EXIT_FAILURE, summary=None)

        coordinator = ClusterCoordinator(
            config=config,
            job=job,
            before_start=before_start,
            host=MultiprocessingHost(start_method=settings.start_method),
            poll_interval_seconds=settings.poll_interval_seconds,
        )
        exit_code = coordinator.start()
        return ClusterRunResult(exit_code=exit_code, summary=coordinator.summary)

    def check_config(self, command: ClusterCheckConfigCommand) -> list[str]:
        settings = _settings(command.config_path)
        config = load_cluster_config(settings.config_path)
        return render_config_lines(config, config_path=settings.config_path)


def render_config_lines(config: ClusterConfig, *, config_path: Path) -> list[str]:
    order = " -> ".join(reversed(config.queue)) or "<empty>"
    return [
        f"Config: {config_path}",
        f"Worker limit: {config.worker_limit}",
        f"Loop: {'yes' if config.loop else 'no'}",
        f"Silent mode: {'yes' if config.silent_mode else 'no'}",
        f"Jobs ({len(config.queue)}), run order: {order}",
        f"Args: {' '.join(config.args) or '<none>'}",
        f"Env: {config.describe_env() or '<none>'}",
    ]


def resolve_callable(reference: str) -> Callable[[], Any]:
    """Import ``module:attribute`` and return the callable it names."""

    module_name, separator, attribute = reference.partition(":")
    if not separator or not module_name or not attribute:
        raise ConfigError(f"Callable reference must look like 'module:function', got {reference!r}.")
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as error:
        raise ConfigError(f"Cannot import module {module_name!r}: {error}") from error
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as error:
            raise ConfigError(f"{module_name!r} has no attribute {attribute!r}.") from error
    if not callable(target):
        raise ConfigError(f"{reference!r} is not callable.")
    return target


def _settings(config_path: Path | None) -> RuntimeSettings:
    return RuntimeSettings.from_env(config_path=config_path)
