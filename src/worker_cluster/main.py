"""CLI entrypoint for worker-cluster."""

from pathlib import Path

import rich_click as click

from worker_cluster import __version__
from worker_cluster.cluster.errors import ConfigError
from worker_cluster.config import RuntimeSettings
from worker_cluster.controllers import (
    ClusterCheckConfigCommand,
    ClusterCliController,
    ClusterRunCommand,
)
from worker_cluster.log import configure_logging

click.rich_click.USE_MARKDOWN = True
CLUSTER_CONTROLLER = ClusterCliController()


@click.group()
@click.version_option(version=__version__, prog_name="worker-cluster")
def worker_cluster() -> None:
    """Run queued jobs in a bounded pool of worker processes."""


@worker_cluster.command("run")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Cluster YAML config. Defaults to WORKER_CLUSTER_CONFIG_PATH or cluster-config.yml.",
)
@click.option(
    "--job",
    "job_ref",
    required=True,
    help="Job body to run in every worker, as module:function.",
)
@click.option(
    "--before-start",
    "before_start_ref",
    default=None,
    help="Optional hook run once in the coordinator before the first worker, as module:function.",
)
@click.option(
    "--start-method",
    type=click.Choice(["fork", "forkserver", "spawn"], case_sensitive=False),
    default=None,
    help="multiprocessing start method. Defaults to WORKER_CLUSTER_START_METHOD or the platform default.",
)
@click.option(
    "--poll-interval",
    "poll_interval_seconds",
    type=click.FloatRange(min=0.01),
    default=None,
    help="Seconds between stop-request checks while waiting for worker events.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level. Defaults to WORKER_CLUSTER_LOG_LEVEL or INFO.",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable colored log tags.")
def run(  # noqa: PLR0913
    config_path: Path | None,
    job_ref: str,
    before_start_ref: str | None,
    start_method: str | None,
    poll_interval_seconds: float | None,
    log_level: str | None,
    no_color: bool,
) -> None:
    """Start the coordinator and run every queued job."""

    level = (log_level or RuntimeSettings.from_env().log_level).upper()
    configure_logging(level, color=not no_color)
    result = CLUSTER_CONTROLLER.run(
        ClusterRunCommand(
            config_path=config_path,
            job_ref=job_ref,
            before_start_ref=before_start_ref,
            start_method=start_method.lower() if start_method else None,
            poll_interval_seconds=poll_interval_seconds,
        ),
    )
    if result.summary is not None:
        click.echo(
            f"Workers spawned={result.summary.spawned} "
            f"succeeded={result.summary.succeeded} crashed={result.summary.crashed}",
        )
    raise SystemExit(result.exit_code)


@worker_cluster.command("check-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Cluster YAML config. Defaults to WORKER_CLUSTER_CONFIG_PATH or cluster-config.yml.",
)
def check_config(config_path: Path | None) -> None:
    """Load the cluster config and print what the coordinator would run."""

    try:
        lines = CLUSTER_CONTROLLER.check_config(ClusterCheckConfigCommand(config_path=config_path))
    except ConfigError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    worker_cluster()
