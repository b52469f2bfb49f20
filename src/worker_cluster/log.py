"""Console logging setup for the coordinator CLI."""

from __future__ import annotations

import logging

import click

PROCESS_LOGGER_NAME = "worker_cluster.process"
_SEPARATOR = "---------------------------------"

_LEVEL_TAGS: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("DEBUG", "white"),
    logging.INFO: ("INFO", "bright_cyan"),
    logging.WARNING: ("WARNING", "bright_yellow"),
    logging.ERROR: ("ERROR", "bright_red"),
    logging.CRITICAL: ("ERROR", "bright_red"),
}


class ClusterLogFormatter(logging.Formatter):
    """Tag each line with its category, lifecycle lines as ``[PROCESS]``."""

    def __init__(self, *, color: bool = True) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        if record.name == PROCESS_LOGGER_NAME and record.levelno == logging.INFO:
            tag, color = "PROCESS", "bright_blue"
        else:
            tag, color = _LEVEL_TAGS.get(record.levelno, (record.levelname, "white"))

        label = click.style(f"[{tag}]", fg=color, bold=True) if self.color else f"[{tag}]"
        line = f"{label}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        if record.levelno >= logging.WARNING or tag == "INFO":
            return f"{_SEPARATOR}\n{line}"
        return line


def configure_logging(level: str = "INFO", *, color: bool = True) -> None:
    """Install the cluster formatter on the ``worker_cluster`` logger tree."""

    handler = logging.StreamHandler()
    handler.setFormatter(ClusterLogFormatter(color=color))
    root = logging.getLogger("worker_cluster")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
