"""Worker to coordinator control-message protocol.

Workers talk to the coordinator over a one-way pipe created at spawn time.
The pipe carries two frame kinds: the internal online handshake and control
messages of the wire shape ``{"actions"?: str, "message"?: str}``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from multiprocessing.connection import Connection

process_logger = logging.getLogger("worker_cluster.process")

WORKER_ID_ENV_KEY = "WORKER_CLUSTER_WORKER_ID"
FRAME_ONLINE = "online"
FRAME_MESSAGE = "message"

_channel: Connection | None = None


class ProtocolError(ValueError):
    """Control message does not match the wire schema."""


class ControlAction(str, Enum):
    """Actions a worker may request from the coordinator."""

    CHECK_QUEUE = "check-queue"
    HANDLE_ERROR = "handle-error"
    UNHANDLED_EXCEPTION = "unhandled-exception"


@dataclass(slots=True, frozen=True)
class ControlMessage:
    action: ControlAction | None = None
    message: str | None = None

    def to_wire(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.action is not None:
            payload["actions"] = self.action.value
        if self.message is not None:
            payload["message"] = self.message
        return payload


def parse_control_message(payload: object) -> ControlMessage:
    """Validate a wire payload and build a ``ControlMessage``."""

    if not isinstance(payload, Mapping):
        raise ProtocolError(f"Control message must be a mapping, got {type(payload).__name__}.")

    raw_action = payload.get("actions")
    action: ControlAction | None = None
    if raw_action is not None:
        try:
            action = ControlAction(raw_action)
        except ValueError as error:
            raise ProtocolError(f"Unknown control action: {raw_action!r}") from error

    message = payload.get("message")
    if message is not None and not isinstance(message, str):
        raise ProtocolError("Control message text must be a string.")
    return ControlMessage(action=action, message=message)


class ControlMessageListener:
    """Coordinator-side handler attached to every spawned worker."""

    def __call__(self, worker_id: int, message: ControlMessage) -> None:
        if message.message:
            process_logger.info("Worker #%d: %s", worker_id, message.message)

        # Reserved extension points: workers may emit these and expect silence.
        if message.action is ControlAction.CHECK_QUEUE:
            return
        if message.action is ControlAction.HANDLE_ERROR:
            return
        if message.action is ControlAction.UNHANDLED_EXCEPTION:
            return


def bind_channel(connection: Connection) -> None:
    """Attach the coordinator pipe inside a freshly started worker."""

    global _channel  # noqa: PLW0603
    _channel = connection


def send_to_coordinator(
    action: ControlAction | str | None = None,
    message: str | None = None,
) -> None:
    """Send one control message from a worker process to the coordinator."""

    if _channel is None:
        raise RuntimeError("send_to_coordinator() is only available inside a worker process.")
    resolved = ControlAction(action) if action is not None else None
    _channel.send((FRAME_MESSAGE, ControlMessage(action=resolved, message=message).to_wire()))


def is_worker() -> bool:
    return WORKER_ID_ENV_KEY in os.environ


def current_worker_id() -> int | None:
    raw = os.getenv(WORKER_ID_ENV_KEY)
    return int(raw) if raw else None
