"""Synchronous notification hooks for update sessions.

Callbacks are invoked on the calling thread, in registration order, as soon
as the event happens. There is no dispatch queue: a slow callback stalls the
transfer that triggered it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from rappelz_updater.core.types import MessageType

logger = structlog.get_logger()


@dataclass
class StatusUpdate:
    """A human-readable status message."""

    message: str
    message_type: MessageType = MessageType.INFORMATION


@dataclass
class TransferStarted:
    """The declared length of a file transfer has been read."""

    file_name: str
    total: int


@dataclass
class TransferProgress:
    """A chunk of a file transfer has been written to disk."""

    file_name: str
    received: int


@dataclass
class VersionChanged:
    """The locally persisted client version advanced."""

    previous: int | None
    new: int


class EventHook:
    """Ordered list of callbacks for one notification kind.

    Args:
        name: Event name, shown in ``repr``
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: list[Callable[..., Any]] = []

    def subscribe(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        """Register a callback; returns it so this can be used as a decorator."""
        self._callbacks.append(callback)
        return callback

    def unsubscribe(self, callback: Callable[..., Any]) -> None:
        """Remove a previously registered callback.

        Raises:
            ValueError: If the callback was never registered
        """
        self._callbacks.remove(callback)

    def emit(self, *args: Any) -> None:
        """Invoke every callback with ``args`` in registration order."""
        for callback in list(self._callbacks):
            callback(*args)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __repr__(self) -> str:
        return f"EventHook({self.name!r}, callbacks={len(self._callbacks)})"


def _hook(name: str) -> Callable[[], EventHook]:
    return lambda: EventHook(name)


@dataclass
class UpdaterEvents:
    """All notification hooks exposed by an update session.

    Payloads:
        status: StatusUpdate
        connected / disconnected: no arguments
        authentication_requested / _accepted / _denied: no arguments
        transfer_started: TransferStarted
        transfer_progress: TransferProgress
        version_changed: VersionChanged
    """

    status: EventHook = field(default_factory=_hook("status"))
    connected: EventHook = field(default_factory=_hook("connected"))
    disconnected: EventHook = field(default_factory=_hook("disconnected"))
    authentication_requested: EventHook = field(default_factory=_hook("authentication_requested"))
    authentication_accepted: EventHook = field(default_factory=_hook("authentication_accepted"))
    authentication_denied: EventHook = field(default_factory=_hook("authentication_denied"))
    transfer_started: EventHook = field(default_factory=_hook("transfer_started"))
    transfer_progress: EventHook = field(default_factory=_hook("transfer_progress"))
    version_changed: EventHook = field(default_factory=_hook("version_changed"))

    def report(self, message: str, message_type: MessageType = MessageType.INFORMATION) -> None:
        """Emit a status notification and mirror it to the log."""
        if message_type is MessageType.ERROR:
            logger.error("status", message=message)
        elif message_type is MessageType.WARNING:
            logger.warning("status", message=message)
        else:
            logger.debug("status", message=message, type=message_type.name.lower())
        self.status.emit(StatusUpdate(message, message_type))
