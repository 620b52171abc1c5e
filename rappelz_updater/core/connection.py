"""TCP transport for patch server sessions."""

from __future__ import annotations

import socket
from collections.abc import Callable

import structlog

from rappelz_updater.core.errors import ConnectFailure
from rappelz_updater.protocol.framing import Connection

logger = structlog.get_logger()

ConnectionFactory = Callable[[str, int, float | None], Connection]


def open_connection(host: str, port: int, timeout: float | None = None) -> Connection:
    """Open a TCP connection to the patch server.

    Args:
        host: Server host name or address
        port: Server port
        timeout: Socket timeout in seconds applied to connect and every
            subsequent read/write; None blocks indefinitely

    Returns:
        Connected socket

    Raises:
        ConnectFailure: If the connection cannot be established
    """
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        logger.error("connect_failed", host=host, port=port, error=str(e))
        raise ConnectFailure(f"Cannot connect to {host}:{port}: {e}", host=host, port=port) from e

    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    logger.info("connected", host=host, port=port)
    return sock
