"""Local TCP port allocation.

The port is found by binding to port 0 and releasing the socket again, so
another process may grab it before the server binds. This is accepted as
best effort; a caller that sees the server fail to bind should simply
start again with a fresh port.
"""

from __future__ import annotations

import socket

from .exceptions import PortAllocationError
from .log import get_logger


logger = get_logger(__name__)

LOOPBACK = "127.0.0.1"


def allocate_port(host: str = LOOPBACK) -> int:
    """Return a port number that was free on ``host`` a moment ago."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            port = sock.getsockname()[1]
    except OSError as exc:
        raise PortAllocationError(f"failed to get free port: {exc}") from exc
    logger.info("Allocated random port", port=port)
    return int(port)
