"""
Readiness polling for a freshly spawned server.

Two bounded loops run one after the other:

1. Wait for the Unix socket file to appear in the data directory.
2. Repeatedly open a connection, send a StartupMessage and read one reply
   until the server stops answering "the database system is starting up".

Any other reply, including authentication errors, counts as ready: those
are for the caller's real driver to report.  ``sleep`` and ``connect`` are
injectable so the loops can be tested without real delays or servers.
"""

from __future__ import annotations

import logging
import os
import socket
import time
from pathlib import Path
from typing import Callable, Protocol

from pgtmp.errors import ProbeError, ReadinessTimeoutError, SpawnError
from pgtmp.protocol import (
    PROBE_USER,
    Message,
    encode_startup_message,
    is_cannot_connect_now,
    read_message,
)

logger = logging.getLogger(__name__)

# Per-connection I/O timeout while probing
PROBE_IO_TIMEOUT: float = 5.0

Sleep = Callable[[float], None]
Connect = Callable[[str], socket.socket]


class _Pollable(Protocol):
    def poll(self) -> int | None: ...


def connect_unix(path: str) -> socket.socket:
    """Open a stream connection to the Unix socket at *path*."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.settimeout(PROBE_IO_TIMEOUT)
        sock.connect(path)
    except OSError:
        sock.close()
        raise
    return sock


def wait_for_socket(
    path: Path,
    *,
    max_polls: int = 1000,
    interval: float = 0.01,
    sleep: Sleep = time.sleep,
    process: _Pollable | None = None,
) -> None:
    """
    Block until *path* exists.

    Args:
        path: Expected socket path.
        max_polls: Number of checks before giving up.
        interval: Seconds to sleep before each check.
        sleep: Sleep function.
        process: If given, stop early when it has exited.

    Raises:
        SpawnError: If *process* exits before the socket appears.
        ReadinessTimeoutError: If the socket never appears.
        ProbeError: For filesystem errors other than "not found".
    """
    for _ in range(max_polls):
        sleep(interval)

        try:
            os.stat(path)
            return
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ProbeError(f"checking for socket {path}: {e}") from e

        if process is not None:
            status = process.poll()
            if status is not None:
                raise SpawnError(
                    f"postgres exited with status {status} before creating "
                    f"its socket {path}"
                )

    raise ReadinessTimeoutError(f"failed to find PostgreSQL Unix socket: {path}")


def probe_once(path: Path, connect: Connect = connect_unix) -> Message:
    """
    Send one StartupMessage to the socket at *path* and return the reply.

    Raises:
        ProbeError: On any connection, write or read failure.
    """
    startup = encode_startup_message({"user": PROBE_USER})
    try:
        sock = connect(str(path))
    except OSError as e:
        raise ProbeError(f"connecting to {path}: {e}") from e

    try:
        with sock:
            sock.sendall(startup)
            with sock.makefile("rb") as stream:
                return read_message(stream)
    except OSError as e:
        raise ProbeError(f"probing {path}: {e}") from e


def wait_until_ready(
    path: Path,
    *,
    max_attempts: int = 1000,
    interval: float = 0.01,
    sleep: Sleep = time.sleep,
    connect: Connect = connect_unix,
) -> int:
    """
    Probe until the server stops refusing connections as "starting up".

    Returns:
        The number of handshakes performed.

    Raises:
        ProbeError: On I/O failure; this is not retried.
        ReadinessTimeoutError: If every attempt reported "starting up".
    """
    for attempt in range(1, max_attempts + 1):
        message = probe_once(path, connect)
        if not is_cannot_connect_now(message):
            logger.debug(
                "postgres ready after %d probe(s) (reply kind=%r)",
                attempt,
                message.kind,
            )
            return attempt
        sleep(interval)

    raise ReadinessTimeoutError(
        f"postgres still starting up after {max_attempts} probes of {path}"
    )
