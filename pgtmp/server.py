"""
Supervision of the ``postgres`` server process.

Builds the server command line for an exposure mode, spawns the process and
stops it.  The Unix socket always lives in the data directory: ``-k .`` is
resolved by postgres after it changes into the data directory, which keeps
the socket path under the platform's length limit (about 100 characters on
macOS) even for deep temporary directories.
"""

from __future__ import annotations

import enum
import logging
import signal
import subprocess
from pathlib import Path

from pgtmp.config import DEFAULT_PORT, ExposureMode
from pgtmp.errors import SpawnError, TeardownError

logger = logging.getLogger(__name__)

# SIGQUIT = immediate shutdown: postgres terminates its children and sends
# SIGKILL to any that have not exited within 5 seconds
# https://www.postgresql.org/docs/current/server-shutdown.html
SHUTDOWN_SIGNAL = signal.SIGQUIT

SOCKET_FILE_PREFIX = ".s.PGSQL."


def socket_path(data_dir: Path, port: int = 0) -> Path:
    """Path of the server's Unix socket; *port* 0 means the default port."""
    return Path(data_dir) / f"{SOCKET_FILE_PREFIX}{port or DEFAULT_PORT}"


def listen_addresses(mode: ExposureMode) -> str:
    """Value for ``-h``: empty disables TCP entirely."""
    if mode is ExposureMode.LOCALHOST:
        return "localhost"
    if mode is ExposureMode.GLOBAL:
        return "*"
    return ""


def build_server_command(
    postgres: str,
    data_dir: Path,
    mode: ExposureMode = ExposureMode.SOCKET_ONLY,
    *,
    port: int = 0,
    shared_buffers: int = 0,
) -> list[str]:
    """
    Build the ``postgres`` command line.

    Args:
        postgres: Path to the ``postgres`` binary.
        data_dir: Cluster directory (``-D``).
        mode: Which TCP listeners to open.
        port: Listen port; 0 keeps the default port.
        shared_buffers: ``shared_buffers`` in bytes; 0 keeps the default.
    """
    cmd = [
        postgres,
        "-D", str(data_dir),
        "-k", ".",
        "-h", listen_addresses(mode),
    ]
    if port:
        cmd.extend(["-p", str(port)])
    if shared_buffers:
        cmd.extend(["-c", f"shared_buffers={shared_buffers}B"])
    return cmd


class ProcessState(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"


class ServerProcess:
    """
    Owns one ``postgres`` subprocess.

    The process writes to this process's stdout/stderr.  ``stop`` may only
    take effect once; later calls are no-ops.
    """

    def __init__(self, command: list[str], env: dict[str, str] | None = None) -> None:
        self.command = list(command)
        self.env = env
        self._proc: subprocess.Popen | None = None  # type: ignore[type-arg]
        self.state = ProcessState.NOT_STARTED
        self.returncode: int | None = None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    def start(self) -> None:
        """
        Spawn the server.

        Raises:
            SpawnError: If the process cannot be started.
        """
        if self.state is not ProcessState.NOT_STARTED:
            raise SpawnError(f"server process already {self.state.value}")

        logger.info("Starting postgres: %s", " ".join(self.command))
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                env=self.env,
            )
        except OSError as e:
            raise SpawnError(f"Could not start {self.command[0]}: {e}") from e
        self.state = ProcessState.RUNNING

    def poll(self) -> int | None:
        """Return the exit status if the process has exited, else ``None``."""
        if self._proc is None:
            return None
        return self._proc.poll()

    def stop(self) -> None:
        """
        Request an immediate shutdown and wait for the process to exit.

        Raises:
            TeardownError: If the signal cannot be delivered or the wait fails.
        """
        if self.state is not ProcessState.RUNNING:
            return
        assert self._proc is not None
        proc = self._proc
        self.state = ProcessState.TERMINATED

        logger.debug("Sending %s to postgres (pid=%d)", SHUTDOWN_SIGNAL.name, proc.pid)
        try:
            if proc.poll() is None:
                proc.send_signal(SHUTDOWN_SIGNAL)
            self.returncode = proc.wait()
        except OSError as e:
            raise TeardownError(f"Failed stopping postgres (pid={proc.pid}): {e}") from e

