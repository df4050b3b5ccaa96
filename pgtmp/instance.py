"""
Temporary PostgreSQL instances.

:func:`new_instance` provisions a data directory, runs ``initdb``, starts
``postgres``, waits until it accepts connections and returns an
:class:`Instance`.  Nothing is handed back until the server is ready: on
any failure the server is stopped and an owned directory removed before the
error propagates.

Example::

    with pgtmp.new_instance() as instance:
        with psycopg.connect(instance.url()) as conn:
            conn.execute("SELECT 1")
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import quote

from pgtmp._nulllog import LoggerLike, logger_or_null
from pgtmp.binaries import bin_path, find_bin_dir
from pgtmp.config import DEFAULT_PORT, ExposureMode, InstanceOptions
from pgtmp.credentials import generate_password, set_password
from pgtmp.datadir import DataDir, provision_dir
from pgtmp.errors import ExposureError, TeardownError
from pgtmp.initdb import (
    allow_remote_connections,
    initialize_cluster,
    locale_env,
    superuser_name,
)
from pgtmp.netaddr import LOOPBACK_ADDRESS, first_global_address, format_host
from pgtmp.readiness import wait_for_socket, wait_until_ready
from pgtmp.server import ServerProcess, build_server_command, socket_path

URL_SCHEME = "postgresql"


class Instance:
    """
    A running temporary PostgreSQL server and the resources it owns.

    Call :meth:`close` (or use the instance as a context manager) on every
    exit path.  Closing more than once is a no-op.
    """

    def __init__(
        self,
        *,
        process: ServerProcess,
        bin_dir: Path | None,
        data_dir: DataDir,
        port: int,
        user: str,
        database: str,
        exposure_mode: ExposureMode,
        password: str = "",
        logger: LoggerLike | None = None,
    ) -> None:
        self._process: ServerProcess | None = process
        self._bin_dir = bin_dir
        self._data_dir = data_dir
        self._port = port
        self._user = user
        self._password = password
        self._database = database
        self._exposure_mode = exposure_mode
        self._logger = logger_or_null(logger)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def bin_dir(self) -> Path | None:
        return self._bin_dir

    @property
    def data_dir(self) -> Path:
        return self._data_dir.path

    @property
    def owns_dir(self) -> bool:
        """``True`` if :meth:`close` deletes the data directory."""
        return self._data_dir.owned

    @property
    def port(self) -> int:
        """Listen port as configured; 0 means the default port."""
        return self._port

    @property
    def effective_port(self) -> int:
        return self._port or DEFAULT_PORT

    @property
    def user(self) -> str:
        return self._user

    @property
    def password(self) -> str:
        """Superuser password; empty unless globally exposed."""
        return self._password

    @property
    def database(self) -> str:
        return self._database

    @property
    def exposure_mode(self) -> ExposureMode:
        return self._exposure_mode

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def closed(self) -> bool:
        return self._process is None

    # ------------------------------------------------------------------
    # Connection URLs
    # ------------------------------------------------------------------

    def url(self) -> str:
        """URL connecting through the Unix socket in the data directory."""
        # https://www.postgresql.org/docs/current/libpq-connect.html#LIBPQ-CONNSTRING
        host = quote(str(self.data_dir), safe="/")
        return (
            f"{URL_SCHEME}:///{self._database}"
            f"?host={host}&port={self.effective_port}"
        )

    def localhost_url(self) -> str:
        """
        URL connecting over TCP to 127.0.0.1.

        Raises:
            ExposureError: If the instance does not listen on TCP.
        """
        if self._exposure_mode is ExposureMode.SOCKET_ONLY:
            raise ExposureError(
                "instance does not listen on localhost: "
                "set listen_on_localhost or global_port"
            )
        return (
            f"{URL_SCHEME}://{LOOPBACK_ADDRESS}:{self.effective_port}/{self._database}"
        )

    def remote_url(self) -> str:
        """
        URL with credentials for connecting from other hosts.

        Uses the first global unicast address of this host, or loopback if
        there is none.

        Raises:
            ExposureError: If the instance is not globally exposed.
        """
        self._require_global()
        return self.remote_url_for_host(first_global_address())

    def remote_url_for_host(self, host: str) -> str:
        """Like :meth:`remote_url` but for a specific *host* or address."""
        self._require_global()
        user = quote(self._user, safe="")
        password = quote(self._password, safe="")
        return (
            f"{URL_SCHEME}://{user}:{password}@{format_host(host)}"
            f":{self.effective_port}/{self._database}"
        )

    def _require_global(self) -> None:
        if self._exposure_mode is not ExposureMode.GLOBAL:
            raise ExposureError("instance is not globally exposed: set global_port")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Stop the server and delete the data directory if it is owned.

        A failure to stop the server takes precedence over a failure to
        delete the directory; the directory is still removed in that case.

        Raises:
            TeardownError: If stopping the server or deleting the directory
                fails.
        """
        if self._process is None:
            return
        process = self._process
        self._process = None

        self._logger.info("Stopping postgres (pid=%s)", process.pid)
        try:
            process.stop()
        except TeardownError:
            try:
                self._release_dir()
            except TeardownError as cleanup_error:
                self._logger.warning("%s", cleanup_error)
            raise
        self._release_dir()

    def _release_dir(self) -> None:
        try:
            self._data_dir.release()
        except OSError as e:
            raise TeardownError(f"removing data directory {self.data_dir}: {e}") from e

    def __enter__(self) -> Instance:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"pid={self.pid}"
        return (
            f"Instance(data_dir={str(self.data_dir)!r}, "
            f"mode={self._exposure_mode.value}, port={self.effective_port}, {state})"
        )


def new_instance(options: InstanceOptions | None = None, **overrides: Any) -> Instance:
    """
    Start a temporary PostgreSQL instance.

    Args:
        options: Instance options. Defaults to a socket-only instance in a
            temporary directory.
        **overrides: Fields of :class:`InstanceOptions` to override.

    Returns:
        A ready :class:`Instance`.

    Raises:
        ConfigurationError: For invalid options, before anything is started.
        PgtmpError: If any provisioning step fails.
    """
    if options is None:
        options = InstanceOptions()
    if overrides:
        options = options.with_overrides(**overrides)
    options.validate()

    log = options.effective_logger
    mode = options.exposure_mode
    port = options.global_port

    bin_dir = find_bin_dir()
    data_dir = provision_dir(options.dir_path)
    log.info("Using PostgreSQL data directory %s (owned=%s)", data_dir.path, data_dir.owned)

    process: ServerProcess | None = None
    try:
        initialize_cluster(
            data_dir.path, bin_dir, locale=options.locale, logger=log
        )
        if mode is ExposureMode.GLOBAL:
            allow_remote_connections(data_dir.path)

        command = build_server_command(
            bin_path(bin_dir, "postgres"),
            data_dir.path,
            mode,
            port=port,
            shared_buffers=options.shared_buffers,
        )
        process = ServerProcess(command, env=locale_env(options.locale))
        process.start()
        log.info("Started postgres (pid=%s, mode=%s)", process.pid, mode.value)

        sock = socket_path(data_dir.path, port)
        wait_for_socket(
            sock,
            max_polls=options.socket_max_polls,
            interval=options.socket_poll_interval,
            process=process,
        )
        attempts = wait_until_ready(
            sock,
            max_attempts=options.probe_max_attempts,
            interval=options.probe_interval,
        )
        log.info("postgres accepting connections after %d probe(s)", attempts)

        user = superuser_name()
        password = ""
        if mode is ExposureMode.GLOBAL:
            password = generate_password()
            set_password(
                host=LOOPBACK_ADDRESS,
                port=port,
                user=user,
                password=password,
                database=options.database,
            )
            log.info("Set password for user %s", user)

    except BaseException:
        _discard(process, data_dir, log)
        raise

    return Instance(
        process=process,
        bin_dir=bin_dir,
        data_dir=data_dir,
        port=port,
        user=user,
        database=options.database,
        exposure_mode=mode,
        password=password,
        logger=log,
    )


def _discard(process: ServerProcess | None, data_dir: DataDir, log: LoggerLike) -> None:
    """Release what a failed :func:`new_instance` created; never raises."""
    if process is not None:
        try:
            process.stop()
        except TeardownError as e:
            log.warning("%s", e)
    try:
        data_dir.release()
    except OSError as e:
        log.warning("Failed removing data directory %s: %s", data_dir.path, e)
