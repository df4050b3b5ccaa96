"""
Cluster initialization with ``initdb``.

The locale and encoding are forced so that results do not depend on the
host's ``LANG``/``LC_*`` settings.  A directory that already holds a cluster
is left alone, which is what makes caller-supplied directories reusable.
"""

from __future__ import annotations

import os
import pwd
import subprocess
from pathlib import Path

from pgtmp._nulllog import LoggerLike, logger_or_null
from pgtmp.binaries import bin_path
from pgtmp.config import DEFAULT_LOCALE
from pgtmp.errors import InitializationError

# Written by initdb; its presence marks an initialized cluster
PG_VERSION_FILE = "PG_VERSION"

_HBA_MARKER = "# Added by pgtmp: allow remote password logins"
_HBA_LINES = (
    "host    all    all    0.0.0.0/0    scram-sha-256",
    "host    all    all    ::/0         scram-sha-256",
)


def locale_env(locale: str = DEFAULT_LOCALE) -> dict[str, str]:
    """Return a copy of the environment with the locale forced to *locale*."""
    env = os.environ.copy()
    env["LC_ALL"] = locale
    env["LANG"] = locale
    return env


def initdb_command(initdb: str, data_dir: Path, locale: str = DEFAULT_LOCALE) -> list[str]:
    return [
        initdb,
        "--no-sync",
        f"--pgdata={data_dir}",
        "--encoding=UTF8",
        f"--locale={locale}",
    ]


def superuser_name() -> str:
    """
    Name of the superuser role ``initdb`` creates when run by this process.

    This is the account of the effective user ID; ``LOGNAME`` and ``USER``
    are not consulted.
    """
    return pwd.getpwuid(os.geteuid()).pw_name


def is_initialized(data_dir: Path) -> bool:
    """Return ``True`` if *data_dir* already contains a cluster."""
    return (Path(data_dir) / PG_VERSION_FILE).is_file()


def initialize_cluster(
    data_dir: Path,
    bin_dir: Path | None,
    *,
    locale: str = DEFAULT_LOCALE,
    logger: LoggerLike | None = None,
) -> bool:
    """
    Run ``initdb`` against *data_dir* unless it is already initialized.

    Output from ``initdb`` goes to this process's stdout/stderr.

    Args:
        data_dir: Cluster directory.
        bin_dir: Directory from ``pg_config --bindir`` or ``None``.
        locale: Locale for the new cluster.
        logger: Receives progress messages.

    Returns:
        ``True`` if ``initdb`` ran, ``False`` if an existing cluster was reused.

    Raises:
        InitializationError: If ``initdb`` cannot be run or exits non-zero.
    """
    log = logger_or_null(logger)
    if is_initialized(data_dir):
        log.info("Reusing initialized PostgreSQL data directory: %s", data_dir)
        return False

    cmd = initdb_command(bin_path(bin_dir, "initdb"), data_dir, locale)
    log.info("Initializing PostgreSQL data directory: %s", data_dir)
    try:
        result = subprocess.run(cmd, env=locale_env(locale))
    except OSError as e:
        raise InitializationError(f"Could not run {cmd[0]}: {e}") from e

    if result.returncode != 0:
        raise InitializationError(
            f"Command failed: {' '.join(cmd)} (exit {result.returncode})",
            returncode=result.returncode,
        )
    return True


def allow_remote_connections(data_dir: Path) -> None:
    """Allow password logins from any address in ``pg_hba.conf``."""
    hba_file = Path(data_dir) / "pg_hba.conf"
    try:
        if _HBA_MARKER in hba_file.read_text():
            return
        with hba_file.open("a") as f:
            f.write(f"\n{_HBA_MARKER}\n")
            for line in _HBA_LINES:
                f.write(f"{line}\n")
    except OSError as e:
        raise InitializationError(f"updating {hba_file}: {e}") from e
