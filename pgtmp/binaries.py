"""
Locate the PostgreSQL server binaries.

Debian/Ubuntu do not put ``initdb`` and ``postgres`` on PATH, so the bin
directory is asked of ``pg_config``.  Without ``pg_config`` the bare command
name is used and PATH lookup happens when the subprocess is spawned.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from pgtmp.errors import ToolchainError

logger = logging.getLogger(__name__)

PG_CONFIG = "pg_config"


def find_bin_dir(pg_config: str = PG_CONFIG) -> Path | None:
    """
    Return the directory holding the server binaries.

    Returns:
        The ``pg_config --bindir`` output, or ``None`` if ``pg_config`` is not
        on PATH.

    Raises:
        ToolchainError: If ``pg_config`` exists but fails.
    """
    config_path = shutil.which(pg_config)
    if config_path is None:
        logger.debug("%s not found on PATH; using PATH lookup", pg_config)
        return None

    cmd = [config_path, "--bindir"]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise ToolchainError(
            f"Command failed: {' '.join(cmd)} (exit {e.returncode})\n"
            f"stderr: {e.stderr}"
        ) from e
    except OSError as e:
        raise ToolchainError(f"Could not run {config_path}: {e}") from e

    bin_dir = Path(result.stdout.strip())
    logger.debug("PostgreSQL bin directory: %s", bin_dir)
    return bin_dir


def bin_path(bin_dir: Path | None, command: str) -> str:
    """Join *command* onto *bin_dir*, or return it unchanged if unknown."""
    if bin_dir is None:
        return command
    return str(bin_dir / command)


def join_bin_path(command: str) -> str:
    """Resolve *command* to an absolute path when ``pg_config`` is available."""
    return bin_path(find_bin_dir(), command)
