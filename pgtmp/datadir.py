"""
Data directory provisioning.

A data directory is either owned (a fresh temporary directory, removed when
the instance is released) or supplied by the caller (kept, so a cluster can
be reused across runs).  The two cases are separate types so that the
cleanup decision lives on the object rather than in a flag.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from pgtmp.errors import DataDirectoryError

TEMP_DIR_PREFIX = "pgtmp_"


@dataclass(frozen=True)
class OwnedDir:
    """A temporary data directory deleted on release."""

    path: Path

    owned = True

    def release(self) -> None:
        shutil.rmtree(self.path)


@dataclass(frozen=True)
class CallerDir:
    """A caller-supplied data directory that is never deleted."""

    path: Path

    owned = False

    def release(self) -> None:
        pass


DataDir = Union[OwnedDir, CallerDir]


def provision_dir(dir_path: Path | str | None = None) -> DataDir:
    """
    Create or adopt the instance's data directory.

    Args:
        dir_path: Directory to use as-is. It is created if missing.
            ``None`` creates a uniquely named temporary directory.

    Returns:
        :class:`OwnedDir` for a temporary directory, else :class:`CallerDir`.

    Raises:
        DataDirectoryError: If the directory cannot be created.
    """
    if dir_path is None:
        try:
            return OwnedDir(Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX)))
        except OSError as e:
            raise DataDirectoryError(f"creating temporary data directory: {e}") from e

    path = Path(dir_path).absolute()
    try:
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise DataDirectoryError(f"creating data directory {path}: {e}") from e
    return CallerDir(path)
