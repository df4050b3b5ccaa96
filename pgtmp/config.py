"""
Instance options and project-level configuration for pgtmp.

This module provides:

- ExposureMode: Which network listeners the server opens
- InstanceOptions: Immutable options consumed by :func:`pgtmp.new_instance`
- find_config_file: Walk up directories to locate ``.pgtmp.toml``
- deep_merge: Recursively merge two dicts (override wins for leaf values)
- load_options: Build ``InstanceOptions`` from the config file and overrides

Defaults can live in ``.pgtmp.toml`` with optional ``.pgtmp.local.toml``
overrides next to it.  The resolution order is:

    [instance] → [profiles.NAME] → local overrides → keyword overrides

Example ``.pgtmp.toml``::

    [instance]
    shared_buffers = 134217728

    [profiles.shared]
    global_port = 15432

Example:
    >>> options = load_options(profile="shared")
    >>> options.exposure_mode
    <ExposureMode.GLOBAL: 'global'>
"""

from __future__ import annotations

import enum
import logging
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from pgtmp._nulllog import LoggerLike, logger_or_null
from pgtmp.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".pgtmp.toml"
LOCAL_CONFIG_FILENAME = ".pgtmp.local.toml"

DEFAULT_PORT = 5432
DEFAULT_DATABASE = "postgres"
DEFAULT_LOCALE = "C.UTF-8"

# TCP ports are 16 bits; 0 disables the global listener
MAX_PORT = 1 << 16


class ExposureMode(str, enum.Enum):
    """Network surfaces the server listens on, besides its Unix socket."""

    SOCKET_ONLY = "socket-only"
    LOCALHOST = "localhost"
    GLOBAL = "global"


@dataclass(frozen=True)
class InstanceOptions:
    """
    Options for a temporary PostgreSQL instance.

    Attributes:
        listen_on_localhost: Also listen for TCP on the loopback addresses.
        global_port: When non-zero, listen for TCP on all interfaces at this
            port and protect the superuser with a random password.
        shared_buffers: ``shared_buffers`` in bytes; 0 keeps the server default.
        dir_path: Data directory to use and keep. ``None`` creates a
            temporary directory that is deleted on close.
        logger: Receives lifecycle messages. ``None`` discards them.
        database: Database name used in connection URLs.
        locale: Locale passed to ``initdb``.
        socket_poll_interval: Seconds between checks for the Unix socket.
        socket_max_polls: Number of socket checks before giving up.
        probe_interval: Seconds between startup handshakes.
        probe_max_attempts: Number of handshakes before giving up.
    """

    listen_on_localhost: bool = False
    global_port: int = 0
    shared_buffers: int = 0
    dir_path: Path | None = None
    logger: LoggerLike | None = field(default=None, compare=False, repr=False)
    database: str = DEFAULT_DATABASE
    locale: str = DEFAULT_LOCALE
    socket_poll_interval: float = 0.01
    socket_max_polls: int = 1000
    probe_interval: float = 0.01
    probe_max_attempts: int = 1000

    def __post_init__(self) -> None:
        if self.dir_path is not None and not isinstance(self.dir_path, Path):
            object.__setattr__(self, "dir_path", Path(self.dir_path))

    def validate(self) -> None:
        """
        Reject inconsistent options.

        Raises:
            ConfigurationError: If both exposure modes are requested, the
                global port is out of range, or a tuning value is invalid.
        """
        if self.listen_on_localhost and self.global_port != 0:
            raise ConfigurationError(
                "cannot set both listen_on_localhost and global_port"
            )
        if not 0 <= self.global_port < MAX_PORT:
            raise ConfigurationError(
                f"invalid global_port={self.global_port}: "
                f"must be in [0, {MAX_PORT})"
            )
        if self.shared_buffers < 0:
            raise ConfigurationError(
                f"invalid shared_buffers={self.shared_buffers}: must be >= 0"
            )
        if self.socket_max_polls < 1 or self.probe_max_attempts < 1:
            raise ConfigurationError("poll budgets must be at least 1")
        if self.socket_poll_interval < 0 or self.probe_interval < 0:
            raise ConfigurationError("poll intervals must be >= 0")
        if not self.database:
            raise ConfigurationError("database must not be empty")

    @property
    def exposure_mode(self) -> ExposureMode:
        if self.global_port:
            return ExposureMode.GLOBAL
        if self.listen_on_localhost:
            return ExposureMode.LOCALHOST
        return ExposureMode.SOCKET_ONLY

    @property
    def effective_logger(self) -> LoggerLike:
        """The configured logger, or the shared null logger."""
        return logger_or_null(self.logger)

    def with_overrides(self, **overrides: Any) -> InstanceOptions:
        """Return a copy with *overrides* applied."""
        return replace(self, **overrides)


# ---------------------------------------------------------------------------
# Config file helpers
# ---------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest ``.pgtmp.toml`` in *start_dir* (default: cwd) or its parents."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge *override* into a copy of *base*, recursing into nested tables."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = deep_merge(current, value)
        merged[key] = value
    return merged


# Keys that cannot come from a TOML file
_NON_FILE_FIELDS = {"logger"}


def _option_field_names() -> set[str]:
    return {f.name for f in fields(InstanceOptions)} - _NON_FILE_FIELDS


def options_from_dict(
    data: dict[str, Any],
    *,
    profile: str | None = None,
) -> InstanceOptions:
    """
    Build :class:`InstanceOptions` from a parsed config dict.

    Args:
        data: Parsed TOML with an ``[instance]`` table and optional
            ``[profiles.NAME]`` tables.
        profile: Profile to merge over ``[instance]``.

    Raises:
        ConfigurationError: On unknown keys or an unknown profile.
    """
    values = dict(data.get("instance", {}))

    if profile is not None:
        profiles = data.get("profiles", {})
        if profile not in profiles:
            available = ", ".join(sorted(profiles)) or "(none)"
            raise ConfigurationError(
                f"Unknown profile {profile!r}. Available profiles: {available}"
            )
        values = deep_merge(values, profiles[profile])

    unknown = set(values) - _option_field_names()
    if unknown:
        raise ConfigurationError(
            f"Unknown instance option(s): {', '.join(sorted(unknown))}"
        )

    if "dir_path" in values and values["dir_path"] is not None:
        values["dir_path"] = Path(values["dir_path"]).expanduser()

    return InstanceOptions(**values)


def load_options(
    path: Path | str | None = None,
    *,
    profile: str | None = None,
    start_dir: Path | None = None,
    **overrides: Any,
) -> InstanceOptions:
    """
    Load instance options from ``.pgtmp.toml``.

    When *path* is ``None`` the file is searched for from *start_dir*
    upwards; a missing file yields default options.  A
    ``.pgtmp.local.toml`` beside the file is deep-merged over it.  Keyword
    *overrides* are applied last.

    Returns:
        The resolved options. They are not validated here.
    """
    config_path = Path(path) if path is not None else find_config_file(start_dir)

    data: dict[str, Any] = {}
    if config_path is not None:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        local_path = config_path.parent / LOCAL_CONFIG_FILENAME
        if local_path.is_file():
            with open(local_path, "rb") as f:
                data = deep_merge(data, tomllib.load(f))

        logger.debug("Loaded pgtmp config from %s", config_path)

    options = options_from_dict(data, profile=profile)
    if overrides:
        options = options.with_overrides(**overrides)
    return options
