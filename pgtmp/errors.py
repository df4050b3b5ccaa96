"""
Exception hierarchy for pgtmp.

Every failure raised while provisioning or tearing down an instance derives
from :class:`PgtmpError`, so callers can catch one type.  The subclasses
mirror the stage that failed:

- ``ConfigurationError``: rejected options, raised before any subprocess.
- ``ToolchainError``: ``pg_config`` was found but failed.
- ``DataDirectoryError``: the data directory could not be created.
- ``InitializationError``: ``initdb`` or ``pg_hba.conf`` setup failed.
- ``SpawnError``: the ``postgres`` process could not be started or died.
- ``ReadinessTimeoutError``: the server never became ready in time.
- ``ProbeError`` / ``ProtocolError``: I/O or framing failure while probing.
- ``CredentialError``: setting the superuser password failed.
- ``ExposureError``: a URL was requested for a listener that is disabled.
- ``TeardownError``: signalling or waiting for the server failed.
"""

from __future__ import annotations


class PgtmpError(RuntimeError):
    """Base class for all pgtmp errors."""


class ConfigurationError(PgtmpError, ValueError):
    """Invalid or conflicting instance options."""


class ToolchainError(PgtmpError):
    """The PostgreSQL toolchain could not be resolved."""


class DataDirectoryError(PgtmpError):
    """The data directory could not be created or adopted."""


class InitializationError(PgtmpError):
    """``initdb`` or ``pg_hba.conf`` setup failed for the data directory."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class SpawnError(PgtmpError):
    """The server subprocess failed to start or exited early."""


class ReadinessTimeoutError(PgtmpError):
    """The server did not become ready within the polling budget."""


class ProbeError(PgtmpError):
    """I/O failure while probing the server socket."""


class ProtocolError(ProbeError):
    """A malformed message was read from the server."""


class CredentialError(PgtmpError):
    """The generated password could not be applied."""


class ExposureError(PgtmpError, ValueError):
    """A connection URL was requested for a listener that is not enabled."""


class TeardownError(PgtmpError):
    """The server process could not be signalled or reaped."""
