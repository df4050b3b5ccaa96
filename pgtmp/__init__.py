"""
pgtmp: temporary PostgreSQL servers for tests and debugging.

Starts a private ``postgres`` in its own data directory, waits until it
accepts connections and tears it down again.  By default the server only
listens on a Unix socket inside its data directory.

Example:
    import pgtmp
    import psycopg

    with pgtmp.new_instance() as instance:
        with psycopg.connect(instance.url()) as conn:
            conn.execute("SELECT 1")

    # TCP on localhost as well
    with pgtmp.new_instance(listen_on_localhost=True) as instance:
        print(instance.localhost_url())
"""

__version__ = "0.1.0"

from pgtmp.config import (
    DEFAULT_DATABASE,
    DEFAULT_PORT,
    ExposureMode,
    InstanceOptions,
    load_options,
)
from pgtmp.errors import (
    ConfigurationError,
    CredentialError,
    DataDirectoryError,
    ExposureError,
    InitializationError,
    PgtmpError,
    ProbeError,
    ProtocolError,
    ReadinessTimeoutError,
    SpawnError,
    TeardownError,
    ToolchainError,
)
from pgtmp.instance import Instance, new_instance

__all__ = [
    "DEFAULT_DATABASE",
    "DEFAULT_PORT",
    "ConfigurationError",
    "CredentialError",
    "DataDirectoryError",
    "ExposureError",
    "ExposureMode",
    "InitializationError",
    "Instance",
    "InstanceOptions",
    "PgtmpError",
    "ProbeError",
    "ProtocolError",
    "ReadinessTimeoutError",
    "SpawnError",
    "TeardownError",
    "ToolchainError",
    "load_options",
    "new_instance",
]
