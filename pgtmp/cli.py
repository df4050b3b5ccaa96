"""
pgtmp CLI: start a temporary PostgreSQL server for interactive use.

By default the server is started, ``psql`` is run against it, and the
server is torn down when ``psql`` exits or on Ctrl-C/SIGTERM.  With
``--no-psql`` the connection details are printed and the server runs until
interrupted.
"""

from __future__ import annotations

import argparse
import logging
import signal
import subprocess
import sys
import tomllib
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from pgtmp.binaries import bin_path
from pgtmp.config import ExposureMode, load_options
from pgtmp.errors import PgtmpError
from pgtmp.instance import Instance, new_instance

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgtmp",
        description="Start a temporary PostgreSQL server",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--config", "-c",
        help="Config file (default: search for .pgtmp.toml)",
    )
    parser.add_argument(
        "--profile",
        help="Profile from the config file",
    )
    parser.add_argument(
        "--dir", "-d",
        dest="dir_path",
        help="Data directory to use and keep (default: temporary)",
    )
    exposure = parser.add_mutually_exclusive_group()
    exposure.add_argument(
        "--listen-localhost",
        action="store_true",
        default=None,
        help="Also listen for TCP on localhost",
    )
    exposure.add_argument(
        "--global-port",
        type=int,
        help="Listen for TCP on all interfaces at this port (sets a password)",
    )
    parser.add_argument(
        "--shared-buffers",
        type=int,
        help="shared_buffers in bytes",
    )
    parser.add_argument(
        "--database",
        help="Database name in connection URLs (default: postgres)",
    )
    parser.add_argument(
        "--no-psql",
        action="store_true",
        help="Do not run psql; wait for Ctrl-C instead",
    )
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in ("dir_path", "listen_on_localhost", "global_port", "shared_buffers", "database"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return overrides


def connection_table(instance: Instance) -> Table:
    """Connection details of *instance* as a rich table."""
    table = Table(title="Temporary PostgreSQL", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Socket URL", instance.url())
    if instance.exposure_mode is not ExposureMode.SOCKET_ONLY:
        table.add_row("Localhost URL", instance.localhost_url())
    if instance.exposure_mode is ExposureMode.GLOBAL:
        table.add_row("Remote URL", instance.remote_url())
    table.add_row("Data directory", str(instance.data_dir))
    table.add_row("Keep directory", "no" if instance.owns_dir else "yes")
    table.add_row("PID", str(instance.pid))
    return table


def run_psql(instance: Instance) -> int:
    """Run ``psql`` against *instance* and return its exit status."""
    cmd = [bin_path(instance.bin_dir, "psql"), instance.url()]
    logger.info("Starting psql: %s", " ".join(cmd))
    try:
        return subprocess.run(cmd).returncode
    except OSError as e:
        print(f"Error: could not run psql: {e}", file=sys.stderr)
        return 1


def _wait_for_signal() -> None:
    while True:
        signal.pause()


def _raise_interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt(signal.Signals(signum).name)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        options = load_options(
            Path(args.config) if args.config else None,
            profile=args.profile,
            logger=logging.getLogger("pgtmp"),
            **_overrides(args),
        )
    except (PgtmpError, OSError, tomllib.TOMLDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    signal.signal(signal.SIGTERM, _raise_interrupt)
    console = Console()

    try:
        instance = new_instance(options)
    except PgtmpError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

    try:
        with instance:
            console.print(connection_table(instance))
            if args.no_psql:
                console.print("Press Ctrl-C to stop the server")
                _wait_for_signal()
            return run_psql(instance)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
        return 0
    except PgtmpError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
