"""
Integration tests that start real PostgreSQL servers.

Skipped when ``initdb``/``postgres`` cannot be found, or when running as
root (``initdb`` refuses to run as root).
"""

from __future__ import annotations

import os
import shutil
import socket
from pathlib import Path

import psycopg
import pytest

from pgtmp import ExposureMode, InstanceOptions, new_instance
from pgtmp.binaries import bin_path, find_bin_dir
from pgtmp.errors import ToolchainError
from pgtmp.initdb import PG_VERSION_FILE
from pgtmp.netaddr import interface_addresses, is_global_unicast

# fixtures from the pytest plugin, importable even when it is not installed
from pgtmp.pytest_plugin import postgres_instance, postgres_options, postgres_url  # noqa: F401


def _have_postgres() -> bool:
    try:
        bin_dir = find_bin_dir()
    except ToolchainError:
        return False
    return all(
        shutil.which(bin_path(bin_dir, name)) is not None
        for name in ("initdb", "postgres")
    )


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex((host, port)) == 0


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not _have_postgres(), reason="PostgreSQL binaries not found"),
    pytest.mark.skipif(_is_root(), reason="initdb cannot run as root"),
]

requires_free_default_port = pytest.mark.skipif(
    _port_in_use(5432), reason="another server is listening on 127.0.0.1:5432"
)


def test_end_to_end(monkeypatch):
    # the server must not depend on the caller's locale
    monkeypatch.setenv("LANG", "")

    instance = new_instance()
    try:
        with psycopg.connect(instance.url()) as conn:
            assert conn.execute("SELECT 1").fetchone() == (1,)
            encoding = conn.execute("SHOW server_encoding").fetchone()
            assert encoding == ("UTF8",)
    finally:
        instance.close()

    with pytest.raises(psycopg.OperationalError):
        psycopg.connect(instance.url(), connect_timeout=2)


@requires_free_default_port
def test_default_instance_refuses_localhost():
    with new_instance() as instance:
        assert instance.exposure_mode is ExposureMode.SOCKET_ONLY
        with pytest.raises(psycopg.OperationalError):
            psycopg.connect(
                "postgresql://127.0.0.1:5432/postgres", connect_timeout=2
            )
        with psycopg.connect(instance.url()) as conn:
            conn.execute("SELECT 1")


def test_close_twice_and_owned_dir_removed():
    instance = new_instance()
    data_dir = instance.data_dir
    assert data_dir.is_dir()

    instance.close()
    instance.close()

    assert not data_dir.exists()


def test_caller_dir_kept_and_reused(tmp_path: Path):
    data_dir = tmp_path / "pgdata"

    with new_instance(dir_path=data_dir) as instance:
        with psycopg.connect(instance.url(), autocommit=True) as conn:
            conn.execute("CREATE TABLE kept (id int)")
            conn.execute("INSERT INTO kept VALUES (42)")

    assert (data_dir / PG_VERSION_FILE).is_file()

    # second run reuses the cluster instead of re-running initdb
    with new_instance(dir_path=data_dir) as instance:
        with psycopg.connect(instance.url()) as conn:
            assert conn.execute("SELECT id FROM kept").fetchone() == (42,)

    assert data_dir.is_dir()


def test_shared_buffers_applied():
    with new_instance(shared_buffers=16 * 1024 * 1024) as instance:
        with psycopg.connect(instance.url()) as conn:
            assert conn.execute("SHOW shared_buffers").fetchone() == ("16MB",)


@requires_free_default_port
def test_localhost_opt_in():
    with new_instance(listen_on_localhost=True) as instance:
        with psycopg.connect(instance.localhost_url()) as conn:
            conn.execute("SELECT 1")

        for address in interface_addresses():
            if not is_global_unicast(address) or ":" in address:
                continue
            with pytest.raises(psycopg.OperationalError):
                psycopg.connect(
                    f"postgresql://{address}:5432/postgres", connect_timeout=1
                )


def test_global_exposure_requires_password():
    port = _find_free_port()
    with new_instance(InstanceOptions(global_port=port)) as instance:
        assert instance.password

        with psycopg.connect(instance.url()) as conn:
            conn.execute("SELECT 1")
        with psycopg.connect(instance.localhost_url()) as conn:
            conn.execute("SELECT 1")
        with psycopg.connect(instance.remote_url_for_host("127.0.0.1")) as conn:
            conn.execute("SELECT 1")


def test_fixture_provides_url(postgres_url):
    with psycopg.connect(postgres_url) as conn:
        assert conn.execute("SELECT 2").fetchone() == (2,)
