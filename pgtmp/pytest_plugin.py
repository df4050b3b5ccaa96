"""
pytest fixtures for temporary PostgreSQL instances.

Registered through the ``pytest11`` entry point, so installing pgtmp makes
the fixtures available everywhere::

    def test_query(postgres_url):
        with psycopg.connect(postgres_url) as conn:
            assert conn.execute("SELECT 1").fetchone() == (1,)

Provisioning failures fail the test immediately; a half-started server is
never handed to a test.
"""

from __future__ import annotations

import logging
from typing import Iterator

import pytest

from pgtmp.config import InstanceOptions
from pgtmp.errors import PgtmpError
from pgtmp.instance import Instance, new_instance

logger = logging.getLogger(__name__)


def start_for_test(options: InstanceOptions | None = None) -> Instance:
    """Start an instance, failing the current test if that is not possible."""
    try:
        return new_instance(options)
    except PgtmpError as e:
        pytest.fail(f"failed starting postgres: {e}", pytrace=False)


def close_for_test(instance: Instance) -> None:
    """Close *instance*, logging rather than failing on teardown errors."""
    try:
        instance.close()
    except PgtmpError as e:
        logger.warning("error shutting down postgres: %s", e)


@pytest.fixture
def postgres_options() -> InstanceOptions:
    """Options for :func:`postgres_instance`; override to customise."""
    return InstanceOptions(logger=logging.getLogger("pgtmp.instance"))


@pytest.fixture
def postgres_instance(postgres_options: InstanceOptions) -> Iterator[Instance]:
    """A temporary PostgreSQL instance, stopped after the test."""
    instance = start_for_test(postgres_options)
    try:
        yield instance
    finally:
        close_for_test(instance)


@pytest.fixture
def postgres_url(postgres_instance: Instance) -> str:
    """Unix-socket connection URL for :func:`postgres_instance`."""
    return postgres_instance.url()
