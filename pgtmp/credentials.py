"""
Superuser password provisioning for globally exposed instances.

This is the only place pgtmp talks to the server through a real driver
(psycopg), so that authentication does not have to be reimplemented.
"""

from __future__ import annotations

import secrets
from typing import Any, Callable

import psycopg
from psycopg import sql

from pgtmp.errors import CredentialError

PASSWORD_BYTES = 16


def generate_password(nbytes: int = PASSWORD_BYTES) -> str:
    """Return *nbytes* of cryptographically random data, hex encoded."""
    return secrets.token_bytes(nbytes).hex()


def set_password(
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    database: str,
    connect: Callable[..., Any] = psycopg.connect,
) -> None:
    """
    Set the password of *user* over a connection to *host*:*port*.

    ``ALTER USER`` cannot take bind parameters, so the statement is composed
    client-side with the password quoted as a literal.

    Raises:
        CredentialError: If connecting or executing the statement fails.
    """
    statement = sql.SQL("ALTER USER {} PASSWORD {}").format(
        sql.Identifier(user), sql.Literal(password)
    )
    try:
        with connect(
            host=host,
            port=port,
            user=user,
            dbname=database,
            autocommit=True,
        ) as conn:
            conn.execute(statement)
    except psycopg.Error as e:
        raise CredentialError(f"setting password for {user!r}: {e}") from e
