from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import psycopg
from psycopg import Connection

from .config import DbConfig

log = logging.getLogger(__name__)


class DbError(Exception):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig
    application_name: str = "tailordesk"

    def connect(self, autocommit: bool = False) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                connect_timeout=self.cfg.connect_timeout,
                application_name=self.application_name,
                autocommit=autocommit,
            )
        except psycopg.OperationalError as e:
            log.error("database connection failed host=%s db=%s: %s", self.cfg.host, self.cfg.name, e)
            raise DbError("Cannot reach the database. Check config.toml [db] and your network.") from e

    @contextmanager
    def session(self) -> Iterator[Connection]:
        """Read-only work: each statement commits on its own."""
        conn = self.connect(autocommit=True)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """All writes inside the block commit together or not at all."""
        with self.connect() as conn:
            with conn.transaction():
                yield conn


def rows_as_dicts(cur) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def row_as_dict(cur) -> dict | None:
    row = cur.fetchone()
    if row is None:
        return None
    return dict(zip((d.name for d in cur.description), row))
