from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from echo_sim.config.settings import DBSettings

APPLICATION_NAME = "echo-sim"


class DBClient:
    """Lazily opened psycopg2 connection shared by the state repository.

    Every cursor() block is its own transaction: committed on success,
    rolled back and re-raised on error.
    """

    def __init__(self, settings: DBSettings) -> None:
        self._settings = settings
        self._conn: PgConnection | None = None
        self._logger = logging.getLogger("echo_sim.db")

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def connect(self) -> PgConnection:
        if not self.is_connected:
            self._logger.info(
                "Connecting host=%s port=%s db=%s",
                self._settings.host, self._settings.port, self._settings.name,
            )
            self._conn = psycopg2.connect(
                self._settings.dsn, application_name=APPLICATION_NAME
            )
            self._conn.autocommit = False
        return self._conn

    @contextmanager
    def cursor(self) -> Iterator[PgCursor]:
        conn = self.connect()
        cur = conn.cursor()
        try:
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cur.close()

    def close(self) -> None:
        if self._conn is None:
            return
        if not self._conn.closed:
            self._conn.close()
            self._logger.info("Connection closed db=%s", self._settings.name)
        self._conn = None
