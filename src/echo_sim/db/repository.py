from __future__ import annotations

from echo_sim.db.connection import DBClient


class StateRepository:
    """Key-value documents in a single JSONB table."""

    def __init__(self, db: DBClient) -> None:
        self.db = db

    def ensure_schema(self) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS swarm_state (
                  key TEXT PRIMARY KEY,
                  value JSONB NOT NULL,
                  updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """
            )

    def get(self, key: str) -> str | None:
        with self.db.cursor() as cur:
            cur.execute(
                "SELECT value::text FROM swarm_state WHERE key = %s",
                (key,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            return str(row[0])

    def put(self, key: str, value: str) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO swarm_state (key, value, updated_at)
                VALUES (%s, %s::jsonb, now())
                ON CONFLICT (key)
                DO UPDATE SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                """,
                (key, value),
            )

