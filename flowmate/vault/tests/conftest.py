"""
Test fixtures for the vault.

``fake_db`` stands in for the user_integrations table: it understands exactly
the statements flowmate.vault.dal issues and keeps rows in a dict keyed by
(user_id, provider, team_id), mirroring the NULLS NOT DISTINCT constraint.
"""

from __future__ import annotations

import secrets

import pytest

from flowmate.db.connection import reset_connection_factory, set_connection_factory
from flowmate.vault.crypto import TokenCipher


class FakeIntegrationsDB:
    def __init__(self) -> None:
        self.rows: dict[tuple, dict] = {}
        self.statements: list[str] = []

    def connect(self) -> FakeConnection:
        return FakeConnection(self)


class FakeConnection:
    def __init__(self, db: FakeIntegrationsDB) -> None:
        self.db = db
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None) -> FakeCursor:
        return FakeCursor(self.db)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


class FakeCursor:
    def __init__(self, db: FakeIntegrationsDB) -> None:
        self.db = db
        self.rowcount = 0
        self._result: list[tuple] = []

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, sql: str, params: tuple = ()) -> None:
        sql = " ".join(sql.split())
        self.db.statements.append(sql)
        rows = self.db.rows

        if sql.startswith("INSERT INTO user_integrations"):
            user_id, provider, team_id, access, refresh, meta, created, updated = params
            existing = rows.get((user_id, provider, team_id))
            rows[(user_id, provider, team_id)] = {
                "access_token": access,
                "refresh_token": refresh,
                "metadata": meta.adapted,
                "created_at": existing["created_at"] if existing else created,
                "updated_at": updated,
            }
            self.rowcount = 1
        elif sql.startswith("SELECT access_token, refresh_token"):
            row = rows.get(tuple(params))
            self._result = [(row["access_token"], row["refresh_token"])] if row else []
        elif sql.startswith("SELECT user_id, provider, team_id"):
            row = rows.get(tuple(params))
            self._result = (
                [
                    (
                        *params,
                        row["refresh_token"] is not None,
                        row["metadata"],
                        row["created_at"],
                        row["updated_at"],
                    )
                ]
                if row
                else []
            )
        elif sql.startswith("SELECT provider, bool_or"):
            (user_id,) = params
            connected: dict[str, bool] = {}
            for (uid, provider, _team), row in rows.items():
                if uid == user_id:
                    connected[provider] = connected.get(provider, False) or bool(
                        row["access_token"]
                    )
            self._result = sorted(connected.items())
        elif sql.startswith("DELETE FROM user_integrations"):
            self.rowcount = 1 if rows.pop(tuple(params), None) else 0
        elif sql.startswith("SELECT count(*) FROM user_integrations"):
            self._result = [(len(rows),)]
        else:
            raise AssertionError(f"Unexpected SQL: {sql}")

    def fetchone(self):
        return self._result[0] if self._result else None

    def fetchall(self):
        return list(self._result)


@pytest.fixture
def fake_db():
    db = FakeIntegrationsDB()
    set_connection_factory(db.connect)
    yield db
    reset_connection_factory()


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(secrets.token_bytes(32))
