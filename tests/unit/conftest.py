"""Shared fakes for unit tests that never reach a MySQL server."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import pytest
from sqlalchemy.dialects import mysql

from docsql.services.document_store import DocumentStore


@dataclass
class _Response:
    fragment: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 1
    error: Exception | None = None


class FakeConnection:
    """Stands in for MySqlConnection.

    Every statement is compiled with the MySQL dialect and recorded. Replies
    are scripted with ``respond``: the most recently registered response
    whose fragment occurs in the SQL wins.
    """

    def __init__(self) -> None:
        self.statements: list[str] = []
        self.params: list[dict[str, Any]] = []
        self.disposed = False
        self._responses: list[_Response] = []

    def respond(
        self,
        fragment: str,
        rows: list[dict[str, Any]] | None = None,
        rowcount: int = 1,
        error: Exception | None = None,
    ) -> None:
        self._responses.insert(0, _Response(fragment, rows or [], rowcount, error))

    def executed(self, fragment: str) -> list[str]:
        return [sql for sql in self.statements if fragment in sql]

    def _record(self, statement: Any) -> _Response | None:
        compiled = statement.compile(dialect=mysql.dialect())
        sql = str(compiled)
        self.statements.append(sql)
        self.params.append(dict(compiled.params or {}))
        for response in self._responses:
            if response.fragment in sql:
                if response.error is not None:
                    raise response.error
                return response
        return None

    async def execute(self, statement: Any) -> int:
        response = self._record(statement)
        return response.rowcount if response else 1

    async def fetch_all(self, statement: Any) -> list[dict[str, Any]]:
        response = self._record(statement)
        return [dict(row) for row in response.rows] if response else []

    async def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def config() -> dict[str, Any]:
    return {
        "host": "localhost",
        "port": 3306,
        "user": "root",
        "password": "secret",
        "database": "shop",
    }


@pytest.fixture
async def store(connection: FakeConnection, config: dict[str, Any]) -> AsyncIterator[DocumentStore]:
    """An open DocumentStore wired to the fake connection."""
    store = DocumentStore(connection_factory=lambda settings, logger: connection)
    await store.init(config)
    yield store
    await store.close()
