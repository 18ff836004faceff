"""Connection to a MySQL-compatible engine.

Uses SQLAlchemy's native async support with aiomysql, so every statement is
awaited without tying up a worker thread. Each call checks out a connection
for the length of one statement, which lets many independent operations run
concurrently against the same engine handle.
"""

from typing import Any

import structlog
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql import Executable

from docsql.errors import EngineError
from docsql.models.config import ConnectionConfig

DRIVER_NAME = "mysql+aiomysql"


class MySqlConnection:
    """Executes statements and returns plain rows.

    Accepts an AsyncEngine via dependency injection; the store only ever
    talks to this narrow surface, which keeps test doubles small.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> "MySqlConnection":
        return cls(engine=create_async_engine_from_config(config), logger=logger)

    async def execute(self, statement: Executable) -> int:
        """Run a write or DDL statement in its own transaction.

        Returns:
            The number of rows the engine reports as affected.

        Raises:
            EngineError: If the driver reported an error.
        """
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(statement)
                return result.rowcount
        except DBAPIError as exc:
            raise translate_dbapi_error(exc) from exc

    async def fetch_all(self, statement: Executable) -> list[dict[str, Any]]:
        """Run a read statement and return every row as a dict."""
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(statement)
                return [dict(row) for row in result.mappings().all()]
        except DBAPIError as exc:
            raise translate_dbapi_error(exc) from exc

    async def dispose(self) -> None:
        await self._engine.dispose()
        self._logger.debug("connection_disposed")


def translate_dbapi_error(exc: DBAPIError) -> EngineError:
    """Convert a wrapped driver error into an EngineError.

    PyMySQL errors carry ``(errno, message)`` as their args; the errno is kept
    as the machine-readable code.
    """
    orig = exc.orig
    args = getattr(orig, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return EngineError(args[0], str(args[1]))
    return EngineError(None, str(orig) if orig is not None else str(exc))


def create_async_engine_from_config(config: ConnectionConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given connection settings.

    The URL is assembled with ``URL.create`` so that credentials containing
    reserved characters are escaped.
    """
    url = URL.create(
        DRIVER_NAME,
        username=config.user,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
    )
    return create_async_engine(url, pool_pre_ping=True)
