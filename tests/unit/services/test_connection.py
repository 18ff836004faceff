"""Unit tests for MySqlConnection helpers that need no server."""

from sqlalchemy.exc import OperationalError

from docsql.errors import ER_NO_SUCH_TABLE
from docsql.models.config import ConnectionConfig
from docsql.services.connection import create_async_engine_from_config, translate_dbapi_error


class FakeDriverError(Exception):
    """Mimics PyMySQL errors, which carry (errno, message) as args."""


def test_translate_keeps_server_error_code() -> None:
    exc = OperationalError("SELECT 1", {}, FakeDriverError(ER_NO_SUCH_TABLE, "Table 'shop.nope' doesn't exist"))

    error = translate_dbapi_error(exc)

    assert error.code == ER_NO_SUCH_TABLE
    assert error.message == "Table 'shop.nope' doesn't exist"


def test_translate_without_error_code() -> None:
    exc = OperationalError("SELECT 1", {}, FakeDriverError("connection lost"))

    error = translate_dbapi_error(exc)

    assert error.code is None
    assert "connection lost" in error.message


def test_engine_url_escapes_credentials() -> None:
    config = ConnectionConfig(host="db.internal", port=3307, user="app", password="p@ss/word", database="shop")

    engine = create_async_engine_from_config(config)

    assert engine.url.drivername == "mysql+aiomysql"
    assert engine.url.host == "db.internal"
    assert engine.url.port == 3307
    assert engine.url.password == "p@ss/word"
    assert engine.url.database == "shop"
