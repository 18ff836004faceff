"""Document store service.

Stores JSON documents in two-column MySQL tables (primary key plus JSON
document) and queries them either by scanning JSON fields or through
secondary indexes on generated columns. All operations are coroutines on an
explicit ``DocumentStore`` value that owns one engine connection between
``init`` and ``close``.
"""

import math
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable

from docsql.errors import DocumentNotFoundError, EngineError, SessionStateError, ValidationError
from docsql.models.base import ensure_json_document, is_nested_variable_name_like, is_valid_primary_key
from docsql.models.config import ConnectionConfig
from docsql.models.identifiers import FIELD_HASH_PATTERN, Identifier, TableName, hash_field
from docsql.models.index import IndexDescriptor, is_valid_data_type
from docsql.models.query import PageOptions
from docsql.services import statements
from docsql.services.catalog import FieldHashCatalog, substitute_field_name
from docsql.services.connection import MySqlConnection

ConnectionFactory = Callable[[ConnectionConfig, structlog.stdlib.BoundLogger], MySqlConnection]

PRIMARY_INDEX_NAME = "PRIMARY"

WRITE_FAILURE = "Exception occurred while writing to database"
READ_FAILURE = "Exception occurred while getting data"
DELETE_FAILURE = "Exception occurred while deleting data"
SCHEMA_FAILURE = "Exception occurred while changing schema"
LIST_FAILURE = "Exception occurred while listing"
INDEX_FAILURE = "Exception occurred while creating index for JSON field"
CATALOG_FAILURE = "Exception occurred while updating field mappings"
INCREMENT_FAILURE = "Exception occurred while incrementing json fields"

_GENERATED_FIELD_PATTERN = re.compile(r"\$\.([A-Za-z_][\w.]*)")


@asynccontextmanager
async def _engine_failures(message: str) -> AsyncIterator[None]:
    """Turn failures below the engine (driver, network) into EngineError."""
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        raise EngineError(None, f"{message}\n{exc}") from exc


def _flatten_filters(query: Mapping[Any, Any], parent: str = "") -> list[tuple[str, Any]]:
    """Turn a (possibly nested) filter object into ``(field path, value)`` pairs.

    Keys are checked left to right and the first invalid one is reported.
    """
    filters: list[tuple[str, Any]] = []
    for key, value in query.items():
        if not is_nested_variable_name_like(key):
            raise ValidationError("queryObject", f"Invalid filed name {key}")
        path = f"{parent}.{key}" if parent else key
        if isinstance(value, dict):
            if not value:
                raise ValidationError("queryObject", "please provide valid queryObject")
            filters.extend(_flatten_filters(value, path))
        elif isinstance(value, (list, tuple)):
            raise ValidationError("queryObject", f"Unsupported filter value for field {path}")
        else:
            filters.append((path, value))
    return filters


@dataclass(frozen=True)
class _Session:
    config: ConnectionConfig
    connection: MySqlConnection
    catalog: FieldHashCatalog


class DocumentStore:
    """JSON document storage with secondary indexes on JSON fields.

    The connection is created by an injectable factory, so tests can hand in
    a fake connection and several stores can be open side by side.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._connection_factory = connection_factory or MySqlConnection.from_config
        self._logger = logger or structlog.get_logger(__name__)
        self._session: _Session | None = None

    async def __aenter__(self) -> "DocumentStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._session is not None

    # -- session ----------------------------------------------------------------

    async def init(self, config: ConnectionConfig | Mapping[str, Any]) -> None:
        """Open the connection and make sure the field-hash catalog exists.

        Args:
            config: Connection settings; host, port, user, password and
                database are all required.

        Raises:
            ValidationError: Naming the first missing or invalid setting.
            SessionStateError: If this store is already open.
            EngineError: If the catalog could not be created. The store stays
                closed.
        """
        connection_config = ConnectionConfig.coerce(config)
        if self._session is not None:
            self._logger.warning("connection_already_active")
            raise SessionStateError("One connection is active please close it before reinitializing it")

        connection = self._connection_factory(connection_config, self._logger)
        catalog = FieldHashCatalog(connection=connection, logger=self._logger)
        try:
            async with _engine_failures("Exception occurred while initializing field hash catalog"):
                await catalog.initialize_schema()
        except EngineError:
            await connection.dispose()
            raise

        self._session = _Session(config=connection_config, connection=connection, catalog=catalog)
        self._logger.info(
            "document_store_opened",
            host=connection_config.host,
            port=connection_config.port,
            database=connection_config.database,
        )

    async def close(self) -> None:
        """Release the connection. Safe to call when already closed."""
        session = self._session
        if session is None:
            return
        self._session = None
        await session.connection.dispose()
        self._logger.info("document_store_closed")

    # -- databases and tables ------------------------------------------------------

    async def create_database(self, database: str) -> bool:
        session = self._require_session("create_database")
        name = Identifier.parse(database, "data base name")
        await self._execute(session, statements.create_database(name), SCHEMA_FAILURE)
        self._logger.info("database_created", database=name.name)
        return True

    async def delete_database(self, database: str) -> bool:
        """Drop a database and forget the field mappings of its tables.

        The drop decides the outcome; a failed catalog cleanup is only logged.
        """
        session = self._require_session("delete_database")
        name = Identifier.parse(database, "data base name")
        await self._execute(session, statements.drop_database(name), SCHEMA_FAILURE)
        await self._clean_catalog(session.catalog.delete_database_mappings(name), database=name.name)
        self._logger.info("database_deleted", database=name.name)
        return True

    async def create_table(self, table: str, primary_key_column: str, json_column: str) -> bool:
        """Create a document table.

        The table has exactly two columns: ``primary_key_column`` as
        ``VARCHAR(255)`` primary key and ``json_column`` holding the document.
        Use ``create_index_for_json_field`` to make JSON fields queryable
        through an index.
        """
        session = self._require_session("create_table")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        document_column = Identifier.parse(json_column, "json column name")
        await self._execute(
            session,
            statements.create_table(table_name, primary_key, document_column),
            SCHEMA_FAILURE,
        )
        self._logger.info("table_created", table=table_name.qualified)
        return True

    async def delete_table(self, table: str) -> bool:
        """Drop a table if it exists and forget its field mappings."""
        session = self._require_session("delete_table")
        table_name = self._table_name(session, table)
        await self._execute(session, statements.drop_table(table_name), SCHEMA_FAILURE)
        await self._clean_catalog(session.catalog.delete_table_mappings(table_name), table=table_name.qualified)
        self._logger.info("table_deleted", table=table_name.qualified)
        return True

    async def list_databases(self) -> list[str]:
        session = self._require_session("list_databases")
        rows = await self._fetch_all(session, statements.show_databases(), f"{LIST_FAILURE} databases")
        return [row["Database"] for row in rows]

    async def list_tables(self, database: str) -> list[str]:
        session = self._require_session("list_tables")
        name = Identifier.parse(database, "data base name")
        rows = await self._fetch_all(session, statements.show_tables(name), f"{LIST_FAILURE} tables")
        # SHOW TABLES names its only column after the database.
        return [next(iter(row.values())) for row in rows]

    # -- documents -----------------------------------------------------------------

    async def put(
        self,
        table: str,
        primary_key_column: str,
        key: str,
        json_column: str,
        document: dict[str, Any] | list[Any],
    ) -> bool:
        """Insert a document, or replace the one stored under ``key``.

        Raises:
            ValidationError: If a name, the key or the document is invalid.
            EngineError: With the server's code for engine errors (for example
                a duplicate entry on a unique JSON field index, reported with
                the field name). Failures below the engine carry no code and
                a message starting with "Exception occurred while writing to
                database".
        """
        session = self._require_session("put")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        primary_key_value = self._primary_key(key)
        document_column = Identifier.parse(json_column, "json column name")
        self._validate_document(document)

        await self._execute(
            session,
            statements.upsert_document(table_name, primary_key, document_column, primary_key_value, document),
            WRITE_FAILURE,
            table=table_name,
        )
        self._logger.debug("document_saved", table=table_name.qualified, key=primary_key_value)
        return True

    async def get(self, table: str, primary_key_column: str, key: str, json_column: str) -> Any | None:
        """Return the document stored under ``key``, or None if there is none.

        A missing table is not absence: it raises the engine's own
        ``EngineError`` (code 1146).
        """
        session = self._require_session("get")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        primary_key_value = self._primary_key(key)
        document_column = Identifier.parse(json_column, "json column name")

        rows = await self._fetch_all(
            session,
            statements.select_document(table_name, primary_key, document_column, primary_key_value),
            READ_FAILURE,
        )
        if not rows:
            return None
        return rows[0][document_column.name]

    async def update(
        self,
        table: str,
        primary_key_column: str,
        key: str,
        json_column: str,
        document: dict[str, Any] | list[Any],
    ) -> bool:
        """Overwrite an existing document.

        Raises:
            DocumentNotFoundError: If nothing is stored under ``key``.
        """
        session = self._require_session("update")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        primary_key_value = self._primary_key(key)
        document_column = Identifier.parse(json_column, "json column name")
        self._validate_document(document)

        affected = await self._execute(
            session,
            statements.update_document(table_name, primary_key, document_column, primary_key_value, document),
            WRITE_FAILURE,
            table=table_name,
        )
        if affected == 0:
            raise DocumentNotFoundError(table_name.qualified, primary_key_value)
        self._logger.debug("document_updated", table=table_name.qualified, key=primary_key_value)
        return True

    async def math_add(
        self,
        table: str,
        primary_key_column: str,
        key: str,
        json_column: str,
        increments: dict[str, int | float],
    ) -> bool:
        """Add numbers to fields of a stored document in one statement.

        ``increments`` maps field paths (``"stats.visits"``) to the amount to
        add. Fields missing from the document start at zero.

        Raises:
            DocumentNotFoundError: If nothing is stored under ``key``.
        """
        session = self._require_session("math_add")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        primary_key_value = self._primary_key(key)
        document_column = Identifier.parse(json_column, "json column name")
        fields = self._validate_increments(increments)

        affected = await self._execute(
            session,
            statements.increment_fields(table_name, primary_key, document_column, primary_key_value, fields),
            INCREMENT_FAILURE,
            table=table_name,
        )
        if affected == 0:
            raise DocumentNotFoundError(table_name.qualified, primary_key_value)
        self._logger.debug(
            "document_fields_incremented",
            table=table_name.qualified,
            key=primary_key_value,
            fields=[field_path for field_path, _ in fields],
        )
        return True

    async def delete_key(self, table: str, primary_key_column: str, key: str) -> bool:
        """Delete the document under ``key``; succeeds whether or not it existed."""
        session = self._require_session("delete_key")
        table_name = self._table_name(session, table)
        primary_key = Identifier.parse(primary_key_column, "primary key column name")
        primary_key_value = self._primary_key(key)

        await self._execute(
            session,
            statements.delete_document(table_name, primary_key, primary_key_value),
            DELETE_FAILURE,
        )
        self._logger.debug("document_deleted", table=table_name.qualified, key=primary_key_value)
        return True

    # -- queries -----------------------------------------------------------------

    async def get_from_non_index(
        self,
        table: str,
        json_column: str,
        query: dict[str, Any],
        page: PageOptions | None = None,
    ) -> list[Any]:
        """Scan for documents whose fields equal every value in ``query``.

        Nested objects address nested fields, so ``{"address": {"city": "x"}}``
        and ``{"address.city": "x"}`` are the same filter. This reads every
        row; for frequent queries create an index and use ``get_from_index``.

        Returns:
            The matching documents, at most 1000 unless ``page`` says otherwise.
        """
        session = self._require_session("get_from_non_index")
        self._validate_query(query)
        table_name = self._table_name(session, table)
        document_column = Identifier.parse(json_column, "json column name")
        filters = _flatten_filters(query)

        rows = await self._fetch_all(
            session,
            statements.select_by_json_fields(table_name, document_column, filters, page or PageOptions()),
            READ_FAILURE,
        )
        return [row[document_column.name] for row in rows]

    async def get_from_index(
        self,
        table: str,
        json_column: str,
        query: dict[str, Any],
        page: PageOptions | None = None,
    ) -> list[Any]:
        """Like ``get_from_non_index`` but matches on indexed JSON fields.

        Every field in ``query`` must have been indexed with
        ``create_index_for_json_field``.
        """
        session = self._require_session("get_from_index")
        self._validate_query(query)
        table_name = self._table_name(session, table)
        document_column = Identifier.parse(json_column, "json column name")
        filters = _flatten_filters(query)

        rows = await self._fetch_all(
            session,
            statements.select_by_index_columns(table_name, document_column, filters, page or PageOptions()),
            "Exception occurred while querying index",
            table=table_name,
        )
        return [row[document_column.name] for row in rows]

    # -- secondary indexes -----------------------------------------------------------

    async def create_index_for_json_field(
        self,
        table: str,
        json_column: str,
        field_path: str,
        data_type: str,
        is_unique: bool = False,
        is_nullable: bool = True,
    ) -> bool:
        """Index a JSON field through a generated column.

        The column is named ``hash_field(field_path)`` and the mapping back
        to ``field_path`` is recorded in the catalog. If a later step fails,
        the steps already applied are undone before the error is raised.

        Args:
            table: Table holding the documents.
            json_column: The table's JSON column.
            field_path: Field to index, ``x`` or ``x.y.z``.
            data_type: MySQL column type, e.g. ``DataType.INT`` or ``varchar(50)``.
            is_unique: Reject documents that repeat a value of this field.
            is_nullable: Allow documents without this field.
        """
        session = self._require_session("create_index_for_json_field")
        table_name = self._table_name(session, table)
        document_column = Identifier.parse(json_column, "json column name")
        if not is_nested_variable_name_like(field_path):
            raise ValidationError("field_path", "please provide valid name for json field")
        if not is_valid_data_type(data_type):
            raise ValidationError("data_type", "please provide valid data type for json field")
        column_name = hash_field(field_path)

        try:
            await self._execute(
                session,
                statements.add_generated_column(table_name, document_column, field_path, data_type, is_nullable),
                INDEX_FAILURE,
            )
        except EngineError as error:
            raise error.with_message(substitute_field_name(error.message, column_name, field_path)) from error

        try:
            await self._execute(session, statements.create_index(table_name, column_name, is_unique), INDEX_FAILURE)
        except EngineError as error:
            await self._undo_index(session, table_name, [statements.drop_column(table_name, column_name)])
            raise error.with_message(substitute_field_name(error.message, column_name, field_path)) from error

        try:
            async with _engine_failures(CATALOG_FAILURE):
                await session.catalog.upsert_mapping(table_name, field_path)
        except EngineError:
            await self._undo_index(
                session,
                table_name,
                [statements.drop_index(table_name, column_name), statements.drop_column(table_name, column_name)],
            )
            raise

        self._logger.info(
            "json_field_index_created",
            table=table_name.qualified,
            field_path=field_path,
            column=column_name,
            is_unique=is_unique,
        )
        return True

    async def get_table_indexes(self, table: str) -> list[IndexDescriptor]:
        """Describe the indexes of a ``database.table``, naming JSON fields.

        The primary key and indexes on plain columns report ``json_field`` as
        None; indexes on generated columns report the dotted field path.
        """
        session = self._require_session("get_table_indexes")
        table_name = TableName.parse(table, "table name in database.tableName format", require_database=True)

        index_rows = await self._fetch_all(session, statements.show_index(table_name), f"{LIST_FAILURE} indexes")
        column_rows = await self._fetch_all(
            session,
            statements.select_generated_columns(table_name),
            f"{LIST_FAILURE} indexes",
        )
        expressions = {row["colName"]: row["genExpr"] for row in column_rows}

        descriptors = []
        for row in index_rows:
            index_name = row["Key_name"]
            column_name = row["Column_name"] or ""
            is_primary = index_name == PRIMARY_INDEX_NAME
            json_field = None
            if not is_primary:
                json_field = await self._resolve_json_field(
                    session, table_name, column_name, expressions.get(column_name)
                )
            descriptors.append(
                IndexDescriptor(
                    index_name=index_name,
                    column_name=column_name,
                    json_field=json_field,
                    is_unique=int(row["Non_unique"]) == 0,
                    is_primary=is_primary,
                )
            )
        return descriptors

    async def setup_field_hash_mappings(self, mappings: Mapping[str, Sequence[str]]) -> int:
        """Register field names for tables without creating indexes.

        Args:
            mappings: Field paths per table, e.g.
                ``{"shop.customers": ["email", "address.city"]}``.

        Returns:
            The number of mappings written.
        """
        session = self._require_session("setup_field_hash_mappings")
        if not isinstance(mappings, Mapping) or not mappings:
            raise ValidationError("mappings", "please provide valid field mappings")

        parsed: dict[TableName, list[str]] = {}
        for table, fields in mappings.items():
            table_name = self._table_name(session, table)
            if isinstance(fields, str) or not all(is_nested_variable_name_like(field) for field in fields):
                raise ValidationError("mappings", f"please provide valid field names for {table}")
            parsed[table_name] = list(fields)

        async with _engine_failures(CATALOG_FAILURE):
            return await session.catalog.setup_field_hash_mappings(parsed)

    # -- helpers -----------------------------------------------------------------

    def _require_session(self, operation: str) -> _Session:
        if self._session is None:
            raise SessionStateError(f"Please call init before {operation}")
        return self._session

    def _table_name(self, session: _Session, table: Any) -> TableName:
        return TableName.parse(table).qualify(session.config.database)

    def _primary_key(self, key: Any) -> str:
        if not is_valid_primary_key(key):
            raise ValidationError("primary key", "please provide valid primary key")
        return key

    def _validate_document(self, document: Any) -> None:
        try:
            ensure_json_document(document)
        except (TypeError, ValueError) as exc:
            raise ValidationError("document", f"please provide valid document: {exc}") from exc

    def _validate_increments(self, increments: Any) -> list[tuple[str, int | float]]:
        if not isinstance(increments, dict) or not increments:
            raise ValidationError("increments", "please provide valid increments for json field")
        fields: list[tuple[str, int | float]] = []
        for field_path, amount in increments.items():
            if not isinstance(field_path, str) or not is_nested_variable_name_like(field_path):
                raise ValidationError("increments", f"Invalid filed name {field_path}")
            if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
                raise ValidationError("increments", "increment can be done only with numerical values")
            fields.append((field_path, amount))
        return fields

    def _validate_query(self, query: Any) -> None:
        if not isinstance(query, dict) or not query:
            raise ValidationError("queryObject", "please provide valid queryObject")

    async def _execute(
        self,
        session: _Session,
        statement: Executable,
        failure_message: str,
        table: TableName | None = None,
    ) -> int:
        try:
            async with _engine_failures(failure_message):
                return await session.connection.execute(statement)
        except EngineError as error:
            if table is None:
                raise
            enhanced = await session.catalog.enhance_error(error, table)
            if enhanced is error:
                raise
            raise enhanced from error

    async def _fetch_all(
        self,
        session: _Session,
        statement: Executable,
        failure_message: str,
        table: TableName | None = None,
    ) -> list[dict[str, Any]]:
        try:
            async with _engine_failures(failure_message):
                return await session.connection.fetch_all(statement)
        except EngineError as error:
            if table is None:
                raise
            enhanced = await session.catalog.enhance_error(error, table)
            if enhanced is error:
                raise
            raise enhanced from error

    async def _clean_catalog(self, cleanup: Awaitable[None], **context: Any) -> None:
        try:
            async with _engine_failures(CATALOG_FAILURE):
                await cleanup
        except EngineError as error:
            self._logger.warning("catalog_cleanup_failed", code=error.code, error=str(error), **context)

    async def _undo_index(self, session: _Session, table_name: TableName, undo: list[Executable]) -> None:
        for statement in undo:
            try:
                await self._execute(session, statement, INDEX_FAILURE)
            except EngineError as error:
                self._logger.warning("index_rollback_failed", table=table_name.qualified, error=str(error))
                return
        self._logger.warning("index_creation_rolled_back", table=table_name.qualified)

    async def _resolve_json_field(
        self,
        session: _Session,
        table_name: TableName,
        column_name: str,
        expression: str | None,
    ) -> str | None:
        if expression:
            match = _GENERATED_FIELD_PATTERN.search(expression)
            if match:
                return match.group(1)
        if FIELD_HASH_PATTERN.fullmatch(column_name):
            async with _engine_failures(f"{LIST_FAILURE} indexes"):
                return await session.catalog.lookup_field_name(table_name, column_name)
        return None
