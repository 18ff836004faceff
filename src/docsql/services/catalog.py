"""Field-hash catalog service.

Generated index columns are named by hashing the JSON field path they are
derived from, which keeps names inside MySQL's identifier limit but makes
them unreadable. The catalog (``system.field_hash_map``) maps each hash back
to its field path per table, so index listings and engine error messages can
show ``address.city`` instead of ``col_6a1a7318...``.
"""

import re
from collections.abc import Mapping, Sequence

import structlog

from docsql.errors import EngineError, ValidationError
from docsql.models.identifiers import FIELD_HASH_PATTERN, Identifier, TableName
from docsql.models.index import FieldHashMapping
from docsql.services import statements
from docsql.services.connection import MySqlConnection


def substitute_field_name(message: str, field_hash: str, field_name: str) -> str:
    """Replace a hashed column or index name in ``message`` with its field path."""
    return re.sub(rf"(?:idx_)?{re.escape(field_hash)}", field_name, message)


class FieldHashCatalog:
    """Maintains and queries the hash-to-field-name catalog.

    Table names handed to the catalog must already be qualified as
    ``database.table``; that string is the catalog's ``tableName`` key.
    """

    def __init__(
        self,
        connection: MySqlConnection,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._connection = connection
        self._logger = logger or structlog.get_logger(__name__)

    async def initialize_schema(self) -> None:
        """Create the system database and catalog table if they don't exist."""
        await self._connection.execute(statements.create_catalog_database())
        await self._connection.execute(statements.create_catalog_table())
        self._logger.info("field_hash_catalog_initialized")

    async def upsert_mapping(self, table: TableName, field_name: str) -> None:
        await self._connection.execute(statements.upsert_field_mapping(table.qualified, field_name))
        self._logger.debug("field_mapping_saved", table=table.qualified, field_name=field_name)

    async def table_exists(self, table: TableName) -> bool:
        rows = await self._connection.fetch_all(statements.count_tables(table))
        return bool(rows) and int(rows[0]["count"]) > 0

    async def setup_field_hash_mappings(self, mappings: Mapping[TableName, Sequence[str]]) -> int:
        """Register fields for tables that exist, returning rows written.

        Used for fields that are only ever scanned, so error enhancement and
        introspection can still name them.

        Raises:
            ValidationError: If a table does not exist; nothing after it is written.
        """
        written = 0
        for table, fields in mappings.items():
            if not await self.table_exists(table):
                raise ValidationError(table.qualified, f"Table {table.qualified} does not exist")
            for field_name in fields:
                await self.upsert_mapping(table, field_name)
                written += 1
        self._logger.info("field_mappings_seeded", table_count=len(mappings), mapping_count=written)
        return written

    async def delete_table_mappings(self, table: TableName) -> None:
        await self._connection.execute(statements.delete_table_mappings(table.qualified))
        self._logger.debug("field_mappings_deleted", table=table.qualified)

    async def delete_database_mappings(self, database: Identifier) -> None:
        await self._connection.execute(statements.delete_database_mappings(database))
        self._logger.debug("field_mappings_deleted", database=database.name)

    async def lookup_field_name(self, table: TableName, field_hash: str) -> str | None:
        rows = await self._connection.fetch_all(statements.select_field_name(table.qualified, field_hash))
        if not rows:
            return None
        return rows[0]["fieldName"]

    async def list_mappings(self, table: TableName) -> list[FieldHashMapping]:
        rows = await self._connection.fetch_all(statements.select_table_mappings(table.qualified))
        return [
            FieldHashMapping(field_hash=row["fieldHash"], table_name=row["tableName"], field_name=row["fieldName"])
            for row in rows
        ]

    async def enhance_error(self, error: EngineError, table: TableName) -> EngineError:
        """Replace hashed column names in an engine error with field names.

        Hashes without a catalog row for ``table`` are left as they are. If the
        catalog itself cannot be read the original error is returned.
        """
        field_hashes = list(dict.fromkeys(match.group(1) for match in FIELD_HASH_PATTERN.finditer(error.message)))
        if not field_hashes:
            return error

        message = error.message
        for field_hash in field_hashes:
            try:
                field_name = await self.lookup_field_name(table, field_hash)
            except EngineError as lookup_error:
                self._logger.warning(
                    "field_mapping_lookup_failed",
                    table=table.qualified,
                    field_hash=field_hash,
                    error=str(lookup_error),
                )
                return error
            if field_name is not None:
                message = substitute_field_name(message, field_hash, field_name)

        if message == error.message:
            return error
        self._logger.debug("engine_error_enhanced", table=table.qualified, code=error.code)
        return error.with_message(message)
