"""Unit tests for the FieldHashCatalog service."""

import pytest

from docsql.errors import ER_DUP_ENTRY, EngineError, ValidationError
from docsql.models.identifiers import Identifier, TableName, hash_field
from docsql.services.catalog import FieldHashCatalog, substitute_field_name

CUSTOMERS = TableName(database="shop", name="customers")


@pytest.fixture
def catalog(connection) -> FieldHashCatalog:
    return FieldHashCatalog(connection=connection)


class TestFieldHashCatalogSchema:
    async def test_initialize_schema_creates_database_and_table(self, catalog, connection) -> None:
        await catalog.initialize_schema()

        assert connection.statements[0] == "CREATE DATABASE IF NOT EXISTS `system`"
        assert "CREATE TABLE IF NOT EXISTS" in connection.statements[1]

    async def test_table_exists(self, catalog, connection) -> None:
        connection.respond("information_schema.tables", rows=[{"count": 1}])
        assert await catalog.table_exists(CUSTOMERS)

        connection.respond("information_schema.tables", rows=[{"count": 0}])
        assert not await catalog.table_exists(CUSTOMERS)


class TestFieldHashCatalogMappings:
    async def test_upsert_mapping_keys_on_qualified_table(self, catalog, connection) -> None:
        await catalog.upsert_mapping(CUSTOMERS, "address.city")

        assert connection.params[-1] == {
            "tableName": "shop.customers",
            "fieldHash": hash_field("address.city"),
            "fieldName": "address.city",
        }

    async def test_setup_mappings_writes_every_field(self, catalog, connection) -> None:
        connection.respond("information_schema.tables", rows=[{"count": 1}])
        orders = TableName(database="shop", name="orders")

        written = await catalog.setup_field_hash_mappings({CUSTOMERS: ["email", "address.city"], orders: ["total"]})

        assert written == 3
        assert len(connection.executed("ON DUPLICATE KEY UPDATE")) == 3

    async def test_setup_mappings_stops_at_missing_table(self, catalog, connection) -> None:
        connection.respond("information_schema.tables", rows=[{"count": 0}])

        with pytest.raises(ValidationError, match="Table shop.customers does not exist"):
            await catalog.setup_field_hash_mappings({CUSTOMERS: ["email"]})

        assert connection.executed("ON DUPLICATE KEY UPDATE") == []

    async def test_delete_database_mappings(self, catalog, connection) -> None:
        await catalog.delete_database_mappings(Identifier(name="shop"))

        assert connection.statements[-1].startswith("DELETE FROM")
        assert "shop.%" in connection.params[-1].values()

    async def test_lookup_and_list(self, catalog, connection) -> None:
        field_hash = hash_field("email")
        connection.respond(
            "field_hash_map",
            rows=[{"fieldHash": field_hash, "tableName": "shop.customers", "fieldName": "email"}],
        )

        assert await catalog.lookup_field_name(CUSTOMERS, field_hash) == "email"
        mappings = await catalog.list_mappings(CUSTOMERS)
        assert [mapping.field_name for mapping in mappings] == ["email"]

    async def test_lookup_missing_mapping(self, catalog) -> None:
        assert await catalog.lookup_field_name(CUSTOMERS, hash_field("email")) is None


class TestEnhanceError:
    async def test_replaces_index_name_with_field_name(self, catalog, connection) -> None:
        column = hash_field("email")
        connection.respond("field_hash_map", rows=[{"fieldName": "email"}])
        error = EngineError(ER_DUP_ENTRY, f"Duplicate entry 'a@b.c' for key 'customers.idx_{column}'")

        enhanced = await catalog.enhance_error(error, CUSTOMERS)

        assert enhanced.code == ER_DUP_ENTRY
        assert enhanced.message == "Duplicate entry 'a@b.c' for key 'customers.email'"

    async def test_leaves_unknown_hashes(self, catalog) -> None:
        error = EngineError(ER_DUP_ENTRY, f"Duplicate entry 'x' for key 'idx_{hash_field('email')}'")

        assert await catalog.enhance_error(error, CUSTOMERS) is error

    async def test_messages_without_hashes_skip_lookup(self, catalog, connection) -> None:
        error = EngineError(1146, "Table 'shop.customers' doesn't exist")

        assert await catalog.enhance_error(error, CUSTOMERS) is error
        assert connection.statements == []

    async def test_lookup_failure_returns_original_error(self, catalog, connection) -> None:
        connection.respond("field_hash_map", error=EngineError(1146, "Table 'system.field_hash_map' doesn't exist"))
        error = EngineError(ER_DUP_ENTRY, f"Duplicate entry 'x' for key 'idx_{hash_field('email')}'")

        assert await catalog.enhance_error(error, CUSTOMERS) is error


def test_substitute_field_name() -> None:
    column = hash_field("age")
    message = f"Data truncated for column '{column}' at row 1; index idx_{column}"

    assert substitute_field_name(message, column, "age") == "Data truncated for column 'age' at row 1; index age"
