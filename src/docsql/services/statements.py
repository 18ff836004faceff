"""Statement builders for every SQL statement docsql issues.

Names only ever arrive here as ``Identifier``/``TableName`` values, which are
validated on construction, and are quoted by the MySQL identifier preparer.
Keys, documents and filter values are always bound parameters. DML is built
with SQLAlchemy Core against lightweight ``table()`` constructs since user
tables are created at runtime; DDL that Core cannot express (generated
columns, ``SHOW``) is assembled as text from quoted names.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import JSON, String, and_, column, delete, func, select, table, text, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.schema import CreateTable
from sqlalchemy.sql import Executable, quoted_name
from sqlalchemy.sql.expression import TableClause

from docsql.models.base import MAX_PRIMARY_KEY_LENGTH
from docsql.models.identifiers import Identifier, TableName, hash_field, index_name_for_column, quote_identifier
from docsql.models.query import PageOptions
from docsql.models.tables import CATALOG_DATABASE, FieldHashMapRecord

LIKE_ESCAPE = "\\"
_CATALOG = FieldHashMapRecord.__table__


def _quoted(name: str) -> quoted_name:
    return quoted_name(name, quote=True)


def document_table(table_name: TableName, primary_key: Identifier, json_column: Identifier) -> TableClause:
    """Describe a document table so Core can build DML against it."""
    return table(
        _quoted(table_name.name),
        column(_quoted(primary_key.name), String(MAX_PRIMARY_KEY_LENGTH)),
        column(_quoted(json_column.name), JSON),
        schema=_quoted(table_name.database) if table_name.database else None,
    )


def json_path(field_path: str) -> str:
    return f"$.{field_path}"


def scan_value(value: Any) -> Any:
    """Map a filter value onto the text ``JSON_UNQUOTE`` produces for it."""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return value


def _paginate(statement: Any, page: PageOptions) -> Any:
    statement = statement.limit(page.limit)
    if page.offset:
        statement = statement.offset(page.offset)
    return statement


# -- databases and tables ---------------------------------------------------


def create_database(database: Identifier) -> Executable:
    return text(f"CREATE DATABASE {database.quoted}")


def drop_database(database: Identifier) -> Executable:
    return text(f"DROP DATABASE {database.quoted}")


def show_databases() -> Executable:
    return text("SHOW DATABASES")


def show_tables(database: Identifier) -> Executable:
    return text(f"SHOW TABLES FROM {database.quoted}")


def create_table(table_name: TableName, primary_key: Identifier, json_column: Identifier) -> Executable:
    return text(
        f"CREATE TABLE {table_name.quoted} "
        f"({primary_key.quoted} VARCHAR({MAX_PRIMARY_KEY_LENGTH}) NOT NULL PRIMARY KEY, "
        f"{json_column.quoted} JSON NOT NULL)"
    )


def drop_table(table_name: TableName) -> Executable:
    return text(f"DROP TABLE IF EXISTS {table_name.quoted}")


def count_tables(table_name: TableName) -> Executable:
    return text(
        "SELECT COUNT(*) AS count FROM information_schema.tables "
        "WHERE table_schema = :schema AND table_name = :table"
    ).bindparams(schema=table_name.database, table=table_name.name)


# -- documents ----------------------------------------------------------------


def upsert_document(
    table_name: TableName,
    primary_key: Identifier,
    json_column: Identifier,
    key: str,
    document: Any,
) -> Executable:
    documents = document_table(table_name, primary_key, json_column)
    statement = mysql_insert(documents).values({primary_key.name: key, json_column.name: document})
    return statement.on_duplicate_key_update({json_column.name: statement.inserted[json_column.name]})


def select_document(table_name: TableName, primary_key: Identifier, json_column: Identifier, key: str) -> Executable:
    documents = document_table(table_name, primary_key, json_column)
    return select(documents.c[json_column.name]).where(documents.c[primary_key.name] == key)


def update_document(
    table_name: TableName,
    primary_key: Identifier,
    json_column: Identifier,
    key: str,
    document: Any,
) -> Executable:
    documents = document_table(table_name, primary_key, json_column)
    return update(documents).where(documents.c[primary_key.name] == key).values({json_column.name: document})


def increment_fields(
    table_name: TableName,
    primary_key: Identifier,
    json_column: Identifier,
    key: str,
    increments: Sequence[tuple[str, int | float]],
) -> Executable:
    """Add to numeric fields in place; a missing field counts as zero."""
    documents = document_table(table_name, primary_key, json_column)
    document = documents.c[json_column.name]
    arguments: list[Any] = [document]
    for field_path, amount in increments:
        path = json_path(field_path)
        arguments.extend([path, func.IFNULL(func.JSON_EXTRACT(document, path), 0) + amount])
    return (
        update(documents)
        .where(documents.c[primary_key.name] == key)
        .values({json_column.name: func.JSON_SET(*arguments)})
    )


def delete_document(table_name: TableName, primary_key: Identifier, key: str) -> Executable:
    documents = table(
        _quoted(table_name.name),
        column(_quoted(primary_key.name), String(MAX_PRIMARY_KEY_LENGTH)),
        schema=_quoted(table_name.database) if table_name.database else None,
    )
    return delete(documents).where(documents.c[primary_key.name] == key)


def select_by_json_fields(
    table_name: TableName,
    json_column: Identifier,
    filters: Sequence[tuple[str, Any]],
    page: PageOptions,
) -> Executable:
    """Scan: compare the unquoted JSON text of each field with its value."""
    documents = table(
        _quoted(table_name.name),
        column(_quoted(json_column.name), JSON),
        schema=_quoted(table_name.database) if table_name.database else None,
    )
    document_column = documents.c[json_column.name]
    predicates = [
        func.JSON_UNQUOTE(func.JSON_EXTRACT(document_column, json_path(path))) == scan_value(value)
        for path, value in filters
    ]
    return _paginate(select(document_column).where(and_(*predicates)), page)


def select_by_index_columns(
    table_name: TableName,
    json_column: Identifier,
    filters: Sequence[tuple[str, Any]],
    page: PageOptions,
) -> Executable:
    """Indexed lookup: compare the generated columns derived from each field."""
    field_columns = {path: column(_quoted(hash_field(path))) for path, _ in filters}
    documents = table(
        _quoted(table_name.name),
        column(_quoted(json_column.name), JSON),
        *field_columns.values(),
        schema=_quoted(table_name.database) if table_name.database else None,
    )
    predicates = [documents.c[hash_field(path)] == value for path, value in filters]
    return _paginate(select(documents.c[json_column.name]).where(and_(*predicates)), page)


# -- secondary indexes ---------------------------------------------------------


def add_generated_column(
    table_name: TableName,
    json_column: Identifier,
    field_path: str,
    data_type: str,
    is_nullable: bool,
) -> Executable:
    """``field_path`` must already be validated as a dotted variable path."""
    not_null = "" if is_nullable else " NOT NULL"
    return text(
        f"ALTER TABLE {table_name.quoted} ADD COLUMN {quote_identifier(hash_field(field_path))} {data_type} "
        f"GENERATED ALWAYS AS (JSON_UNQUOTE(JSON_EXTRACT({json_column.quoted}, '{json_path(field_path)}')))"
        f"{not_null}"
    )


def create_index(table_name: TableName, column_name: str, is_unique: bool) -> Executable:
    unique = "UNIQUE " if is_unique else ""
    index_name = quote_identifier(index_name_for_column(column_name))
    return text(f"CREATE {unique}INDEX {index_name} ON {table_name.quoted} ({quote_identifier(column_name)})")


def drop_index(table_name: TableName, column_name: str) -> Executable:
    index_name = quote_identifier(index_name_for_column(column_name))
    return text(f"DROP INDEX {index_name} ON {table_name.quoted}")


def drop_column(table_name: TableName, column_name: str) -> Executable:
    return text(f"ALTER TABLE {table_name.quoted} DROP COLUMN {quote_identifier(column_name)}")


def show_index(table_name: TableName) -> Executable:
    return text(f"SHOW INDEX FROM {table_name.quoted}")


def select_generated_columns(table_name: TableName) -> Executable:
    return text(
        "SELECT COLUMN_NAME AS colName, GENERATION_EXPRESSION AS genExpr "
        "FROM information_schema.COLUMNS "
        "WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table AND GENERATION_EXPRESSION <> ''"
    ).bindparams(schema=table_name.database, table=table_name.name)


# -- field-hash catalog ----------------------------------------------------------


def create_catalog_database() -> Executable:
    return text(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(CATALOG_DATABASE)}")


def create_catalog_table() -> Executable:
    return CreateTable(_CATALOG, if_not_exists=True)


def upsert_field_mapping(table_name: str, field_name: str) -> Executable:
    """Replace-style write keyed on (tableName, fieldHash)."""
    statement = mysql_insert(_CATALOG).values(
        tableName=table_name,
        fieldHash=hash_field(field_name),
        fieldName=field_name,
    )
    return statement.on_duplicate_key_update(fieldName=statement.inserted.fieldName)


def delete_table_mappings(table_name: str) -> Executable:
    return delete(_CATALOG).where(_CATALOG.c.tableName == table_name)


def delete_database_mappings(database: Identifier) -> Executable:
    prefix = database.name.replace("_", f"{LIKE_ESCAPE}_")
    return delete(_CATALOG).where(_CATALOG.c.tableName.like(f"{prefix}.%", escape=LIKE_ESCAPE))


def select_field_name(table_name: str, field_hash: str) -> Executable:
    return select(_CATALOG.c.fieldName).where(
        _CATALOG.c.tableName == table_name,
        _CATALOG.c.fieldHash == field_hash,
    )


def select_table_mappings(table_name: str) -> Executable:
    return (
        select(_CATALOG.c.fieldHash, _CATALOG.c.tableName, _CATALOG.c.fieldName)
        .where(_CATALOG.c.tableName == table_name)
        .order_by(_CATALOG.c.fieldName)
    )
