"""Document store CLI.

Provides commands for managing document tables, reading and writing JSON
documents and creating indexes on JSON fields. Connection settings come from
the MY_SQL_* environment variables.
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

import structlog
import typer

from docsql.errors import DocStoreError
from docsql.models.query import MAX_DOCUMENTS_PER_QUERY, PageOptions
from docsql.services.document_store import DocumentStore
from docsql.services.factory import create_document_store, load_connection_config, parse_field_mappings

T = TypeVar("T")

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=lambda name: structlog.PrintLogger(file=sys.stderr),
    wrapper_class=structlog.BoundLogger,
    context_class=dict,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="docsql",
    help="""Store JSON documents in MySQL and query them by field.

Examples:

  # Create a table keyed by "id" with documents in "doc"
  uv run docsql create-table shop.customers id doc

  # Store a document, read it back and bump a counter
  uv run docsql put shop.customers c1 '{"name": "Ada", "address": {"city": "London"}}'
  uv run docsql get shop.customers c1
  uv run docsql math-add shop.customers c1 '{"visits": 1}'

  # Index a JSON field and query through it
  uv run docsql create-index shop.customers address.city --type "VARCHAR(50)"
  uv run docsql scan shop.customers '{"address": {"city": "London"}}' --indexed""",
    rich_markup_mode="markdown",
)


def _run(operation: Callable[[DocumentStore], Awaitable[T]]) -> T:
    async def run() -> T:
        async with create_document_store(logger=logger) as store:
            await store.init(load_connection_config())
            return await operation(store)

    try:
        return asyncio.run(run())
    except DocStoreError as error:
        logger.error("command_failed", error=str(error), error_type=type(error).__name__)
        raise typer.Exit(1) from error


def _parse_json(value: str, name: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{name} is not valid JSON: {exc.msg}") from exc


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, sort_keys=True))


@app.command("list-databases")
def list_databases() -> None:
    """List the databases on the server."""
    for name in _run(lambda store: store.list_databases()):
        typer.echo(name)


@app.command("list-tables")
def list_tables(
    database: str = typer.Argument(..., help="Database to list"),
) -> None:
    """List the tables of a database."""
    for name in _run(lambda store: store.list_tables(database)):
        typer.echo(name)


@app.command("create-table")
def create_table(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    primary_key_column: str = typer.Argument("id", help="Primary key column"),
    json_column: str = typer.Argument("doc", help="JSON document column"),
) -> None:
    """Create a document table."""
    _run(lambda store: store.create_table(table, primary_key_column, json_column))
    typer.echo(f"Created table {table}")


@app.command("delete-table")
def delete_table(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
) -> None:
    """Drop a document table and its field mappings."""
    _run(lambda store: store.delete_table(table))
    typer.echo(f"Deleted table {table}")


@app.command()
def put(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    key: str = typer.Argument(..., help="Primary key of the document"),
    document: str = typer.Argument(..., help="Document as a JSON object or array"),
    primary_key_column: str = typer.Option("id", "--primary-key-column", "-k", help="Primary key column"),
    json_column: str = typer.Option("doc", "--json-column", "-j", help="JSON document column"),
) -> None:
    """Insert or replace a document."""
    value = _parse_json(document, "document")
    _run(lambda store: store.put(table, primary_key_column, key, json_column, value))
    typer.echo(f"Saved {key}")


@app.command()
def get(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    key: str = typer.Argument(..., help="Primary key of the document"),
    primary_key_column: str = typer.Option("id", "--primary-key-column", "-k", help="Primary key column"),
    json_column: str = typer.Option("doc", "--json-column", "-j", help="JSON document column"),
) -> None:
    """Print the document stored under a key."""
    document = _run(lambda store: store.get(table, primary_key_column, key, json_column))
    if document is None:
        logger.warning("document_not_found", table=table, key=key)
        raise typer.Exit(1)
    _echo_json(document)


@app.command("math-add")
def math_add(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    key: str = typer.Argument(..., help="Primary key of the document"),
    increments: str = typer.Argument(..., help='Amounts to add as JSON, e.g. \'{"stats.visits": 1}\''),
    primary_key_column: str = typer.Option("id", "--primary-key-column", "-k", help="Primary key column"),
    json_column: str = typer.Option("doc", "--json-column", "-j", help="JSON document column"),
) -> None:
    """Add numbers to fields of a stored document."""
    amounts = _parse_json(increments, "increments")
    _run(lambda store: store.math_add(table, primary_key_column, key, json_column, amounts))
    typer.echo(f"Incremented {key}")


@app.command("delete-key")
def delete_key(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    key: str = typer.Argument(..., help="Primary key of the document"),
    primary_key_column: str = typer.Option("id", "--primary-key-column", "-k", help="Primary key column"),
) -> None:
    """Delete the document stored under a key."""
    _run(lambda store: store.delete_key(table, primary_key_column, key))
    typer.echo(f"Deleted {key}")


@app.command()
def scan(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    query: str = typer.Argument(..., help='Field filter as JSON, e.g. \'{"address": {"city": "London"}}\''),
    json_column: str = typer.Option("doc", "--json-column", "-j", help="JSON document column"),
    indexed: bool = typer.Option(False, "--indexed", "-i", help="Match through JSON field indexes"),
    offset: Optional[int] = typer.Option(None, "--offset", min=0, help="Skip this many documents"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=1, max=MAX_DOCUMENTS_PER_QUERY, help="Return at most this many documents"
    ),
) -> None:
    """Find documents whose fields equal the given values."""
    filters = _parse_json(query, "query")
    page = PageOptions()
    if offset is not None or limit is not None:
        page = PageOptions(page_offset=offset or 0, page_limit=limit or MAX_DOCUMENTS_PER_QUERY)

    if indexed:
        documents = _run(lambda store: store.get_from_index(table, json_column, filters, page))
    else:
        documents = _run(lambda store: store.get_from_non_index(table, json_column, filters, page))

    logger.info("scan_completed", table=table, indexed=indexed, count=len(documents))
    _echo_json(documents)


@app.command("create-index")
def create_index(
    table: str = typer.Argument(..., help="Table name, optionally as database.table"),
    field_path: str = typer.Argument(..., help="JSON field to index, e.g. address.city"),
    data_type: str = typer.Option("VARCHAR(50)", "--type", "-t", help="Column type of the indexed values"),
    json_column: str = typer.Option("doc", "--json-column", "-j", help="JSON document column"),
    unique: bool = typer.Option(False, "--unique", "-u", help="Reject repeated values"),
    not_null: bool = typer.Option(False, "--not-null", help="Require the field in every document"),
) -> None:
    """Create an index on a JSON field."""
    _run(
        lambda store: store.create_index_for_json_field(
            table,
            json_column,
            field_path,
            data_type,
            is_unique=unique,
            is_nullable=not not_null,
        )
    )
    typer.echo(f"Indexed {field_path} on {table}")


@app.command()
def indexes(
    table: str = typer.Argument(..., help="Table as database.table"),
) -> None:
    """List a table's indexes with the JSON fields they cover."""
    descriptors = _run(lambda store: store.get_table_indexes(table))
    for descriptor in descriptors:
        flags = [name for name, on in (("primary", descriptor.is_primary), ("unique", descriptor.is_unique)) if on]
        field = descriptor.json_field or "-"
        typer.echo(f"{descriptor.index_name}\t{descriptor.column_name}\t{field}\t{','.join(flags)}")


@app.command("setup-mappings")
def setup_mappings(
    mappings: str = typer.Argument(..., help="Fields per table, e.g. 'shop.customers=email,address.city'"),
) -> None:
    """Register field names for tables without creating indexes."""
    try:
        parsed = parse_field_mappings(mappings)
    except DocStoreError as error:
        logger.error("command_failed", error=str(error), error_type=type(error).__name__)
        raise typer.Exit(1) from error
    written = _run(lambda store: store.setup_field_hash_mappings(parsed))
    typer.echo(f"Registered {written} field mappings")


@app.command()
def version() -> None:
    """Show version information."""
    from docsql import __version__

    typer.echo(f"docsql {__version__}")
