"""Factory functions for creating and wiring document stores.

Provides the production factory, which connects to MySQL through an async
SQLAlchemy engine, and helpers for turning command-line text into the values
the store expects.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from docsql.errors import ValidationError
from docsql.models.config import load_config_from_env
from docsql.services.connection import MySqlConnection
from docsql.services.document_store import DocumentStore


def create_document_store(logger: structlog.stdlib.BoundLogger | None = None) -> DocumentStore:
    """Create a DocumentStore that connects through aiomysql.

    The store is not open yet; call ``init`` with a config, for example the
    one from ``load_connection_config``.
    """
    return DocumentStore(
        connection_factory=MySqlConnection.from_config,
        logger=logger or structlog.get_logger(__name__),
    )


def load_connection_config(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    return load_config_from_env(environ)


def parse_field_mappings(text: str) -> dict[str, list[str]]:
    """Parse ``table=field,field;table=field`` into a mapping.

    Expands ``"shop.customers=email,address.city;shop.orders=total"`` into
    ``{"shop.customers": ["email", "address.city"], "shop.orders": ["total"]}``.
    Blank entries are ignored and repeated tables are merged.

    Args:
        text: Semicolon separated table entries.

    Returns:
        Field paths per table, in the order given.

    Raises:
        ValidationError: If an entry has no ``=`` or names no fields.
    """
    mappings: dict[str, list[str]] = {}
    for entry in text.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        table, separator, fields = entry.partition("=")
        field_names = [field.strip() for field in fields.split(",") if field.strip()]
        if not separator or not table.strip() or not field_names:
            raise ValidationError("mappings", f"please provide valid field mappings: {entry}")
        mappings.setdefault(table.strip(), []).extend(field_names)
    return mappings
