"""Validated names that may be interpolated into statement text.

Identifiers cannot be bound as statement parameters, so every table, column
and database name the library splices into SQL goes through one of the
types here. Construction validates; ``quoted`` backtick-quotes using the
MySQL dialect's own identifier preparer.
"""

import hashlib
import re
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy.dialects import mysql

from docsql.errors import ValidationError
from docsql.models.base import is_valid_identifier, is_variable_name_like

FIELD_COLUMN_PREFIX = "col_"
INDEX_NAME_PREFIX = "idx_"

# Matches generated column names, and the index names built from them.
FIELD_HASH_PATTERN = re.compile(r"(?:idx_)?(col_[0-9a-f]{32})")

_PREPARER = mysql.dialect().identifier_preparer


def hash_field(field_path: str) -> str:
    """Return the generated column name for a JSON field path.

    The MD5 digest keeps arbitrarily long dotted paths inside MySQL's
    identifier limit. Deployed indexes and catalog rows depend on this exact
    format; do not change it.
    """
    digest = hashlib.md5(field_path.encode("utf-8")).hexdigest()  # noqa: S324
    return f"{FIELD_COLUMN_PREFIX}{digest}"


def index_name_for_column(column_name: str) -> str:
    return f"{INDEX_NAME_PREFIX}{column_name}"


def quote_identifier(name: str) -> str:
    return _PREPARER.quote_identifier(name)


def _is_safe_name(value: Any) -> bool:
    return is_valid_identifier(value) and is_variable_name_like(value)


class Identifier(BaseModel):
    """A single validated table, column or database name."""

    name: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def parse(cls, value: Any, argument: str) -> "Identifier":
        if not _is_safe_name(value):
            raise ValidationError(argument, f"please provide valid {argument}")
        return cls(name=value)

    @property
    def quoted(self) -> str:
        return quote_identifier(self.name)

    def __str__(self) -> str:
        return self.name


class TableName(BaseModel):
    """A table name, optionally qualified as ``database.table``."""

    database: str | None = None
    name: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def parse(cls, value: Any, argument: str = "table name", require_database: bool = False) -> "TableName":
        message = f"please provide valid {argument}"
        if not isinstance(value, str):
            raise ValidationError(argument, message)
        parts = value.split(".")
        if len(parts) > 2 or (require_database and len(parts) != 2):
            raise ValidationError(argument, message)
        if not all(_is_safe_name(part) for part in parts):
            raise ValidationError(argument, message)
        if len(parts) == 2:
            return cls(database=parts[0], name=parts[1])
        return cls(name=parts[0])

    def qualify(self, default_database: str) -> "TableName":
        """Return this name with ``default_database`` filled in when bare."""
        if self.database is not None:
            return self
        return TableName(database=default_database, name=self.name)

    @property
    def qualified(self) -> str:
        if self.database is None:
            return self.name
        return f"{self.database}.{self.name}"

    @property
    def quoted(self) -> str:
        if self.database is None:
            return quote_identifier(self.name)
        return f"{quote_identifier(self.database)}.{quote_identifier(self.name)}"

    def __str__(self) -> str:
        return self.qualified


__all__ = [
    "FIELD_COLUMN_PREFIX",
    "FIELD_HASH_PATTERN",
    "Identifier",
    "TableName",
    "hash_field",
    "index_name_for_column",
    "quote_identifier",
]
