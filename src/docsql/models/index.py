import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from docsql.models.base import is_nested_variable_name_like

DEFAULT_VARCHAR_LENGTH = 50

# Column types are spliced into DDL, so only plain type spellings pass.
_DATA_TYPE_PATTERN = re.compile(r"^[A-Za-z]+( ?\(\d+( ?, ?\d+)?\))?( UNSIGNED)?$")


def varchar(length: int = DEFAULT_VARCHAR_LENGTH) -> str:
    return f"VARCHAR({length})"


def is_valid_data_type(value: Any) -> bool:
    return isinstance(value, str) and _DATA_TYPE_PATTERN.match(value) is not None


class IndexDescriptor(BaseModel):
    """One row of a table's index listing with the JSON field resolved."""

    index_name: str
    column_name: str
    json_field: str | None = None
    is_unique: bool
    is_primary: bool

    model_config = ConfigDict(frozen=True, extra="forbid")


class FieldHashMapping(BaseModel):
    field_hash: str
    table_name: str
    field_name: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("field_name")
    @classmethod
    def _validate_field_name(cls, value: str) -> str:
        if not is_nested_variable_name_like(value):
            raise ValueError("field_name must be a dotted JSON field path")
        return value


__all__ = ["IndexDescriptor", "FieldHashMapping", "varchar", "is_valid_data_type"]
