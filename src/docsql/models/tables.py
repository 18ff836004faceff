"""SQLModel table definition for the field-hash catalog.

User document tables are created at runtime with caller-chosen names, so they
have no static definition. The catalog is fixed: one table in the ``system``
database mapping generated column names back to the JSON field paths they
were derived from.

Attribute names match the physical column names (``fieldHash``,
``tableName``, ``fieldName``) because existing deployments already carry
catalogs with that layout.
"""

from sqlmodel import Field, SQLModel

CATALOG_DATABASE = "system"
CATALOG_TABLE = "field_hash_map"


class FieldHashMapRecord(SQLModel, table=True):
    """One catalog row per (table, generated column).

    The composite primary key makes repeated upserts for the same field
    overwrite instead of duplicating.
    """

    __tablename__ = CATALOG_TABLE
    __table_args__ = {"schema": CATALOG_DATABASE}

    tableName: str = Field(primary_key=True, max_length=128)
    fieldHash: str = Field(primary_key=True, max_length=64)
    fieldName: str = Field(max_length=1024)
