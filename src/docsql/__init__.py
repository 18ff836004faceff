"""docsql - a JSON document store on MySQL with indexes on JSON fields."""

from importlib.metadata import version, PackageNotFoundError

from docsql.errors import (
    DocStoreError,
    DocumentNotFoundError,
    EngineError,
    QuerySyntaxError,
    SessionStateError,
    ValidationError,
)
from docsql.models import ConnectionConfig, DataType, IndexDescriptor, PageOptions, varchar
from docsql.services.document_store import DocumentStore

try:
    __version__ = version("docsql")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "__version__",
    "ConnectionConfig",
    "DataType",
    "DocStoreError",
    "DocumentNotFoundError",
    "DocumentStore",
    "EngineError",
    "IndexDescriptor",
    "PageOptions",
    "QuerySyntaxError",
    "SessionStateError",
    "ValidationError",
    "varchar",
]
