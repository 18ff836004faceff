from docsql.models.config import ConnectionConfig, load_config_from_env
from docsql.models.enums import DataType, TokenType
from docsql.models.identifiers import Identifier, TableName, hash_field
from docsql.models.index import FieldHashMapping, IndexDescriptor, varchar
from docsql.models.query import PageOptions, QueryToken

__all__ = [
    "ConnectionConfig",
    "DataType",
    "FieldHashMapping",
    "Identifier",
    "IndexDescriptor",
    "PageOptions",
    "QueryToken",
    "TableName",
    "TokenType",
    "hash_field",
    "load_config_from_env",
    "varchar",
]
