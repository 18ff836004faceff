"""Error taxonomy surfaced by the document store.

Callers can branch on the exception type instead of matching message text.
Engine errors keep the server's numeric error code so "no such table" and
"duplicate entry" can be told apart without parsing.
"""

ER_BAD_DB_ERROR = 1049
ER_DUP_ENTRY = 1062
ER_NO_SUCH_TABLE = 1146


class DocStoreError(Exception):
    """Base class for every error raised by docsql."""


class ValidationError(DocStoreError):
    """An argument failed validation before any statement was sent."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(reason)
        self.field = field
        self.reason = reason


class QuerySyntaxError(ValidationError):
    """The query text could not be tokenized."""

    def __init__(self, reason: str) -> None:
        super().__init__("query", reason)


class SessionStateError(DocStoreError):
    """The store was used while closed, or opened twice."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class EngineError(DocStoreError):
    """A failure reported by the database engine or the driver below it.

    ``code`` is the MySQL error number when the server produced one, and
    ``None`` when the failure happened before reaching the server.
    """

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def with_message(self, message: str) -> "EngineError":
        return EngineError(self.code, message)


class DocumentNotFoundError(DocStoreError):
    """An update or increment targeted a primary key that has no row."""

    def __init__(self, table: str, key: str) -> None:
        super().__init__(f"Not updated- unable to find document {key} in {table}")
        self.table = table
        self.key = key


__all__ = [
    "DocStoreError",
    "ValidationError",
    "QuerySyntaxError",
    "SessionStateError",
    "EngineError",
    "DocumentNotFoundError",
    "ER_BAD_DB_ERROR",
    "ER_DUP_ENTRY",
    "ER_NO_SUCH_TABLE",
]
