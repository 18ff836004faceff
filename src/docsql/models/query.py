from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_DOCUMENTS_PER_QUERY = 1000


class QueryToken(BaseModel):
    """A lexeme; ``type`` is a TokenType value or a type added by a custom rule."""

    type: str
    text: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class PageOptions(BaseModel):
    """Pagination for scans and index lookups.

    Without options a query returns at most ``MAX_DOCUMENTS_PER_QUERY``
    documents. To page, give both fields: to read 10 documents starting at the
    100th, pass ``page_offset=100, page_limit=10``.
    """

    page_offset: int | None = Field(default=None, ge=0)
    page_limit: int | None = Field(default=None, gt=0, le=MAX_DOCUMENTS_PER_QUERY)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _require_both_or_neither(self) -> "PageOptions":
        if (self.page_offset is None) != (self.page_limit is None):
            raise ValueError("page_offset and page_limit must be given together")
        return self

    @property
    def limit(self) -> int:
        return self.page_limit if self.page_limit is not None else MAX_DOCUMENTS_PER_QUERY

    @property
    def offset(self) -> int:
        return self.page_offset or 0


__all__ = ["QueryToken", "PageOptions", "MAX_DOCUMENTS_PER_QUERY"]
