"""Query text tokenizer and predicate combiner.

The tokenizer is rule driven: each rule is keyed by the character a token
starts with and returns the token found at the cursor. The cursor itself only
ever moves forward by the length of the token a rule returned, so new token
kinds (operators, literals, connectives) are added by registering rules
rather than by changing the cursor.
"""

from collections.abc import Callable, Iterator, Mapping, Sequence

from docsql.errors import QuerySyntaxError
from docsql.models.enums import TokenType
from docsql.models.query import QueryToken

TokenRule = Callable[[Sequence[str], int], QueryToken]


def _space_token(characters: Sequence[str], start: int) -> QueryToken:
    end = start
    while end < len(characters) and characters[end] == TokenType.SPACE:
        end += 1
    return QueryToken(type=TokenType.SPACE, text="".join(characters[start:end]))


TOKEN_RULES: Mapping[str, TokenRule] = {
    TokenType.SPACE.value: _space_token,
}


class QueryTokenizer:
    """Cursor over a query string that yields tokens on demand."""

    def __init__(self, query: str | None, rules: Mapping[str, TokenRule] | None = None) -> None:
        self.characters: list[str] = list(query or "")
        self.current_index = 0
        self._rules: dict[str, TokenRule] = {**TOKEN_RULES, **(rules or {})}

    @property
    def query(self) -> str:
        return "".join(self.characters)

    def next_token(self) -> QueryToken | None:
        """Return the token at the cursor, or None at end of input.

        Raises:
            QuerySyntaxError: If no rule handles the character at the cursor.
        """
        if self.current_index >= len(self.characters):
            return None
        char = self.characters[self.current_index]
        rule = self._rules.get(char)
        if rule is None:
            raise QuerySyntaxError(f"Unexpected Token char {char} in query {self.query}")
        token = rule(self.characters, self.current_index)
        if not token.text:
            raise QuerySyntaxError(f"Empty token for char {char} in query {self.query}")
        self.current_index += len(token.text)
        return token

    def __iter__(self) -> Iterator[QueryToken]:
        token = self.next_token()
        while token is not None:
            yield token
            token = self.next_token()


def combine(indexed_query: str, non_indexed_query: str) -> str:
    """AND-join the indexed predicate fragment with the scan fragment.

    The engine evaluates the indexed half through secondary indexes and the
    rest by extracting JSON fields; either half may be empty.
    """
    if indexed_query and non_indexed_query:
        return f"{indexed_query} AND {non_indexed_query}"
    return indexed_query or non_indexed_query
