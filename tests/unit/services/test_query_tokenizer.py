"""Unit tests for the query tokenizer and predicate combiner."""

from collections.abc import Sequence

import pytest

from docsql.errors import QuerySyntaxError
from docsql.models.enums import TokenType
from docsql.models.query import QueryToken
from docsql.services.query import QueryTokenizer, combine


def _word_token(characters: Sequence[str], start: int) -> QueryToken:
    end = start
    while end < len(characters) and characters[end].isalpha():
        end += 1
    return QueryToken(type="WORD", text="".join(characters[start:end]))


WORD_RULES = {letter: _word_token for letter in "abcdefghijklmnopqrstuvwxyz"}


class TestQueryTokenizer:
    def test_empty_query_has_no_tokens(self) -> None:
        assert QueryTokenizer("").next_token() is None
        assert QueryTokenizer(None).next_token() is None
        assert list(QueryTokenizer("")) == []

    def test_run_of_spaces_is_one_token(self) -> None:
        tokenizer = QueryTokenizer("   ")

        token = tokenizer.next_token()

        assert token == QueryToken(type=TokenType.SPACE, text="   ")
        assert tokenizer.current_index == 3
        assert tokenizer.next_token() is None

    def test_unknown_character_is_a_syntax_error(self) -> None:
        tokenizer = QueryTokenizer("  x")
        tokenizer.next_token()

        with pytest.raises(QuerySyntaxError) as excinfo:
            tokenizer.next_token()

        assert str(excinfo.value) == "Unexpected Token char x in query   x"
        assert tokenizer.current_index == 2

    def test_custom_rules_extend_the_table(self) -> None:
        tokens = list(QueryTokenizer("name  age", rules=WORD_RULES))

        assert [(token.type, token.text) for token in tokens] == [
            ("WORD", "name"),
            (TokenType.SPACE, "  "),
            ("WORD", "age"),
        ]

    def test_cursor_advances_by_token_length(self) -> None:
        tokenizer = QueryTokenizer("ab c", rules=WORD_RULES)
        positions = []
        for _ in tokenizer:
            positions.append(tokenizer.current_index)

        assert positions == [2, 3, 4]

    def test_tokens_reassemble_the_query(self) -> None:
        query = "  alpha   beta gamma "
        tokens = list(QueryTokenizer(query, rules=WORD_RULES))

        assert "".join(token.text for token in tokens) == query

    def test_rule_returning_empty_token_is_rejected(self) -> None:
        rules = {"?": lambda characters, start: QueryToken(type="EMPTY", text="")}

        with pytest.raises(QuerySyntaxError):
            QueryTokenizer("?", rules=rules).next_token()


class TestCombine:
    def test_joins_both_fragments_with_and(self) -> None:
        assert combine("a = 1", "b = 2") == "a = 1 AND b = 2"

    def test_either_fragment_may_be_empty(self) -> None:
        assert combine("a = 1", "") == "a = 1"
        assert combine("", "b = 2") == "b = 2"
        assert combine("", "") == ""
