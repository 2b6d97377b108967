"""Lucene-style query string parser.

Supported syntax::

    jockey slut                 terms against the default field (OR)
    label:"Jockey Slut"         phrase against a named field
    release:blue AND type:album boolean operators (AND, OR, NOT)
    +artist:orbital -type:live  required and prohibited clauses
    (blue OR green) AND lp      grouping
    barcode:5021456\\:1          backslash escapes a special character

Field values go through the analyzer of their field, so the query sees
exactly the terms that were indexed. Malformed input raises
``QueryParseError`` with the offending character position.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re

from catalog_search.search.query import BooleanQuery, MatchNoDocsQuery, PhraseQuery, Query, TermQuery
from catalog_search.search.schema import Schema


_FIELD_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SPECIAL_CHARS = frozenset('()":')


class QueryParseError(ValueError):
    """Raised when a query string cannot be parsed."""

    def __init__(self, message: str, *, query: str = "", position: int | None = None) -> None:
        self.query = query
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class TokenKind(str, Enum):
    WORD = "word"
    PHRASE = "phrase"
    FIELD = "field"
    LPAREN = "("
    RPAREN = ")"
    PLUS = "+"
    MINUS = "-"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    END = "end"


@dataclass(frozen=True)
class QueryToken:
    kind: TokenKind
    text: str
    position: int


class Occur(str, Enum):
    MUST = "must"
    SHOULD = "should"
    MUST_NOT = "must_not"


def tokenize_query(text: str) -> list[QueryToken]:
    """Split a raw query string into syntax tokens."""

    tokens: list[QueryToken] = []
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char.isspace():
            index += 1
            continue
        if char == "(":
            tokens.append(QueryToken(TokenKind.LPAREN, char, index))
            index += 1
            continue
        if char == ")":
            tokens.append(QueryToken(TokenKind.RPAREN, char, index))
            index += 1
            continue
        if char in "+-" and index + 1 < length and not text[index + 1].isspace():
            tokens.append(QueryToken(TokenKind.PLUS if char == "+" else TokenKind.MINUS, char, index))
            index += 1
            continue
        if char == '"':
            end = text.find('"', index + 1)
            if end == -1:
                raise QueryParseError("Unterminated phrase quote", query=text, position=index)
            tokens.append(QueryToken(TokenKind.PHRASE, text[index + 1 : end], index))
            index = end + 1
            continue

        start = index
        chars: list[str] = []
        while index < length:
            char = text[index]
            if char == "\\":
                if index + 1 >= length:
                    raise QueryParseError("Dangling escape character", query=text, position=index)
                chars.append(text[index + 1])
                index += 2
                continue
            if char.isspace() or char in _SPECIAL_CHARS:
                break
            chars.append(char)
            index += 1
        word = "".join(chars)

        if index < length and text[index] == ":":
            if not _FIELD_NAME.fullmatch(word):
                raise QueryParseError(f"Invalid field name '{word}'", query=text, position=start)
            index += 1
            if index >= length or text[index].isspace():
                raise QueryParseError(f"Missing value for field '{word}'", query=text, position=index)
            tokens.append(QueryToken(TokenKind.FIELD, word, start))
            continue
        if not word:
            raise QueryParseError(f"Unexpected character {text[index]!r}", query=text, position=index)
        if word in ("AND", "OR", "NOT"):
            tokens.append(QueryToken(TokenKind(word), word, start))
        else:
            tokens.append(QueryToken(TokenKind.WORD, word, start))

    tokens.append(QueryToken(TokenKind.END, "", length))
    return tokens


class QueryParser:
    """Parse query strings into ``Query`` objects for one schema.

    Args:
        default_field: Field searched by terms without a ``field:`` prefix.
        schema: Schema whose analyzers are applied to field values.
    """

    def __init__(self, default_field: str, schema: Schema) -> None:
        self.default_field = default_field
        self.schema = schema
        self._tokens: list[QueryToken] = []
        self._index = 0
        self._text = ""
        self._term_count = 0

    def parse(self, text: str) -> Query:
        if text is None or not text.strip():
            raise QueryParseError("Query string is empty", query=text or "")

        self._text = text
        self._tokens = tokenize_query(text)
        self._index = 0
        self._term_count = 0

        query = self._parse_clauses(nested=False)
        token = self._peek()
        if token.kind is not TokenKind.END:
            raise self._error(f"Unexpected '{token.text}'", token)
        if self._term_count == 0:
            raise QueryParseError("Query contains no searchable terms", query=text)
        return query

    def analyze_terms(self, field_name: str, text: str) -> list[str]:
        return [token.text for token in self.schema.analyzer_for(field_name)(text)]

    def field_query(self, field_name: str, text: str, *, boost: float = 1.0) -> Query:
        """Build the leaf query for ``text`` against ``field_name``.

        Several terms from one unquoted word (``AC/DC``) are kept together as a
        phrase, the same as a quoted value.
        """
        terms = self.analyze_terms(field_name, text)
        if not terms:
            return MatchNoDocsQuery(reason=f"no terms for {field_name}:{text!r}", boost=boost)
        self._term_count += 1
        if len(terms) == 1:
            return TermQuery(field_name, terms[0], boost=boost)
        return PhraseQuery(field_name, tuple(terms), boost=boost)

    def _parse_clauses(self, *, nested: bool) -> Query:
        clauses: list[tuple[Occur, Query]] = []
        pending: TokenKind | None = None
        while True:
            token = self._peek()
            if token.kind is TokenKind.END:
                break
            if token.kind is TokenKind.RPAREN:
                if not nested:
                    raise self._error("Unbalanced closing parenthesis", token)
                break
            if token.kind in (TokenKind.AND, TokenKind.OR):
                if not clauses or pending is not None:
                    raise self._error(f"Operator {token.text} has no left operand", token)
                self._advance()
                if self._peek().kind in (TokenKind.END, TokenKind.RPAREN):
                    raise self._error(f"Operator {token.text} has no right operand", token)
                pending = token.kind
                if token.kind is TokenKind.AND:
                    occur, previous = clauses[-1]
                    if occur is Occur.SHOULD:
                        clauses[-1] = (Occur.MUST, previous)
                continue

            occur = Occur.MUST if pending is TokenKind.AND else Occur.SHOULD
            if token.kind is TokenKind.NOT:
                self._advance()
                if self._peek().kind in (TokenKind.END, TokenKind.RPAREN):
                    raise self._error("Operator NOT has no operand", token)
                occur = Occur.MUST_NOT
            elif token.kind is TokenKind.PLUS:
                self._advance()
                occur = Occur.MUST
            elif token.kind is TokenKind.MINUS:
                self._advance()
                occur = Occur.MUST_NOT
            clauses.append((occur, self._parse_primary()))
            pending = None

        if not clauses:
            raise self._error("Empty group", self._peek())
        if len(clauses) == 1 and clauses[0][0] is not Occur.MUST_NOT:
            return clauses[0][1]
        return BooleanQuery(
            must=tuple(query for occur, query in clauses if occur is Occur.MUST),
            should=tuple(query for occur, query in clauses if occur is Occur.SHOULD),
            must_not=tuple(query for occur, query in clauses if occur is Occur.MUST_NOT),
        )

    def _parse_primary(self, field_name: str | None = None) -> Query:
        token = self._advance()
        target = field_name or self.default_field
        if token.kind is TokenKind.FIELD:
            if field_name is not None:
                raise self._error("Nested field prefix", token)
            return self._parse_primary(token.text)
        if token.kind is TokenKind.LPAREN:
            if field_name is not None:
                saved_default = self.default_field
                self.default_field = field_name
                try:
                    query = self._parse_clauses(nested=True)
                finally:
                    self.default_field = saved_default
            else:
                query = self._parse_clauses(nested=True)
            closing = self._advance()
            if closing.kind is not TokenKind.RPAREN:
                raise self._error("Missing closing parenthesis", token)
            return query
        if token.kind is TokenKind.PHRASE:
            if not token.text.strip():
                raise self._error("Empty phrase", token)
            return self.field_query(target, token.text)
        if token.kind is TokenKind.WORD:
            return self.field_query(target, token.text)
        if token.kind is TokenKind.END:
            raise self._error("Unexpected end of query", token)
        raise self._error(f"Unexpected '{token.text}'", token)

    def _peek(self) -> QueryToken:
        return self._tokens[self._index]

    def _advance(self) -> QueryToken:
        token = self._tokens[self._index]
        if token.kind is not TokenKind.END:
            self._index += 1
        return token

    def _error(self, message: str, token: QueryToken) -> QueryParseError:
        return QueryParseError(message, query=self._text, position=token.position)
