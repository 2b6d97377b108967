"""Weighted multi-field ("dismax") query expansion.

One free-text query is searched against every field of a ``DismaxAlias``
table at once. Each field contributes a boosted sub-query; a document's
score is its best sub-score plus ``tie`` times the sum of the others (see
``combine_dismax``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from types import MappingProxyType

from catalog_search.config import ConfigurationError
from catalog_search.search.query import BooleanQuery, DisjunctionMaxQuery, PhraseQuery, Query, TermQuery
from catalog_search.search.query_parser import QueryParseError
from catalog_search.search.schema import Schema
from catalog_search.search.stats import combine_dismax


logger = logging.getLogger(__name__)

__all__ = ["AliasField", "DismaxAlias", "DismaxQueryBuilder", "combine_dismax"]


@dataclass(frozen=True)
class AliasField:
    """How one field takes part in a dismax search.

    Args:
        phrase: Also reward the query words appearing as a contiguous phrase
        boost: Multiplier applied to the field's sub-score (> 0)
    """

    phrase: bool
    boost: float


class DismaxAlias:
    """Immutable field table shared by every query of a search server."""

    def __init__(self, fields: Mapping[str, AliasField], tie: float = 0.1) -> None:
        if not fields:
            raise ConfigurationError("Dismax alias table must define at least one field")
        for name, alias_field in fields.items():
            if alias_field.boost <= 0:
                raise ConfigurationError(f"Dismax boost for '{name}' must be > 0, got {alias_field.boost}")
        if not 0.0 <= tie < 1.0:
            raise ConfigurationError(f"Dismax tie must be in [0, 1), got {tie}")
        self._fields: Mapping[str, AliasField] = MappingProxyType(dict(fields))
        self._tie = tie

    @property
    def fields(self) -> Mapping[str, AliasField]:
        return self._fields

    @property
    def tie(self) -> float:
        return self._tie

    def with_tie(self, tie: float) -> DismaxAlias:
        return DismaxAlias(self._fields, tie)

    def __repr__(self) -> str:
        return f"DismaxAlias(fields={dict(self._fields)!r}, tie={self._tie})"


class DismaxQueryBuilder:
    """Turn a raw user query into a ``DisjunctionMaxQuery`` over an alias table.

    The query text is analyzed separately for every field, using that field's
    analyzer, so an accent-preserving field and an accent-folding field each
    see the terms they indexed. Operators and field prefixes have no special
    meaning here; quotes only have to be balanced.
    """

    def __init__(self, alias: DismaxAlias, schema: Schema) -> None:
        self.alias = alias
        self.schema = schema

    def build(self, text: str) -> Query:
        if text is None or not text.strip():
            raise QueryParseError("Query string is empty", query=text or "")
        quote_count = text.count('"')
        if quote_count % 2:
            raise QueryParseError("Unterminated phrase quote", query=text, position=text.rfind('"'))

        disjuncts: list[Query] = []
        for field_name, alias_field in self.alias.fields.items():
            terms = [token.text for token in self.schema.analyzer_for(field_name)(text.replace('"', " "))]
            if not terms:
                continue
            disjuncts.append(self._field_query(field_name, terms, alias_field))

        if not disjuncts:
            raise QueryParseError("Query contains no searchable terms", query=text)
        query = DisjunctionMaxQuery(tuple(disjuncts), tie=self.alias.tie)
        logger.debug("Expanded dismax query %r into %s", text, query)
        return query

    def _field_query(self, field_name: str, terms: list[str], alias_field: AliasField) -> Query:
        if len(terms) == 1:
            return TermQuery(field_name, terms[0], boost=alias_field.boost)
        clauses: list[Query] = [TermQuery(field_name, term) for term in terms]
        if alias_field.phrase:
            clauses.append(PhraseQuery(field_name, tuple(terms)))
        return BooleanQuery(should=tuple(clauses), boost=alias_field.boost)
