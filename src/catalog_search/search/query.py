"""Query objects evaluated against an ``IndexSegment``.

Every query scores a whole segment at once and returns a mapping of
document id to score; documents that do not match are absent. Scores of
term and phrase queries are BM25 weights, which composite queries combine
by summing (``BooleanQuery``) or by disjunction-max (``DisjunctionMaxQuery``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from catalog_search.search.phrase import phrase_frequency
from catalog_search.search.stats import FieldLengthStats, bm25, calculate_idf, combine_dismax, compute_field_length_stats
from catalog_search.search.storage import IndexSegment


class SearchContext:
    """Per-segment statistics shared by all queries of one search."""

    def __init__(self, segment: IndexSegment) -> None:
        self.segment = segment
        self.total_docs = segment.doc_count
        self._stats: dict[str, FieldLengthStats] = compute_field_length_stats(segment.field_lengths)

    def idf(self, field_name: str, term: str) -> float:
        return calculate_idf(len(self.segment.get_postings(field_name, term)), self.total_docs)

    def doc_length(self, field_name: str, doc_id: str) -> int:
        return self.segment.field_lengths.get(field_name, {}).get(doc_id, 1)

    def average_length(self, field_name: str) -> float:
        stats = self._stats.get(field_name)
        return stats.average_length if stats is not None else 1.0


def _format_boost(boost: float) -> str:
    return "" if boost == 1.0 else f"^{boost:g}"


class Query(ABC):
    """Base class for all queries."""

    boost: float

    @abstractmethod
    def score(self, context: SearchContext) -> dict[str, float]:
        """Return scores of the matching documents keyed by document id."""


@dataclass(frozen=True)
class TermQuery(Query):
    """Match documents whose ``field`` contains the analyzed ``term``."""

    field: str
    term: str
    boost: float = 1.0

    def score(self, context: SearchContext) -> dict[str, float]:
        postings = context.segment.get_postings(self.field, self.term)
        if not postings:
            return {}
        idf = context.idf(self.field, self.term)
        avg_length = context.average_length(self.field)
        return {
            posting.doc_id: self.boost
            * idf
            * bm25(posting.frequency, context.doc_length(self.field, posting.doc_id), avg_length)
            for posting in postings
        }

    def __str__(self) -> str:
        return f"{self.field}:{self.term}{_format_boost(self.boost)}"


@dataclass(frozen=True)
class PhraseQuery(Query):
    """Match documents where ``terms`` occur at consecutive positions of ``field``."""

    field: str
    terms: tuple[str, ...]
    boost: float = 1.0

    def score(self, context: SearchContext) -> dict[str, float]:
        if not self.terms:
            return {}
        per_term = []
        for term in self.terms:
            postings = context.segment.get_postings(self.field, term)
            if not postings:
                return {}
            per_term.append({posting.doc_id: posting.positions for posting in postings})

        candidates = set(per_term[0])
        for positions_by_doc in per_term[1:]:
            candidates &= set(positions_by_doc)

        idf = sum(context.idf(self.field, term) for term in self.terms)
        avg_length = context.average_length(self.field)
        scores: dict[str, float] = {}
        for doc_id in candidates:
            frequency = phrase_frequency([list(positions_by_doc[doc_id]) for positions_by_doc in per_term])
            if frequency == 0:
                continue
            scores[doc_id] = self.boost * idf * bm25(frequency, context.doc_length(self.field, doc_id), avg_length)
        return scores

    def __str__(self) -> str:
        return f'{self.field}:"{" ".join(self.terms)}"{_format_boost(self.boost)}'


@dataclass(frozen=True)
class BooleanQuery(Query):
    """Combine clauses with Lucene semantics.

    With at least one ``must`` clause a document has to match all of them
    and ``should`` clauses only add to its score. Without ``must`` clauses a
    document has to match at least one ``should`` clause. ``must_not``
    clauses exclude documents and never contribute to the score.
    """

    must: tuple[Query, ...] = ()
    should: tuple[Query, ...] = ()
    must_not: tuple[Query, ...] = ()
    boost: float = 1.0

    def score(self, context: SearchContext) -> dict[str, float]:
        scores: dict[str, float] = {}
        if self.must:
            must_scores = [clause.score(context) for clause in self.must]
            candidates = set(must_scores[0])
            for clause_scores in must_scores[1:]:
                candidates &= set(clause_scores)
            for doc_id in candidates:
                scores[doc_id] = sum(clause_scores[doc_id] for clause_scores in must_scores)
            for clause in self.should:
                for doc_id, value in clause.score(context).items():
                    if doc_id in scores:
                        scores[doc_id] += value
        else:
            for clause in self.should:
                for doc_id, value in clause.score(context).items():
                    scores[doc_id] = scores.get(doc_id, 0.0) + value

        for clause in self.must_not:
            for doc_id in clause.score(context):
                scores.pop(doc_id, None)

        if self.boost != 1.0:
            scores = {doc_id: value * self.boost for doc_id, value in scores.items()}
        return scores

    def __str__(self) -> str:
        parts = [f"+{clause}" for clause in self.must]
        parts.extend(str(clause) for clause in self.should)
        parts.extend(f"-{clause}" for clause in self.must_not)
        return f"({' '.join(parts)}){_format_boost(self.boost)}"


@dataclass(frozen=True)
class DisjunctionMaxQuery(Query):
    """Score each document by its best disjunct plus ``tie`` times the others."""

    disjuncts: tuple[Query, ...]
    tie: float = 0.0
    boost: float = 1.0

    def score(self, context: SearchContext) -> dict[str, float]:
        sub_scores: dict[str, list[float]] = {}
        for disjunct in self.disjuncts:
            for doc_id, value in disjunct.score(context).items():
                sub_scores.setdefault(doc_id, []).append(value)
        return {doc_id: self.boost * combine_dismax(values, self.tie) for doc_id, values in sub_scores.items()}

    def __str__(self) -> str:
        inner = " | ".join(str(disjunct) for disjunct in self.disjuncts)
        tie = f"~{self.tie:g}" if self.tie else ""
        return f"({inner}){tie}{_format_boost(self.boost)}"


@dataclass(frozen=True)
class MatchNoDocsQuery(Query):
    """Matches nothing; produced when a clause analyzes to no terms."""

    reason: str = ""
    boost: float = 1.0

    def score(self, context: SearchContext) -> dict[str, float]:
        return {}

    def __str__(self) -> str:
        return "MatchNoDocsQuery"

