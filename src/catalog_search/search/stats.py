"""Statistical helpers for BM25 style scoring.

The functions here stay independent of any storage backend so they can be
reused by every query type. Term and phrase queries compute their per-field
sub-scores with them, and ``combine_dismax`` folds those sub-scores into one
disjunction-max score.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import math


@dataclass(frozen=True)
class FieldLengthStats:
    """Aggregated term statistics for a field."""

    field: str
    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count


def compute_field_length_stats(field_lengths: Mapping[str, Mapping[str, int]]) -> dict[str, FieldLengthStats]:
    """Return aggregate stats for each field given per-document lengths."""

    stats: dict[str, FieldLengthStats] = {}
    for field_name, lengths in field_lengths.items():
        doc_count = len(lengths)
        total_terms = sum(max(length, 0) for length in lengths.values())
        stats[field_name] = FieldLengthStats(
            field=field_name,
            total_terms=total_terms,
            document_count=doc_count,
        )
    return stats


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Return inverse document frequency with small-sample smoothing.

    The IDF is floored so it never goes negative, even when a term occurs
    in every document of a tiny index.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    numerator = total_docs - df + 0.5
    denominator = df + 0.5
    ratio = max(numerator / denominator, floor)
    raw_idf = math.log(ratio + floor) + 1.0
    return max(raw_idf, floor)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF.

    The dl/avgdl ratio is capped at 4x so a release with hundreds of
    credited artists is not pushed out of the results entirely.
    """

    if tf <= 0:
        return 0.0
    max_length_ratio = 4.0
    raw_ratio = doc_length / max(avg_doc_length, 1e-9)
    normalized_length = min(raw_ratio, max_length_ratio)
    denominator = tf + k1 * (1 - b + b * normalized_length)
    return (tf * (k1 + 1)) / denominator


def combine_dismax(sub_scores: Iterable[float], tie: float) -> float:
    """Return ``max(sub_scores) + tie * (sum of the other sub-scores)``.

    Only matching sub-queries contribute, so callers pass the scores of the
    fields a document actually matched. An empty input scores 0.

    >>> combine_dismax([10.0, 4.0], 0.1)
    10.4
    >>> combine_dismax([10.0], 0.1)
    10.0
    """

    scores = [score for score in sub_scores if score > 0.0]
    if not scores:
        return 0.0
    best = max(scores)
    return best + tie * (sum(scores) - best)
