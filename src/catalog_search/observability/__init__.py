"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from catalog_search.observability.context import bound_context, get_trace_context
from catalog_search.observability.logging import JsonFormatter, configure_logging
from catalog_search.observability.metrics import (
    CHUNK_LATENCY,
    DOCUMENTS_INDEXED,
    INDEX_DOC_COUNT,
    QUERY_ERRORS,
    RELATION_QUERY_LATENCY,
    SEARCH_LATENCY,
    get_metrics,
    track_latency,
)
from catalog_search.observability.tracing import create_span, get_tracer


__all__ = [
    "CHUNK_LATENCY",
    "DOCUMENTS_INDEXED",
    "INDEX_DOC_COUNT",
    "QUERY_ERRORS",
    "RELATION_QUERY_LATENCY",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "bound_context",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "track_latency",
]
