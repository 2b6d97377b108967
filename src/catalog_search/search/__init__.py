"""
Search indexing and query engine package.

This package provides a pure-Python search stack:
- schema: Field types and schema definitions
- analyzers: Tokenizers and filters (lowercase, accent folding)
- document: Multi-valued documents with aligned field groups
- storage: JSON segment storage and the index writer
- stats: BM25 scoring statistics and the dismax combinator
- query, query_parser: Query objects and the Lucene-style parser
- dismax: Weighted multi-field query expansion
- searcher, servers: Ranked search over committed segments
"""
