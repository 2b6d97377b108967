"""Catalog search: denormalizing index builder and dismax search over a music catalog."""

__version__ = "0.1.0"
