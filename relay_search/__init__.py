"""Relay search: query understanding and result fusion for NIP-50 search.

Subpackages:
- ``relay_search.intelligence``: search mini-language parser and lexical
  query compiler.
- ``relay_search.ranking``: relevance adjustment and rank fusion.
- ``relay_search.hybrid``: the ``SearchManager`` orchestrating searches.
- ``relay_search.index_store``: index store interface and backends.
- ``relay_search.retrievers``: the optional semantic source.
- ``relay_search.common``: configuration, logging and metrics.

Usage:
- ``relay_search.main:app`` is the FastAPI application.
"""

__version__ = "0.1.0"
