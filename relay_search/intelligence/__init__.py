"""Query understanding for relay search.

Contents
- ``query_parser``: the search mini-language parser and the prefix-OR
  lexical query compiler
"""

from .query_parser import build_lexical_query, parse_query, split_lexical_query, tokenize

__all__ = ["build_lexical_query", "parse_query", "split_lexical_query", "tokenize"]
