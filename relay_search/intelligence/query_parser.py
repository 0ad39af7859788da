"""Search query parsing and lexical query compilation.

Clients speak a small, stable mini-language inside a single search string.
Whitespace separates tokens and each token is classified by the first
matching prefix, in this order:

==============  =======================================================
``type:X``      entity type (``user``, ``video``, ``list``, ``hashtag``,
                ``note``, ``article``, ``community`` or ``all``)
``author:X``    author public key
``kind:N``      event kind
``#tag``        hashtag filter (lower-cased, repeats kept)
``min_likes:N`` minimum like count
``min_loops:N`` minimum loop count
``since:N``     minimum creation timestamp (unix seconds)
``until:N``     maximum creation timestamp (unix seconds)
anything else   free-text term
==============  =======================================================

Parsing never fails. A numeric directive whose value is not an integer is
dropped entirely: it sets no filter and does not become a free term. Tokens
with an unknown ``key:`` prefix are ordinary free terms.

Note that a literal term that starts with a directive prefix (``kind:foo``)
is always captured by that directive and never searched as text.
"""

import re
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from ..models import ParsedQuery

logger = structlog.get_logger("query_parser")

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")
_WHITESPACE = re.compile(r"\s+")

LEXICAL_OR = " OR "
PREFIX_WILDCARD = "*"


def _parse_int(value: str) -> Optional[int]:
    if not _INTEGER_PATTERN.fullmatch(value):
        return None
    try:
        return int(value)
    except ValueError:
        # Beyond the interpreter's integer string conversion limit
        return None


def _parse_non_negative(value: str) -> Optional[int]:
    parsed = _parse_int(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


# (prefix, filter name, value parser); ``#`` and ``type:`` are handled apart
_NUMERIC_DIRECTIVES: Tuple[Tuple[str, str, Callable[[str], Optional[int]]], ...] = (
    ("min_likes:", "min_likes", _parse_non_negative),
    ("min_loops:", "min_loops", _parse_non_negative),
    ("since:", "since", _parse_int),
    ("until:", "until", _parse_int),
)


def tokenize(raw: str) -> List[str]:
    """Split on runs of whitespace, discarding empty tokens."""
    return [token for token in _WHITESPACE.split(raw) if token]


def parse_query(raw: str) -> ParsedQuery:
    """Parse a raw search string into a ``ParsedQuery``.

    Filters and hashtags are accumulated locally and frozen into the
    returned value once every token has been classified.
    """
    if raw is None:
        raw = ""

    terms: List[str] = []
    hashtags: List[str] = []
    filters: Dict[str, Any] = {}
    entity_type: Optional[str] = None
    dropped: List[str] = []

    for token in tokenize(raw):
        if token.startswith("type:"):
            entity_type = token[len("type:"):]
        elif token.startswith("author:"):
            filters["author"] = token[len("author:"):]
        elif token.startswith("kind:"):
            kind = _parse_int(token[len("kind:"):])
            if kind is None:
                dropped.append(token)
            else:
                filters["kind"] = kind
        elif token.startswith("#"):
            tag = token[1:].lower()
            if tag:
                hashtags.append(tag)
            else:
                dropped.append(token)
        else:
            for prefix, name, parse_value in _NUMERIC_DIRECTIVES:
                if token.startswith(prefix):
                    value = parse_value(token[len(prefix):])
                    if value is None:
                        dropped.append(token)
                    else:
                        filters[name] = value
                    break
            else:
                terms.append(token)

    if hashtags:
        filters["hashtags"] = tuple(hashtags)

    if dropped:
        logger.debug("Dropped malformed search directives", tokens=dropped)

    return ParsedQuery(
        raw=raw,
        terms=tuple(terms),
        entity_type=entity_type,
        filters=MappingProxyType(filters),
    )


def build_lexical_query(terms: Sequence[str]) -> str:
    """Compile free-text terms into a prefix-OR lexical query.

    ``["bit", "coin"]`` becomes ``"bit* OR coin*"``. No terms yields ``""``,
    which callers treat as "skip the lexical search", never "match all".
    """
    return LEXICAL_OR.join(f"{term}{PREFIX_WILDCARD}" for term in terms)


def split_lexical_query(compiled: str) -> List[str]:
    """Recover the bare prefixes from a compiled lexical query.

    Index backends whose native syntax differs use this to re-express the
    query (e.g. as a PostgreSQL ``tsquery``).
    """
    if not compiled:
        return []
    prefixes = []
    for token in compiled.split(LEXICAL_OR):
        token = token.strip()
        if token.endswith(PREFIX_WILDCARD):
            token = token[:-len(PREFIX_WILDCARD)]
        if token:
            prefixes.append(token)
    return prefixes
