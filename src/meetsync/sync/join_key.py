"""Join-URL normalization and filter-expression helpers.

The remote APIs expose no shared surrogate key between a calendar event
and its conferencing resource, so the join URL is the only link. These
helpers turn a join URL into a canonical matching key and prepare it for
inclusion in OData filter expressions.
"""

from __future__ import annotations


def strip_query(url: str) -> str:
    """Return everything before the first ``?``."""
    return url.split("?", 1)[0]


def normalize_join_url(url: str | None) -> str | None:
    """Canonical matching key for a join URL.

    Lower-cases the whole string, strips the query string, and trims a
    single trailing ``/``. Returns None for None or blank input.

    >>> normalize_join_url("https://X/Y/?a=1")
    'https://x/y'
    """
    if url is None:
        return None
    url = url.strip()
    if not url:
        return None
    key = strip_query(url.lower())
    if key.endswith("/"):
        key = key[:-1]
    return key or None


def join_key_candidates(url: str | None) -> list[str]:
    """Lookup keys for match-back, in order: exact key, then slash variant.

    The second chance covers a cache entry written from a URL whose path
    ended in a double slash (only one is trimmed by normalization).
    """
    key = normalize_join_url(url)
    if key is None:
        return []
    variant = key[:-1] if key.endswith("/") else f"{key}/"
    return [key, variant]


def escape_odata_string(value: str) -> str:
    """Escape a value for a single-quoted OData string literal."""
    return value.replace("'", "''")
