"""
Cache key derivation for cached read routes.

Keys are ``cache:<path>`` with an optional ``?<query>`` suffix in which query
pairs are sorted, so the order parameters arrive in never splits one logical
request across several entries.
"""

from typing import Iterable, List, Tuple
from urllib.parse import urlencode

KEY_NAMESPACE = "cache:"


def _normalize_path(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path or "/"


def build_cache_key(path: str, query_params: Iterable[Tuple[str, str]] = ()) -> str:
    """Build the cache key for ``path`` and its query ``(name, value)`` pairs.

    Repeated parameters are kept; pairs are ordered by name then value.
    """
    key = f"{KEY_NAMESPACE}{_normalize_path(path)}"
    pairs = sorted((str(name), str(value)) for name, value in query_params)
    if pairs:
        key = f"{key}?{urlencode(pairs)}"
    return key


def request_cache_key(request) -> str:
    """Cache key for a Starlette request."""
    return build_cache_key(request.url.path, request.query_params.multi_items())


def collection_targets(collection_path: str) -> Tuple[List[str], List[str]]:
    """Exact keys and key prefixes covering a whole collection.

    For ``/api/v1/doctors`` this is the bare list key plus the prefixes for
    filtered lists (``...doctors?``) and everything beneath it (``...doctors/``),
    without touching a sibling such as ``/api/v1/doctorsearch``.
    """
    base = build_cache_key(collection_path)
    return [base], [f"{base}?", f"{base}/"]
