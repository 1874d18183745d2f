"""Request body validation for the query endpoints."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from config import MAX_QUERY_LENGTH

MISSING_QUERY = "Missing required parameter: 'query'"
QUERY_NOT_STRING = "Query must be a string"
EMPTY_QUERY = "Query cannot be empty"
QUERY_TOO_LARGE = "Query exceeds maximum allowed length (100,000 characters)"
PARAMS_NOT_ARRAY = "Parameters must be an array"


@dataclass
class QueryRequest:
    query: str
    params: Optional[List[Any]] = field(default=None)


def validate_query_body(
    body: Any,
    *,
    with_params: bool = False,
    max_length: int = MAX_QUERY_LENGTH,
) -> Tuple[Optional[QueryRequest], Optional[str]]:
    """Validate a ``{query, params?}`` body.

    Returns ``(request, None)`` on success or ``(None, message)`` for the first
    failed check, in this order: presence, type, emptiness, length, and
    ``params`` being a list when ``with_params`` is set.
    """

    if not isinstance(body, Mapping) or body.get("query") is None:
        return None, MISSING_QUERY

    query = body["query"]
    if not isinstance(query, str):
        return None, QUERY_NOT_STRING

    trimmed = query.strip()
    if not trimmed:
        return None, EMPTY_QUERY
    if len(trimmed) > max_length:
        return None, QUERY_TOO_LARGE

    if not with_params:
        return QueryRequest(query=trimmed), None

    params = body.get("params")
    if not isinstance(params, list):
        return None, PARAMS_NOT_ARRAY
    return QueryRequest(query=trimmed, params=params), None
