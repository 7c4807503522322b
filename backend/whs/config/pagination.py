"""Paging bounds for list endpoints (GET /repairs)."""
from typing import Optional, Tuple

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw: Optional[str], offset_raw: Optional[str]) -> Tuple[int, int]:
    """Clamp query-string paging into [1, MAX_LIMIT] and a non-negative offset."""
    try:
        limit = DEFAULT_LIMIT if limit_raw in (None, '') else int(limit_raw)
        offset = 0 if offset_raw in (None, '') else int(offset_raw)
    except ValueError:
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)
