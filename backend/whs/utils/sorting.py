from __future__ import annotations
from typing import Dict, Optional
from flask import abort
from sqlalchemy.orm import Query


def apply_multi_sort(query: Query, sort_expr: Optional[str], allowed: Dict[str, object], tie_breaker) -> Query:
    """Order a list query by a client supplied sort expression.

    sort_expr: comma separated keys, '-' prefix for descending (`-created_at,priority`).
    allowed: key -> column; anything else is a 400.
    tie_breaker: column appended last so pages stay stable.
    """
    if not sort_expr:
        return query.order_by(tie_breaker.desc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token.lstrip('-')
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.desc())
    return query.order_by(*clauses)
