from __future__ import annotations
from typing import Any, Callable, Dict, Mapping
from flask import abort
from sqlalchemy.orm import Query

FilterSpec = Dict[str, Any]


def apply_filters(query: Query, specs: Dict[str, FilterSpec], params: Mapping[str, Any]) -> Query:
    """Apply query-string filters declared as specs.

    specs: { param: {'op': callable(query, value) -> query, 'coerce': callable, 'choices': iterable} }
    Missing or empty params are skipped; a value that fails coercion or is
    outside `choices` aborts with 400.
    """
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        coerce: Callable = meta.get('coerce')
        if coerce is not None:
            try:
                val = coerce(val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        choices = meta.get('choices')
        if choices is not None and val not in choices:
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query
