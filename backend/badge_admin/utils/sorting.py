from __future__ import annotations
from typing import Mapping

from flask import abort


def apply_multi_sort(query, sort_expr: str | None, allowed: Mapping[str, object], tie_breaker):
    """Order a listing by `?sort=a,-b`.

    Keys must appear in `allowed` (key -> column); a leading '-' sorts descending.
    `tie_breaker` is always appended so pages stay stable between requests.
    """
    clauses = []
    seen = set()
    for token in (sort_expr or '').split(','):
        token = token.strip()
        if not token:
            continue
        key = token.lstrip('-')
        column = allowed.get(key)
        if column is None:
            abort(400, description=f'Invalid sort field {key}')
        if key in seen:
            abort(400, description=f'Duplicate sort field {key}')
        seen.add(key)
        clauses.append(column.desc() if token.startswith('-') else column.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)
