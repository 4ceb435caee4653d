from __future__ import annotations
from typing import Any, Callable, Dict, Mapping

from flask import abort

FilterSpec = Dict[str, Any]


def apply_filters(query, specs: Mapping[str, FilterSpec], params: Mapping[str, Any]):
    """Narrow a listing query from request arguments.

    Each spec entry maps a query-string name to:
      'op':      callable(query, value) -> query (required)
      'coerce':  callable turning the raw string into the filter value
      'choices': collection of accepted (coerced) values

    Blank or absent arguments are ignored; bad values abort with 400 naming the argument.
    """
    for name, spec in specs.items():
        raw = params.get(name)
        if raw is None or raw == '':
            continue
        value = raw
        coerce: Callable[[Any], Any] | None = spec.get('coerce')
        if coerce is not None:
            try:
                value = coerce(raw)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        choices = spec.get('choices')
        if choices is not None and value not in choices:
            abort(400, description=f'{name} must be one of {", ".join(sorted(choices))}')
        query = spec['op'](query, value)
    return query
