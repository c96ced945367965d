#!/usr/bin/env python3
"""
Constant Flattener

Turns a nested configuration record (typically package.json) into a flat
mapping of dotted keys to literal JavaScript source text, ready to be passed
to the bundler as compile-time defines.

Example:
    >>> flatten_constants({'a': {'b': 1, 'c': 'x'}}, 'P.')
    {'P.a.b': '1', 'P.a.c': '"x"'}

Circular records are not supported and will raise RecursionError.
"""

import json
from typing import Any, Dict, Iterable, Mapping


def serialize_literal(value: Any) -> str:
    """Serialize a JSON-safe value the way JSON.stringify would."""
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'))


def flatten_constants(
    record: Mapping[str, Any],
    prefix: str = '',
    exclude_keys: Iterable[str] = (),
) -> Dict[str, str]:
    """
    Flatten a nested record into a ConstantMap.

    Args:
        record: Arbitrary JSON-safe mapping
        prefix: Prefix for every generated key (include the trailing dot)
        exclude_keys: Keys skipped wherever they occur, together with
            everything nested below them

    Returns:
        Dict mapping dotted key -> serialized literal

    Only mappings are expanded; lists and scalars are leaves and are
    serialized whole.
    """
    excluded = frozenset(exclude_keys)
    return _flatten(record, prefix, excluded)


def _flatten(record: Mapping[str, Any], prefix: str, excluded: frozenset) -> Dict[str, str]:
    result = {}
    for key, value in record.items():
        if key in excluded:
            continue
        if isinstance(value, Mapping):
            result.update(_flatten(value, f'{prefix}{key}.', excluded))
        else:
            result[f'{prefix}{key}'] = serialize_literal(value)
    return result
