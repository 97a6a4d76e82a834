"""
Nested query-string decoding in the style of the ``qs`` package.

Bracketed keys build nested values: ``a[b]=1&a[c]=2`` becomes
``{"a": {"b": "1", "c": "2"}}``, ``a[]=x&a[]=y`` becomes ``{"a": ["x", "y"]}``
and ``a[1]=y&a[0]=x`` becomes ``{"a": ["x", "y"]}``. Keys nest at most
``depth`` levels; anything deeper is kept as one literal key. Numeric indexes
above ``array_limit`` make an object instead of a list.
"""

import re
from typing import Any, Dict, Iterable, List, Tuple

DEPTH = 5
QUERY_ARRAY_LIMIT = 20

_BRACKET = re.compile(r"\[[^\[\]]*\]")

# Unset slot of a list built from an explicit index
_HOLE = object()


def split_key(key: str, depth: int = DEPTH) -> List[str]:
    """``"a[b][c]"`` -> ``["a", "[b]", "[c]"]``."""
    first = _BRACKET.search(key)
    if first is None:
        return [key]

    parent = key[: first.start()]
    segments = [parent] if parent else []
    for i, match in enumerate(_BRACKET.finditer(key)):
        if i >= depth:
            segments.append(f"[{key[match.start():]}]")
            break
        segments.append(match.group())
    return segments


def _is_index(segment: str, clean: str, array_limit: int) -> bool:
    return (
        segment != clean
        and clean.isascii()
        and clean.isdigit()
        and str(int(clean)) == clean
        and int(clean) <= array_limit
    )


def _build(segments: List[str], value: Any, array_limit: int) -> Any:
    leaf = value
    for segment in reversed(segments):
        if segment == "[]":
            obj: Any = list(leaf) if isinstance(leaf, list) else [leaf]
        else:
            clean = segment[1:-1] if segment.startswith("[") and segment.endswith("]") else segment
            if clean == "":
                obj = {"0": leaf}
            elif _is_index(segment, clean, array_limit):
                obj = [_HOLE] * int(clean) + [leaf]
            else:
                obj = {clean: leaf}
        leaf = obj
    return leaf


def _set_index(target: list, index: int, value: Any) -> None:
    if index >= len(target):
        target.extend([_HOLE] * (index - len(target) + 1))
    target[index] = value


def _as_dict(items: list) -> Dict[str, Any]:
    return {str(i): v for i, v in enumerate(items) if v is not _HOLE}


def merge(target: Any, source: Any) -> Any:
    """Merge ``source`` into ``target`` the way ``qs`` combines keys."""
    if not isinstance(source, (dict, list)):
        if isinstance(target, list):
            target.append(source)
        elif isinstance(target, dict):
            target[source] = True
        else:
            return [target, source]
        return target

    if not isinstance(target, (dict, list)):
        return [target] + source if isinstance(source, list) else [target, source]

    if isinstance(target, list) and isinstance(source, list):
        for i, item in enumerate(source):
            if item is _HOLE:
                continue
            if i < len(target) and target[i] is not _HOLE:
                if isinstance(target[i], (dict, list)) and isinstance(item, (dict, list)):
                    target[i] = merge(target[i], item)
                else:
                    target.append(item)
            else:
                _set_index(target, i, item)
        return target

    merged = _as_dict(target) if isinstance(target, list) else target
    pairs = source.items() if isinstance(source, dict) else _as_dict(source).items()
    for key, value in pairs:
        merged[key] = merge(merged[key], value) if key in merged else value
    return merged


def _compact(value: Any) -> Any:
    if isinstance(value, list):
        return [_compact(v) for v in value if v is not _HOLE]
    if isinstance(value, dict):
        return {k: _compact(v) for k, v in value.items()}
    return value


def parse_nested(
    items: Iterable[Tuple[str, Any]], *, depth: int = DEPTH, array_limit: int = QUERY_ARRAY_LIMIT
) -> Dict[str, Any]:
    """Decode ``(key, value)`` pairs into nested dicts and lists."""
    combined: Dict[str, Any] = {}
    for key, value in items:
        if key in combined:
            previous = combined[key]
            combined[key] = (previous if isinstance(previous, list) else [previous]) + [value]
        else:
            combined[key] = value

    result: Any = {}
    for key, value in combined.items():
        result = merge(result, _build(split_key(key, depth), value, array_limit))
    return _compact(result)
