"""``{{ dotted.path }}`` parameter substitution for action descriptors."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

PLACEHOLDER = re.compile(r"{{(.*?)}}")


def _lookup(params: Mapping[str, Any], path: str) -> Any:
    value: Any = params
    for key in path.strip().split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(key)
        elif isinstance(value, (list, tuple)) and key.isdigit():
            index = int(key)
            value = value[index] if index < len(value) else None
        else:
            value = getattr(value, key, None)
    return value


def render(template: Any, params: Optional[Mapping[str, Any]]) -> Any:
    """Replace placeholders in ``template``; unresolved ones are left as written."""

    if not params or not isinstance(template, str):
        return template

    def _replace(match: re.Match[str]) -> str:
        value = _lookup(params, match.group(1))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER.sub(_replace, template)


def render_params(obj: Any, params: Optional[Mapping[str, Any]]) -> Any:
    """Apply :func:`render` through nested dicts and lists, returning new objects."""

    if not params:
        return obj
    if isinstance(obj, str):
        return render(obj, params)
    if isinstance(obj, Mapping):
        return {key: render_params(value, params) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [render_params(item, params) for item in obj]
    return obj
