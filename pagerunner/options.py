"""Translate caller supplied option objects into Playwright keyword arguments."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Mapping, Optional

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Option names that differ between the wire vocabulary and Playwright beyond casing.
RENAMED = {
    "waitUntil": "wait_until",
    "fullPage": "full_page",
    "omitBackground": "omit_background",
    "printBackground": "print_background",
    "preferCSSPageSize": "prefer_css_page_size",
    "clickCount": "click_count",
    "executablePath": "executable_path",
    "slowMo": "slow_mo",
    "args": "args",
}

WAIT_UNTIL_ALIASES = {
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
}


def snake_case(name: str) -> str:
    if name in RENAMED:
        return RENAMED[name]
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def playwright_kwargs(options: Optional[Mapping[str, Any]], allowed: Iterable[str]) -> Dict[str, Any]:
    """Return ``options`` with snake_case keys, keeping only names in ``allowed``."""

    if not options:
        return {}
    permitted = set(allowed)
    kwargs: Dict[str, Any] = {}
    for key, value in options.items():
        name = snake_case(str(key))
        if name not in permitted or value is None:
            continue
        if name == "wait_until" and isinstance(value, str):
            value = WAIT_UNTIL_ALIASES.get(value, value)
        kwargs[name] = value
    return kwargs
