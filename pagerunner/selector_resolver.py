"""Selector resolution across the CSS, XPath and JS-path dialects."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Optional

from playwright.async_api import Frame, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from actionkit.dsl.results import ResolvedElement

from .errors import InvalidSelector, SelectorAmbiguous, SelectorNotFound, SelectorTimeout

log = logging.getLogger(__name__)

XPATH_PREFIXES = ("//", "./", "(")
# Only a leading root object marks a JS path; `div.modal-window` is CSS.
JS_PATH_ROOT = re.compile(r"\s*(?:document|window)\s*\.")
LOCALE_MARKERS = ("aria-label=", "title=", "placeholder=", ":contains(", "text(")

DEFAULT_TIMEOUT_MS = 15_000


class SelectorDialect(str, Enum):
    CSS = "css"
    XPATH = "xpath"
    JS_PATH = "js-path"


XPATH_FIRST_SCRIPT = """
(xpath) => document.evaluate(
  xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
).singleNodeValue
"""

XPATH_PRESENT_SCRIPT = """
(xpath) => document.evaluate(
  xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
).singleNodeValue !== null
"""

XPATH_COUNT_SCRIPT = """
(xpath) => document.evaluate(
  xpath, document, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null
).snapshotLength
"""

# Counts whatever a JS-path expression evaluated to: one node, a NodeList/HTMLCollection, or nothing.
JS_VALUE_COUNT_SCRIPT = """
(value) => {
  if (value === null || value === undefined) return 0;
  if (value instanceof Node) return 1;
  if (typeof value.length === 'number') return value.length;
  return 1;
}
"""


def detect_dialect(selector: str) -> SelectorDialect:
    text = selector.strip()
    if text.startswith(XPATH_PREFIXES):
        return SelectorDialect.XPATH
    if JS_PATH_ROOT.match(text):
        return SelectorDialect.JS_PATH
    return SelectorDialect.CSS


def validate_selector(selector: str) -> str:
    """Reject selectors that rely on localised labels or visible text."""

    lowered = selector.lower()
    for marker in LOCALE_MARKERS:
        if marker in lowered:
            raise InvalidSelector(selector, marker)
    return selector


class SelectorResolver:
    """Resolve a selector string to one live element on ``page``."""

    def __init__(
        self,
        page: Page | Frame,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        strict: bool = False,
    ) -> None:
        self.page = page
        self.default_timeout_ms = default_timeout_ms
        self.strict = strict

    async def resolve(
        self,
        selector: str,
        timeout_ms: Optional[int] = None,
        *,
        unique: bool = False,
    ) -> ResolvedElement:
        dialect = detect_dialect(selector)
        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        try:
            element = await self._wait_for(selector, dialect, timeout)
        except PlaywrightTimeoutError as exc:
            raise SelectorTimeout(selector, dialect.value, timeout, reason=str(exc).splitlines()[0]) from exc
        if element is None:
            raise SelectorNotFound(selector, dialect.value)

        match_count = 1
        if unique or self.strict:
            match_count = await self.count(selector)
            if match_count == 0:
                raise SelectorNotFound(selector, dialect.value)
            if match_count > 1:
                raise SelectorAmbiguous(selector, dialect.value, match_count)
        log.debug("Resolved %s selector %s", dialect.value, selector)
        return ResolvedElement(selector=selector, dialect=dialect.value, match_count=match_count, element=element)

    async def count(self, selector: str) -> int:
        dialect = detect_dialect(selector)
        if dialect is SelectorDialect.XPATH:
            return int(await self.page.evaluate(XPATH_COUNT_SCRIPT, selector) or 0)
        if dialect is SelectorDialect.JS_PATH:
            handle = await self.page.evaluate_handle(selector)
            try:
                return int(await handle.evaluate(JS_VALUE_COUNT_SCRIPT) or 0)
            finally:
                await handle.dispose()
        return len(await self.page.query_selector_all(selector))

    async def _wait_for(self, selector: str, dialect: SelectorDialect, timeout: int) -> Any:
        if dialect is SelectorDialect.XPATH:
            await self.page.wait_for_function(XPATH_PRESENT_SCRIPT, arg=selector, timeout=timeout)
            handle = await self.page.evaluate_handle(XPATH_FIRST_SCRIPT, selector)
            return handle.as_element()
        if dialect is SelectorDialect.JS_PATH:
            await self.page.wait_for_function(selector, timeout=timeout)
            handle = await self.page.evaluate_handle(selector)
            return handle.as_element()
        await self.page.wait_for_selector(selector, state="attached", timeout=timeout)
        return await self.page.query_selector(selector)
