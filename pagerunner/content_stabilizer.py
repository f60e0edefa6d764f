"""Reduce page markup to a compact, deterministic form for downstream agents."""

from __future__ import annotations

import re
from typing import Iterable

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from actionkit.dsl.results import ElementInfo

from .dom_classifier import FALLBACK_ATTRIBUTE

DROP_TAGS = (
    "head",
    "script",
    "style",
    "noscript",
    "meta",
    "link",
    "template",
    "svg",
    "img",
    "video",
    "audio",
    "canvas",
    "iframe",
    "picture",
    "object",
    "embed",
)

TEST_ID_ATTRS = ("data-testid", "data-test", "data-cy", "data-selenium-id")
DATA_ATTRS = (
    "data-id",
    "data-key",
    "data-index",
    "data-value",
    "data-type",
    "data-component",
    "data-widget",
    "data-control",
    "data-element",
)
STABLE_SELECTOR_ATTR = "data-stable-selector"

KEEP_ATTRS = frozenset(
    (
        "id",
        "class",
        "name",
        "type",
        "value",
        "href",
        "role",
        "for",
        "action",
        "method",
        "disabled",
        "checked",
        "selected",
        "contenteditable",
        STABLE_SELECTOR_ATTR,
        FALLBACK_ATTRIBUTE,
    )
    + TEST_ID_ATTRS
    + DATA_ATTRS
)

ANCHOR_ATTRS = ("id", "role", "href", STABLE_SELECTOR_ATTR, FALLBACK_ATTRIBUTE) + TEST_ID_ATTRS
FORM_TAGS = frozenset(("input", "textarea", "select", "button", "option"))

TRUNCATED_TAG = "text-content-truncated"
LONG_TEXT_THRESHOLD = 200
KEPT_TEXT_LENGTH = 100
INTERACTION_KEYWORDS = re.compile(r"\b(click|button|link|input|select|submit|login|search|menu|nav)\b", re.IGNORECASE)

_WHITESPACE = re.compile(r"\s+")
_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)
_SKIPPED_NODES = (Comment, Declaration, Doctype, ProcessingInstruction)


def _is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    style = tag.get("style")
    return bool(style and _HIDDEN_STYLE.search(style))


def _is_exempt(tag: Tag) -> bool:
    if tag.name in FORM_TAGS or tag.name == TRUNCATED_TAG:
        return True
    return any(tag.has_attr(attr) for attr in ANCHOR_ATTRS)


def _is_empty(tag: Tag) -> bool:
    for child in tag.children:
        if isinstance(child, Tag):
            return False
        if isinstance(child, NavigableString) and str(child).strip():
            return False
    return True


def _drop_noise(soup: BeautifulSoup) -> None:
    for node in soup.find_all(string=lambda text: isinstance(text, _SKIPPED_NODES)):
        node.extract()
    for tag in soup.find_all(DROP_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for tag in soup.find_all(_is_hidden):
        if not tag.decomposed:
            tag.decompose()


def _filter_attributes(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(True):
        tag.attrs = {name: value for name, value in tag.attrs.items() if name in KEEP_ATTRS}


def _remove_empty(soup: BeautifulSoup) -> None:
    # Reverse document order visits children before their parents.
    for tag in reversed(soup.find_all(True)):
        if tag.name in ("html", "body"):
            continue
        if _is_empty(tag) and not _is_exempt(tag):
            tag.decompose()


def _normalise_text(soup: BeautifulSoup) -> None:
    soup.smooth()
    for node in list(soup.find_all(string=True)):
        text = _WHITESPACE.sub(" ", str(node))
        if not text.strip():
            node.extract()
            continue
        if len(text.strip()) >= LONG_TEXT_THRESHOLD:
            if INTERACTION_KEYWORDS.search(text):
                node.replace_with(text.strip()[:KEPT_TEXT_LENGTH] + "...")
            else:
                node.replace_with(soup.new_tag(TRUNCATED_TAG))
            continue
        if text != str(node):
            node.replace_with(text)


def _annotate(soup: BeautifulSoup, elements: Iterable[ElementInfo]) -> None:
    for element in elements:
        if not element.selector or not element.text:
            continue
        wanted = _WHITESPACE.sub(" ", element.text).strip()
        for tag in soup.find_all(True):
            if tag.has_attr(STABLE_SELECTOR_ATTR) or tag.find(True) is not None:
                continue
            if _WHITESPACE.sub(" ", tag.get_text()).strip() == wanted:
                tag[STABLE_SELECTOR_ATTR] = element.selector


def stabilize(html: str, elements: Iterable[ElementInfo] = ()) -> str:
    """Return the stabilised form of ``html``; applying it twice changes nothing."""

    if not html or not isinstance(html, str):
        return ""
    soup = BeautifulSoup(html, "html.parser")
    _drop_noise(soup)
    _filter_attributes(soup)
    _remove_empty(soup)
    _normalise_text(soup)
    _annotate(soup, list(elements))
    root = soup.body if soup.body is not None else soup
    return "".join(str(child) for child in root.contents).strip()
