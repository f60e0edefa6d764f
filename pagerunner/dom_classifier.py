"""In-page classification of interactive elements with unique technical selectors."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from playwright.async_api import Frame, Page

from actionkit.dsl.results import ElementInfo

log = logging.getLogger(__name__)

DEFAULT_MAX_ELEMENTS = 100
FALLBACK_ATTRIBUTE = "data-pr-id"

# Runs in the page with a single JSON options argument and returns plain objects.
CLASSIFIER_SCRIPT = r"""
(options) => {
  const maxElements = options.maxElements || 100;
  const fallbackAttr = options.fallbackAttr || 'data-pr-id';

  const TEST_ID_ATTRS = ['data-testid', 'data-test', 'data-cy', 'data-selenium-id'];
  const DATA_ATTRS = ['data-id', 'data-key', 'data-index', 'data-value', 'data-type',
                      'data-component', 'data-widget', 'data-control', 'data-element'];
  const ROLES = ['button', 'link', 'menuitem', 'menuitemcheckbox', 'menuitemradio', 'option',
                 'tab', 'checkbox', 'radio', 'switch', 'combobox', 'textbox', 'searchbox',
                 'slider', 'spinbutton', 'treeitem'];
  const ARIA_STATES = ['aria-expanded', 'aria-pressed', 'aria-selected', 'aria-checked', 'aria-haspopup'];
  const CLASS_HINTS = ['btn', 'button', 'clickable', 'link', 'toggle', 'menu-item', 'dropdown', 'tab', 'chip'];
  const BINDING_ATTRS = ['jsaction', 'data-action', 'ng-click', '(click)'];
  const BINDING_PREFIXES = ['@', 'v-on:', 'x-on:', 'hx-', 'ng-reflect-'];
  const TEXT_TYPES = ['text', 'email', 'password', 'search', 'tel', 'url', 'number'];
  const INTRINSIC = ['button', 'input', 'select', 'textarea', 'summary'];

  const cssEscape = (value) => (window.CSS && CSS.escape) ? CSS.escape(value) : String(value).replace(/([^a-zA-Z0-9_-])/g, '\\$1');
  const attrValue = (value) => '"' + String(value).replace(/\\/g, '\\\\').replace(/"/g, '\\"') + '"';

  const isUnique = (candidate, element) => {
    try {
      const found = document.querySelectorAll(candidate);
      return found.length === 1 && found[0] === element;
    } catch (e) {
      return false;
    }
  };

  const isVisible = (element, style) => {
    const rect = element.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) return false;
    return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
  };

  const looksGenerated = (value) => /\d{4,}/.test(value) || /^[a-z0-9]{16,}$/i.test(value) || /^(css|sc|jsx|emotion)-/.test(value) || value.includes(':');

  const hasFrameworkHandlers = (element) => {
    for (const key of Object.keys(element)) {
      if (key.startsWith('__reactProps$') || key.startsWith('__reactEventHandlers$')) {
        const bag = element[key] || {};
        if (Object.keys(bag).some((name) => /^on[A-Z]/.test(name))) return true;
      }
      if (key === '_vei' || key === '__vue__') return true;
      if (key === '__ngContext__') {
        for (const attr of element.getAttributeNames()) {
          if (attr.startsWith('ng-reflect-') || attr === '(click)') return true;
        }
      }
    }
    return false;
  };

  const hasInlineHandlers = (element) => {
    for (const attr of element.getAttributeNames()) {
      if (attr.startsWith('on')) return true;
    }
    return typeof element.onclick === 'function' || typeof element.onmousedown === 'function';
  };

  const hasBindings = (element) => {
    for (const attr of element.getAttributeNames()) {
      if (BINDING_ATTRS.includes(attr)) return true;
      if (BINDING_PREFIXES.some((prefix) => attr.startsWith(prefix))) return true;
    }
    return false;
  };

  const isEditable = (element) => element.hasAttribute('contenteditable') && element.getAttribute('contenteditable') !== 'false';

  const isInteractive = (element, style) => {
    if (style.pointerEvents === 'none') return false;
    const tag = element.tagName.toLowerCase();
    if (tag === 'a' && element.hasAttribute('href')) return true;
    if (INTRINSIC.includes(tag)) return true;
    if (tag === 'label' && element.hasAttribute('for')) return true;
    if (isEditable(element)) return true;
    if (hasInlineHandlers(element) || hasBindings(element) || hasFrameworkHandlers(element)) return true;
    const role = (element.getAttribute('role') || '').toLowerCase();
    if (ROLES.includes(role)) return true;
    if (ARIA_STATES.some((attr) => element.hasAttribute(attr))) return true;
    const className = typeof element.className === 'string' ? element.className.toLowerCase() : '';
    if (className && CLASS_HINTS.some((hint) => className.split(/\s+/).some((name) => name === hint || name.startsWith(hint + '-') || name.endsWith('-' + hint)))) return true;
    if (element.hasAttribute('tabindex') && parseInt(element.getAttribute('tabindex'), 10) >= 0) return true;
    if (style.cursor === 'pointer') {
      const parent = element.parentElement;
      if (!parent || window.getComputedStyle(parent).cursor !== 'pointer') return true;
    }
    return false;
  };

  const classify = (element, style) => {
    if (style.pointerEvents === 'none') return null;
    const tag = element.tagName.toLowerCase();
    if (tag === 'input') {
      const type = (element.getAttribute('type') || '').toLowerCase();
      if (type === 'hidden') return null;
      if (type === 'file') return 'uploadable';
      if (!type || TEXT_TYPES.includes(type)) return 'writeable';
    }
    if (tag === 'textarea' || tag === 'select' || isEditable(element)) return 'writeable';
    return isInteractive(element, style) ? 'clickable' : null;
  };

  const structuralPath = (element) => {
    const parts = [];
    let current = element;
    while (current && current.nodeType === Node.ELEMENT_NODE && current !== document.documentElement) {
      const tag = current.tagName.toLowerCase();
      let segment = tag;
      if (current.id && !looksGenerated(current.id)) {
        segment = '#' + cssEscape(current.id);
      } else if (current.parentElement) {
        const siblings = Array.from(current.parentElement.children).filter((node) => node.tagName === current.tagName);
        if (siblings.length > 1) segment += ':nth-of-type(' + (siblings.indexOf(current) + 1) + ')';
      }
      parts.unshift(segment);
      const candidate = parts.join(' > ');
      if (isUnique(candidate, element)) return candidate;
      current = current.parentElement;
    }
    return null;
  };

  const buildSelector = (element) => {
    const tag = element.tagName.toLowerCase();
    if (element.id && !looksGenerated(element.id)) {
      const candidate = '#' + cssEscape(element.id);
      if (isUnique(candidate, element)) return candidate;
    }
    for (const attr of TEST_ID_ATTRS) {
      const value = element.getAttribute(attr);
      if (value) {
        const candidate = '[' + attr + '=' + attrValue(value) + ']';
        if (isUnique(candidate, element)) return candidate;
      }
    }
    const name = element.getAttribute('name');
    if (name) {
      const candidate = tag + '[name=' + attrValue(name) + ']';
      if (isUnique(candidate, element)) return candidate;
    }
    if (tag === 'input' && element.getAttribute('type') && element.getAttribute('value')) {
      const candidate = 'input[type=' + attrValue(element.getAttribute('type')) + '][value=' + attrValue(element.getAttribute('value')) + ']';
      if (isUnique(candidate, element)) return candidate;
    }
    const classes = Array.from(element.classList).filter((name) => !looksGenerated(name)).slice(0, 3);
    for (let size = 1; size <= classes.length; size++) {
      const candidate = tag + classes.slice(0, size).map((name) => '.' + cssEscape(name)).join('');
      if (isUnique(candidate, element)) return candidate;
    }
    const role = element.getAttribute('role');
    if (role) {
      const candidate = tag + '[role=' + attrValue(role) + ']';
      if (isUnique(candidate, element)) return candidate;
    }
    for (const attr of DATA_ATTRS) {
      const value = element.getAttribute(attr);
      if (value) {
        const candidate = tag + '[' + attr + '=' + attrValue(value) + ']';
        if (isUnique(candidate, element)) return candidate;
      }
    }
    const path = structuralPath(element);
    if (path) return path;
    const markerSelector = (value) => '[' + fallbackAttr + '=' + attrValue(value) + ']';
    const existing = element.getAttribute(fallbackAttr);
    if (existing && isUnique(markerSelector(existing), element)) return markerSelector(existing);
    // Missing or shared with a cloned node: mint a fresh marker.
    for (let attempt = 0; attempt < 5; attempt++) {
      const marker = Math.random().toString(36).slice(2, 10);
      element.setAttribute(fallbackAttr, marker);
      if (isUnique(markerSelector(marker), element)) return markerSelector(marker);
    }
    return null;
  };

  const looksLikeScript = (text) => {
    if (text.includes('function(') || text.includes('=>')) return true;
    const symbols = (text.match(/[{}();]/g) || []).length;
    return text.length > 0 && symbols / text.length > 0.1;
  };

  const cleanText = (value) => (value || '').replace(/\s+/g, ' ').trim();

  const labelFor = (element) => {
    let direct = '';
    for (const node of element.childNodes) {
      if (node.nodeType === Node.TEXT_NODE) direct += ' ' + node.textContent;
    }
    const candidates = [cleanText(direct), cleanText(element.textContent), cleanText(element.getAttribute('value')), cleanText(element.getAttribute('name'))];
    for (const text of candidates) {
      if (!text || looksLikeScript(text)) continue;
      return text.length > 100 ? text.slice(0, 100) + '...' : text;
    }
    return '';
  };

  const results = [];
  const seen = new Set();
  for (const element of document.querySelectorAll('body *')) {
    if (results.length >= maxElements) break;
    const tag = element.tagName.toLowerCase();
    if (['script', 'style', 'noscript', 'template'].includes(tag)) continue;
    const style = window.getComputedStyle(element);
    if (!isVisible(element, style)) continue;
    const type = classify(element, style);
    if (!type) continue;
    const selector = buildSelector(element);
    if (!selector || seen.has(selector)) continue;
    seen.add(selector);
    const entry = {selector, type, tag};
    if (element.id) entry.id = element.id;
    const text = labelFor(element);
    if (text) entry.text = text;
    results.push(entry);
  }
  return results;
}
"""


class DomClassifier:
    """Rescans the live DOM on every call and returns :class:`ElementInfo` entries."""

    def __init__(self, *, max_elements: int = DEFAULT_MAX_ELEMENTS, fallback_attribute: str = FALLBACK_ATTRIBUTE) -> None:
        self.max_elements = max_elements
        self.fallback_attribute = fallback_attribute

    def _options(self) -> Dict[str, Any]:
        return {"maxElements": self.max_elements, "fallbackAttr": self.fallback_attribute}

    async def classify(self, page: Page | Frame) -> List[ElementInfo]:
        raw = await page.evaluate(CLASSIFIER_SCRIPT, self._options())
        return parse_elements(raw, self.max_elements)

    async def clickable(self, page: Page | Frame) -> List[ElementInfo]:
        return [element for element in await self.classify(page) if element.type == "clickable"]

    async def writeable(self, page: Page | Frame) -> List[ElementInfo]:
        return [element for element in await self.classify(page) if element.type == "writeable"]


def parse_elements(raw: Any, max_elements: int = DEFAULT_MAX_ELEMENTS) -> List[ElementInfo]:
    """Convert the script output into deduplicated :class:`ElementInfo` entries."""

    if not isinstance(raw, list):
        log.debug("Classifier returned %s instead of a list", type(raw).__name__)
        return []
    elements: List[ElementInfo] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict) or not item.get("selector"):
            continue
        info = ElementInfo.from_json(item)
        if info.selector in seen:
            continue
        seen.add(info.selector)
        elements.append(info)
        if len(elements) >= max_elements:
            break
    return elements
