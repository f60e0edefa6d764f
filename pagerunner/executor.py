"""Sequential execution of typed actions against an instance's page."""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import urlsplit

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from actionkit.dsl import registry
from actionkit.dsl.models import (
    ActionBase,
    ClearInputAction,
    ClickAction,
    DeleteCookiesAction,
    EvaluateAction,
    FocusAction,
    GetAttributeAction,
    GetCookiesAction,
    GetHtmlAction,
    GetTextAction,
    GetValueAction,
    GoAction,
    HoverAction,
    PdfAction,
    PressAction,
    ScreenshotAction,
    SelectAction,
    SetCookiesAction,
    SetUserAgentAction,
    SetViewportAction,
    SleepAction,
    UnknownAction,
    UploadFileAction,
    WaitForDomUpdateAction,
    WaitForFunctionAction,
    WaitForNavigationAction,
    WaitForSelectorAction,
    WriteAction,
)
from actionkit.dsl.results import BodyContent, ResolvedElement

from .config import RunConfig, load_config
from .content_stabilizer import stabilize
from .dom_classifier import DomClassifier
from .errors import ActionFailed, PipelineTimeout, UnknownActionKind
from .events import ACTION_END, ACTION_ERROR, ACTION_START, EventBus
from .instances import Instance
from .options import playwright_kwargs
from .page_stability import NetworkTracker, wait_for_network_quiet
from .selector_resolver import SelectorResolver, validate_selector

log = logging.getLogger(__name__)

BLANK_URL = "about:blank"

NAVIGATION_OPTIONS = ("timeout", "wait_until", "referer")
CLICK_OPTIONS = ("button", "click_count", "delay", "modifiers", "position", "force", "timeout")
SCREENSHOT_OPTIONS = ("path", "full_page", "type", "quality", "omit_background", "clip", "timeout")
PDF_OPTIONS = (
    "path",
    "format",
    "landscape",
    "print_background",
    "margin",
    "scale",
    "width",
    "height",
    "prefer_css_page_size",
    "page_ranges",
)
WAIT_FUNCTION_OPTIONS = ("timeout", "polling")

CLEAR_INPUT_SCRIPT = """
(el) => {
  el.value = '';
  el.dispatchEvent(new Event('input', { bubbles: true }));
}
"""
BODY_HTML_SCRIPT = "() => document.body ? document.body.innerHTML : ''"


class _NoResult:
    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "NO_RESULT"

    def __bool__(self) -> bool:
        return False


NO_RESULT: Any = _NoResult()


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(slots=True)
class ActionRecord:
    action: ActionBase
    state: RunState = RunState.PENDING
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": self.action.payload(), "state": self.state.value}
        if self.started_at is not None and self.finished_at is not None:
            payload["elapsed_ms"] = int((self.finished_at - self.started_at) * 1000)
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class RunReport:
    """Outcome of one submission of actions to an instance."""

    instance_id: str
    state: PipelineState = PipelineState.NOT_STARTED
    records: List[ActionRecord] = field(default_factory=list)
    result: Any = NO_RESULT
    skipped: List[str] = field(default_factory=list)

    @property
    def has_result(self) -> bool:
        return self.result is not NO_RESULT

    def value(self, default: Any = None) -> Any:
        return self.result if self.has_result else default


ActionLike = Union[ActionBase, Mapping[str, Any]]
Handler = Callable[[Instance, Any], Awaitable[Any]]


def normalise_url(url: str) -> str:
    """Prefix bare hostnames with ``https://``."""

    text = url.strip()
    if text.startswith(("about:", "data:", "file:", "javascript:")):
        return text
    if not urlsplit(text).scheme or "://" not in text:
        return f"https://{text}"
    return text


def _single_arg(args: Sequence[Any]) -> Any:
    if not args:
        return None
    if len(args) == 1:
        return args[0]
    return list(args)


class ActionRunner:
    """Execute actions one at a time, wrapping each in lifecycle events.

    Soft waits (navigation, ``waitForNavigation``, ``waitForDomUpdate`` and
    the quiet window before ``getBodyContent``) log a warning on timeout and
    count as success. Every other failure emits ``action:error`` and aborts
    the submission with :class:`ActionFailed`.
    """

    def __init__(
        self,
        *,
        bus: Optional[EventBus] = None,
        config: Optional[RunConfig] = None,
        classifier: Optional[DomClassifier] = None,
    ) -> None:
        self.bus = bus or EventBus()
        self.config = config or load_config()
        self.classifier = classifier or DomClassifier(max_elements=self.config.max_elements)
        self._handlers: Dict[str, Handler] = {
            "go": self._go,
            "reload": self._reload,
            "goBack": self._go_back,
            "goForward": self._go_forward,
            "click": self._click,
            "write": self._write,
            "press": self._press,
            "hover": self._hover,
            "focus": self._focus,
            "clearInput": self._clear_input,
            "select": self._select,
            "uploadFile": self._upload_file,
            "sleep": self._sleep,
            "waitForSelector": self._wait_for_selector,
            "waitForNavigation": self._wait_for_navigation,
            "waitForFunction": self._wait_for_function,
            "waitForDomUpdate": self._wait_for_dom_update,
            "screenshot": self._screenshot,
            "pdf": self._pdf,
            "setViewport": self._set_viewport,
            "setUserAgent": self._set_user_agent,
            "setCookies": self._set_cookies,
            "deleteCookies": self._delete_cookies,
            "bringToFront": self._bring_to_front,
            "evaluate": self._evaluate,
            "getBodyContent": self._get_body_content,
            "getHtml": self._get_html,
            "getText": self._get_text,
            "getAttribute": self._get_attribute,
            "getValue": self._get_value,
            "getCookies": self._get_cookies,
            "getClickableElements": self._get_clickable_elements,
            "getWriteableElements": self._get_writeable_elements,
        }

    @property
    def action_names(self) -> List[str]:
        return list(self._handlers)

    async def run(self, instance: Instance, actions: Sequence[ActionLike]) -> RunReport:
        parsed = [registry.parse_action(action) for action in actions]
        async with instance.lock:
            return await self._run_locked(instance, parsed)

    async def _run_locked(self, instance: Instance, actions: List[ActionBase]) -> RunReport:
        report = RunReport(instance_id=instance.instance_id, state=PipelineState.RUNNING)
        if actions and instance.url == BLANK_URL:
            await asyncio.sleep(self.config.blank_page_settle_ms / 1000)

        for action in actions:
            if isinstance(action, UnknownAction):
                log.warning("Skipping unknown action type '%s'", action.name)
                report.skipped.append(action.name)
                continue
            record = ActionRecord(action=action, state=RunState.RUNNING, started_at=time.monotonic())
            report.records.append(record)
            url_before = instance.url
            self._emit(ACTION_START, {"session_id": instance.instance_id, "action": action, "current_url": url_before})
            try:
                value = await self._dispatch(instance, action)
            except Exception as exc:
                record.state = RunState.FAILED
                record.finished_at = time.monotonic()
                record.error = str(exc)
                report.state = PipelineState.ABORTED
                log.error("Action %s failed on %s: %s", action.action_name, instance.instance_id, exc)
                self._emit(
                    ACTION_ERROR,
                    {
                        "session_id": instance.instance_id,
                        "action": action,
                        "error": {"message": str(exc), "stack": traceback.format_exc()},
                        "current_url": url_before,
                    },
                )
                raise ActionFailed(action, url_before, exc) from exc

            record.state = RunState.SUCCEEDED
            record.finished_at = time.monotonic()
            if value is not NO_RESULT:
                report.result = value
            instance.history.append(action)
            self._emit(
                ACTION_END,
                {
                    "session_id": instance.instance_id,
                    "action": action,
                    "result": report.value(),
                    "current_url": instance.url,
                },
            )

        report.state = PipelineState.COMPLETED
        return report

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        self.bus.emit(event, payload)

    async def _dispatch(self, instance: Instance, action: ActionBase) -> Any:
        handler = self._handlers.get(action.action_name)
        if handler is None:
            raise UnknownActionKind(action.action_name)
        log.debug("Executing %s on %s", action.action_name, instance.instance_id)
        return await handler(instance, action)

    # ------------------------------------------------------------------
    # helpers

    async def _resolve(self, instance: Instance, selector: str, timeout_ms: int) -> ResolvedElement:
        if self.config.language_independent:
            validate_selector(selector)
        resolver = SelectorResolver(instance.page, default_timeout_ms=timeout_ms, strict=self.config.strict_selectors)
        return await resolver.resolve(selector, timeout_ms)

    async def _resolve_interactive(self, instance: Instance, selector: str) -> Any:
        resolved = await self._resolve(instance, selector, self.config.interactive_selector_timeout_ms)
        return resolved.element

    async def _resolve_read(self, instance: Instance, selector: str) -> Any:
        resolved = await self._resolve(instance, selector, self.config.read_selector_timeout_ms)
        return resolved.element

    async def _settle(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    def _network(self, instance: Instance) -> NetworkTracker:
        if instance.network is None:
            instance.network = NetworkTracker(instance.page)
            instance.network.start()
        return instance.network

    async def _soft(self, description: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except PlaywrightTimeoutError as exc:
            log.warning("%s timed out, continuing: %s", description, str(exc).splitlines()[0])

    def _navigation_kwargs(self, options: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = {"wait_until": "domcontentloaded", "timeout": self.config.navigation_timeout_ms}
        kwargs.update(playwright_kwargs(options, NAVIGATION_OPTIONS))
        return kwargs

    # ------------------------------------------------------------------
    # navigation

    async def _go(self, instance: Instance, action: GoAction) -> Any:
        url = normalise_url(action.url)
        if instance.watchdog is not None:
            await instance.watchdog.grant_permissions(url)
        await self._soft(f"Navigation to {url}", instance.page.goto(url, **self._navigation_kwargs(action.options)))
        return NO_RESULT

    async def _reload(self, instance: Instance, action: Any) -> Any:
        await self._soft("Reload", instance.page.reload(**self._navigation_kwargs(action.options)))
        return NO_RESULT

    async def _go_back(self, instance: Instance, action: Any) -> Any:
        await self._soft("Back navigation", instance.page.go_back(**self._navigation_kwargs(action.options)))
        return NO_RESULT

    async def _go_forward(self, instance: Instance, action: Any) -> Any:
        await self._soft("Forward navigation", instance.page.go_forward(**self._navigation_kwargs(action.options)))
        return NO_RESULT

    # ------------------------------------------------------------------
    # interaction

    async def _click(self, instance: Instance, action: ClickAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.click(**playwright_kwargs(action.options, CLICK_OPTIONS))
        await self._settle(self.config.click_settle_ms)
        return NO_RESULT

    async def _write(self, instance: Instance, action: WriteAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        keyboard = instance.page.keyboard
        await element.focus()
        await keyboard.press("Control+A")
        await keyboard.press("Backspace")
        await self._settle(self.config.write_settle_ms)
        await keyboard.type(action.value, **playwright_kwargs(action.options, ("delay",)))
        await self._settle(self.config.write_settle_ms)
        return NO_RESULT

    async def _press(self, instance: Instance, action: PressAction) -> Any:
        await instance.page.keyboard.press(action.key, **playwright_kwargs(action.options, ("delay",)))
        return NO_RESULT

    async def _hover(self, instance: Instance, action: HoverAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.hover()
        await self._settle(self.config.hover_settle_ms)
        return NO_RESULT

    async def _focus(self, instance: Instance, action: FocusAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.focus()
        return NO_RESULT

    async def _clear_input(self, instance: Instance, action: ClearInputAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.evaluate(CLEAR_INPUT_SCRIPT)
        await self._settle(self.config.clear_settle_ms)
        return NO_RESULT

    async def _select(self, instance: Instance, action: SelectAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.select_option(list(action.values))
        return NO_RESULT

    async def _upload_file(self, instance: Instance, action: UploadFileAction) -> Any:
        element = await self._resolve_interactive(instance, action.selector)
        await element.set_input_files(list(action.file_paths))
        return NO_RESULT

    # ------------------------------------------------------------------
    # waiting

    async def _sleep(self, instance: Instance, action: SleepAction) -> Any:
        await asyncio.sleep(action.duration / 1000)
        return NO_RESULT

    async def _wait_for_selector(self, instance: Instance, action: WaitForSelectorAction) -> Any:
        timeout = int(action.options.get("timeout") or self.config.interactive_selector_timeout_ms)
        await self._resolve(instance, action.selector, timeout)
        return NO_RESULT

    async def _wait_for_navigation(self, instance: Instance, action: WaitForNavigationAction) -> Any:
        kwargs = playwright_kwargs(action.options, ("timeout", "wait_until"))
        timeout = kwargs.get("timeout", self.config.wait_for_navigation_timeout_ms)
        state = kwargs.get("wait_until", "domcontentloaded")
        page = instance.page
        await self._soft(
            "Waiting for navigation",
            page.wait_for_event("framenavigated", predicate=lambda frame: frame.parent_frame is None, timeout=timeout),
        )
        await self._soft("Waiting for load state", page.wait_for_load_state(state, timeout=timeout))
        return NO_RESULT

    async def _wait_for_function(self, instance: Instance, action: WaitForFunctionAction) -> Any:
        kwargs = {"timeout": self.config.interactive_selector_timeout_ms}
        kwargs.update(playwright_kwargs(action.options, WAIT_FUNCTION_OPTIONS))
        try:
            await instance.page.wait_for_function(action.fn, arg=_single_arg(action.args), **kwargs)
        except PlaywrightTimeoutError as exc:
            raise PipelineTimeout(
                f"Waiting for function failed after {kwargs['timeout']} ms",
                timeout_ms=kwargs["timeout"],
                details={"function": action.fn},
            ) from exc
        return NO_RESULT

    async def _wait_for_dom_update(self, instance: Instance, action: WaitForDomUpdateAction) -> Any:
        timeout = action.timeout if action.timeout is not None else self.config.dom_update_timeout_ms
        await wait_for_network_quiet(self._network(instance), idle_ms=self.config.dom_update_idle_ms, timeout_ms=timeout)
        return NO_RESULT

    # ------------------------------------------------------------------
    # browser

    async def _screenshot(self, instance: Instance, action: ScreenshotAction) -> Any:
        return await instance.page.screenshot(**playwright_kwargs(action.options, SCREENSHOT_OPTIONS))

    async def _pdf(self, instance: Instance, action: PdfAction) -> Any:
        return await instance.page.pdf(**playwright_kwargs(action.options, PDF_OPTIONS))

    async def _set_viewport(self, instance: Instance, action: SetViewportAction) -> Any:
        size = {"width": int(action.viewport["width"]), "height": int(action.viewport["height"])}
        await instance.page.set_viewport_size(size)
        return NO_RESULT

    async def _set_user_agent(self, instance: Instance, action: SetUserAgentAction) -> Any:
        await instance.page.set_extra_http_headers({"User-Agent": action.user_agent})
        return NO_RESULT

    async def _set_cookies(self, instance: Instance, action: SetCookiesAction) -> Any:
        current = instance.url
        cookies = []
        for cookie in action.cookies:
            entry = dict(cookie)
            if "url" not in entry and "domain" not in entry:
                entry["url"] = current
            cookies.append(entry)
        await instance.context.add_cookies(cookies)
        return NO_RESULT

    async def _delete_cookies(self, instance: Instance, action: DeleteCookiesAction) -> Any:
        for cookie in action.cookies:
            if not cookie.get("name"):
                # clear_cookies() without filters would wipe the whole context
                log.warning("Ignoring cookie deletion without a name: %s", cookie)
                continue
            filters = {key: cookie[key] for key in ("name", "domain", "path") if cookie.get(key)}
            await instance.context.clear_cookies(**filters)
        return NO_RESULT

    async def _bring_to_front(self, instance: Instance, action: Any) -> Any:
        await instance.page.bring_to_front()
        return NO_RESULT

    # ------------------------------------------------------------------
    # extraction

    async def _evaluate(self, instance: Instance, action: EvaluateAction) -> Any:
        return await instance.page.evaluate(action.fn, _single_arg(action.args))

    async def _get_body_content(self, instance: Instance, action: Any) -> BodyContent:
        await wait_for_network_quiet(
            self._network(instance),
            idle_ms=self.config.body_idle_ms,
            timeout_ms=self.config.body_idle_timeout_ms,
        )
        await self._settle(self.config.body_settle_ms)
        elements = await self.classifier.classify(instance.page)
        html = await instance.page.evaluate(BODY_HTML_SCRIPT)
        return BodyContent(content=stabilize(html or "", elements), elements=elements)

    async def _get_html(self, instance: Instance, action: GetHtmlAction) -> str:
        element = await self._resolve_read(instance, action.selector)
        return await element.evaluate("(el) => el.outerHTML")

    async def _get_text(self, instance: Instance, action: GetTextAction) -> str:
        element = await self._resolve_read(instance, action.selector)
        return await element.inner_text()

    async def _get_attribute(self, instance: Instance, action: GetAttributeAction) -> Optional[str]:
        element = await self._resolve_read(instance, action.selector)
        return await element.get_attribute(action.attribute)

    async def _get_value(self, instance: Instance, action: GetValueAction) -> Any:
        element = await self._resolve_read(instance, action.selector)
        return await element.evaluate("(el) => el.value")

    async def _get_cookies(self, instance: Instance, action: GetCookiesAction) -> List[Dict[str, Any]]:
        urls = list(action.urls)
        if not urls and instance.url.startswith(("http://", "https://")):
            urls = [instance.url]
        cookies = await instance.context.cookies(urls) if urls else await instance.context.cookies()
        return [dict(cookie) for cookie in cookies]

    async def _get_clickable_elements(self, instance: Instance, action: Any) -> List[Any]:
        return await self.classifier.clickable(instance.page)

    async def _get_writeable_elements(self, instance: Instance, action: Any) -> List[Any]:
        return await self.classifier.writeable(instance.page)
