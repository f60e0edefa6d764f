"""Page watchers reporting navigation and handling unexpected browser events."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from playwright.async_api import BrowserContext, Dialog, Frame, Page
from playwright.async_api import Error as PlaywrightError

from .events import URL_CHANGE, EventBus

log = logging.getLogger(__name__)


def origin_of(url: str) -> Optional[str]:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


class PageWatchdog:
    """Attach Playwright event listeners to one instance's page.

    Main-frame navigations are published as ``url:change`` and the
    configured permissions are granted again for the new origin. Dialogs are
    accepted automatically so they never block a pipeline.
    """

    def __init__(
        self,
        page: Page,
        *,
        session_id: str,
        bus: EventBus,
        context: Optional[BrowserContext] = None,
        permissions: Sequence[str] = (),
        dismiss_dialogs: bool = False,
    ) -> None:
        self.page = page
        self.session_id = session_id
        self.bus = bus
        self.context = context
        self.permissions = list(permissions)
        self.dismiss_dialogs = dismiss_dialogs
        self.incidents: List[Dict[str, Any]] = []
        self._listeners: List[Tuple[str, Callable[..., Any]]] = []
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._register_async("framenavigated", self._handle_navigation)
        self._register_async("dialog", self._handle_dialog)
        self._register("pageerror", self._handle_page_error)
        self._register("crash", self._handle_crash)

    def stop(self) -> None:
        if not self._started:
            return
        for event, handler in self._listeners:
            try:
                self.page.off(event, handler)
            except Exception as exc:
                log.debug("Failed to detach %s listener: %s", event, exc)
        self._listeners.clear()
        self._started = False

    def snapshot(self) -> Dict[str, Any]:
        return {"incidents": [dict(item) for item in self.incidents]} if self.incidents else {}

    def _record(self, kind: str, message: str, **extra: Any) -> None:
        self.incidents.append({"kind": kind, "message": message, "at": time.time(), **extra})

    async def grant_permissions(self, url: str) -> None:
        origin = origin_of(url)
        if self.context is None or origin is None or not self.permissions:
            return
        try:
            await self.context.grant_permissions(self.permissions, origin=origin)
        except PlaywrightError as exc:
            log.debug("Could not grant %s for %s: %s", self.permissions, origin, exc)

    def _register(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.on(event, handler)
        self._listeners.append((event, handler))

    def _register_async(self, event: str, handler: Callable[..., Any]) -> None:
        async def _wrapper(*args: Any, **kwargs: Any) -> None:
            await handler(*args, **kwargs)

        self.page.on(event, _wrapper)
        self._listeners.append((event, _wrapper))

    async def _handle_navigation(self, frame: Frame) -> None:
        if frame.parent_frame is not None:
            return
        url = frame.url
        log.info("Instance %s navigated to %s", self.session_id, url)
        self.bus.emit(URL_CHANGE, {"session_id": self.session_id, "url": url})
        await self.grant_permissions(url)

    async def _handle_dialog(self, dialog: Dialog) -> None:
        # beforeunload must be accepted or the navigation that raised it hangs
        dismiss = self.dismiss_dialogs and dialog.type != "beforeunload"
        try:
            await (dialog.dismiss() if dismiss else dialog.accept())
        except PlaywrightError as exc:
            log.warning("Could not close %s dialog on %s: %s", dialog.type, self.session_id, exc)
            self._record("dialog", dialog.message, dialog_type=dialog.type, handled=False)
            return
        self._record("dialog", dialog.message, dialog_type=dialog.type, handled=True, dismissed=dismiss)

    def _handle_page_error(self, error: PlaywrightError) -> None:
        message = str(error)
        log.debug("Page error on %s: %s", self.session_id, message)
        self._record("pageerror", message)

    def _handle_crash(self, *_: Any) -> None:
        log.error("Page of instance %s crashed", self.session_id)
        self._record("crash", "Page crashed")
