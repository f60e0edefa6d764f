"""Browser instances, their action history and the registry that owns them."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from actionkit.dsl.models import ActionBase

from .config import RunConfig, ensure_log_directory, load_config
from .errors import InstanceNotFound
from .events import EventBus
from .options import playwright_kwargs
from .page_stability import NetworkTracker
from .structured_logging import StructuredLogger, prepare_events_path
from .watchdogs import PageWatchdog

log = logging.getLogger(__name__)

LAUNCH_OPTION_NAMES = ("headless", "args", "executable_path", "slow_mo", "channel", "timeout", "proxy", "devtools")

Launched = Tuple[Browser, BrowserContext, Page]
Launcher = Callable[[Dict[str, Any]], Awaitable[Launched]]


class PipelineHistory:
    """Append-only record of the actions an instance executed successfully."""

    def __init__(self) -> None:
        self._actions: List[ActionBase] = []

    def append(self, action: ActionBase) -> None:
        self._actions.append(action)

    def snapshot(self) -> Tuple[ActionBase, ...]:
        return tuple(self._actions)

    def clear(self) -> None:
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[ActionBase]:
        return iter(tuple(self._actions))


@dataclass
class Instance:
    instance_id: str
    browser: Browser
    context: BrowserContext
    page: Page
    launch_options: Dict[str, Any] = field(default_factory=dict)
    categories: Dict[str, Any] = field(default_factory=dict)
    history: PipelineHistory = field(default_factory=PipelineHistory)
    network: Optional[NetworkTracker] = None
    watchdog: Optional[PageWatchdog] = None
    event_logger: Optional[StructuredLogger] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: float = field(default_factory=time.time)

    @property
    def url(self) -> str:
        try:
            return self.page.url
        except Exception as exc:
            log.debug("Unable to read url of %s: %s", self.instance_id, exc)
            return ""

    def describe(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "instance_id": self.instance_id,
            "url": self.url,
            "history_length": len(self.history),
            "created_at": self.created_at,
        }
        if self.categories:
            data["categories"] = dict(self.categories)
        if self.watchdog is not None:
            data.update(self.watchdog.snapshot())
        return data


class PlaywrightLauncher:
    """Launch one Chromium browser per instance from a shared Playwright driver."""

    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._lock = asyncio.Lock()

    async def __call__(self, launch_options: Dict[str, Any]) -> Launched:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
        options: Dict[str, Any] = {"headless": self.config.headless, "args": list(self.config.launch_args)}
        options.update(playwright_kwargs(launch_options, LAUNCH_OPTION_NAMES))
        browser = await self._playwright.chromium.launch(**options)
        try:
            context = await browser.new_context()
            page = await context.new_page()
        except Exception:
            await browser.close()
            raise
        return browser, context, page

    async def stop(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        finally:
            self._playwright = None


class InstanceRegistry:
    """Owns every live instance and guards its bookkeeping with one lock."""

    def __init__(
        self,
        *,
        config: Optional[RunConfig] = None,
        bus: Optional[EventBus] = None,
        launcher: Optional[Launcher] = None,
    ) -> None:
        self.config = config or load_config()
        self.bus = bus or EventBus()
        self._launcher = launcher or PlaywrightLauncher(self.config)
        self._instances: Dict[str, Instance] = {}
        self._pending: Dict[str, "asyncio.Future[Instance]"] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        instance_id: Optional[str] = None,
        *,
        launch_options: Optional[Dict[str, Any]] = None,
        categories: Optional[Dict[str, Any]] = None,
    ) -> Instance:
        """Launch and register an instance; an id already live or launching is reused.

        The registry lock only covers the bookkeeping, so lookups and removals
        of other instances proceed while the browser starts.
        """

        async with self._lock:
            if instance_id and instance_id in self._instances:
                return self._instances[instance_id]
            pending = self._pending.get(instance_id) if instance_id else None
            if pending is None:
                instance_id = instance_id or str(uuid.uuid4())
                pending = asyncio.get_running_loop().create_future()
                self._pending[instance_id] = pending
                launching = True
            else:
                launching = False
        if not launching:
            return await asyncio.shield(pending)

        try:
            instance = await self._launch(instance_id, dict(launch_options or {}), dict(categories or {}))
            async with self._lock:
                self._instances[instance_id] = instance
                self._pending.pop(instance_id, None)
        except BaseException as exc:
            self._pending.pop(instance_id, None)
            if isinstance(exc, Exception):
                pending.set_exception(exc)
                # Retrieved here so an unawaited failure is not reported twice.
                pending.exception()
            else:
                pending.cancel()
            raise
        pending.set_result(instance)
        log.info("Instance %s launched", instance_id)
        return instance

    async def _launch(self, instance_id: str, options: Dict[str, Any], categories: Dict[str, Any]) -> Instance:
        browser, context, page = await self._launcher(options)
        instance = Instance(
            instance_id=instance_id,
            browser=browser,
            context=context,
            page=page,
            launch_options=options,
            categories=categories,
        )
        try:
            self._attach(instance)
        except Exception as exc:
            log.warning("Setting up instance %s failed, closing its browser: %s", instance_id, exc)
            await self._close(instance)
            raise
        return instance

    def _attach(self, instance: Instance) -> None:
        if self.config.event_log:
            events_path = prepare_events_path(ensure_log_directory(instance.instance_id, self.config))
            instance.event_logger = StructuredLogger(instance.instance_id, events_path)
            instance.event_logger.attach(self.bus)
        instance.network = NetworkTracker(instance.page)
        instance.network.start()
        instance.watchdog = PageWatchdog(
            instance.page,
            session_id=instance.instance_id,
            bus=self.bus,
            context=instance.context,
            permissions=self.config.permissions,
        )
        instance.watchdog.start()

    async def get(self, instance_id: str) -> Optional[Instance]:
        async with self._lock:
            return self._instances.get(instance_id)

    async def require(self, instance_id: str) -> Instance:
        instance = await self.get(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id, available=self.ids())
        return instance

    def ids(self) -> List[str]:
        return list(self._instances)

    def __contains__(self, instance_id: str) -> bool:
        return instance_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    async def delete(self, instance_id: str) -> bool:
        async with self._lock:
            instance = self._instances.pop(instance_id, None)
        if instance is None:
            return False
        await self._close(instance)
        log.info("Instance %s closed", instance_id)
        return True

    async def close_all(self) -> None:
        async with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for instance in instances:
            await self._close(instance)
        if isinstance(self._launcher, PlaywrightLauncher):
            await self._launcher.stop()

    async def _close(self, instance: Instance) -> None:
        if instance.watchdog is not None:
            instance.watchdog.stop()
        if instance.network is not None:
            instance.network.stop()
        if instance.event_logger is not None:
            instance.event_logger.close()
        instance.history.clear()
        try:
            await instance.browser.close()
        except Exception as exc:
            log.warning("Closing browser of instance %s failed: %s", instance.instance_id, exc)
