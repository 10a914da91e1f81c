"""
Playwright Rendering Surface

Hosts the CDSC result form in a Chromium page and implements the
fire-and-forget script channel the bridge expects:
    outbound: page.evaluate(script) in a background task
    inbound:  window.ipoCheckerPostMessage(json) -> bridge.handle_message

Example:
    bridge = BrowserBridge()
    async with PlaywrightSurface(bridge, url=config.IPO_RESULT_URL) as surface:
        bridge.attach(surface)
        ...
"""

import asyncio
import logging
import random
from typing import Optional, Set

from playwright.async_api import async_playwright, Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from ipo_checker.core.errors import PageLoadError
from .bridge import BrowserBridge
from .scripts import BRIDGE_BINDING, BrowserScript

logger = logging.getLogger(__name__)


class PlaywrightSurface:
    """Chromium page wired to a BrowserBridge."""

    def __init__(
        self,
        bridge: BrowserBridge,
        url: str,
        headless: bool = True,
        user_agent: Optional[str] = None,
        navigation_timeout_ms: int = 60000,
        user_agents: Optional[list] = None,
        max_load_attempts: int = 3,
    ):
        self.bridge = bridge
        self.url = url
        self.headless = headless
        self.user_agent = user_agent or (random.choice(user_agents) if user_agents else None)
        self.user_agents = list(user_agents or [])
        self.navigation_timeout_ms = navigation_timeout_ms
        self.max_load_attempts = max(1, max_load_attempts)

        self._playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self) -> "PlaywrightSurface":
        """
        Launch the browser and open the result form.

        A failed load is retried in a fresh context with the next user agent,
        up to `max_load_attempts` times.

        Raises:
            PageLoadError: every attempt failed
        """
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=self.headless)

        last_error = None
        for attempt in range(1, self.max_load_attempts + 1):
            user_agent = self._user_agent_for(attempt)
            try:
                await self._open_page(user_agent)
                logger.info(f"[Surface] Result page loaded (attempt {attempt}/{self.max_load_attempts})")
                self.user_agent = user_agent
                return self
            except PlaywrightError as e:
                last_error = str(e).splitlines()[0] if str(e) else repr(e)
                logger.warning(
                    f"[Surface] Load attempt {attempt}/{self.max_load_attempts} failed "
                    f"({user_agent or 'default user agent'}): {last_error}"
                )
                await self._close_context()

        await self.close()
        raise PageLoadError(self.url, self.max_load_attempts, last_error)

    def _user_agent_for(self, attempt: int) -> Optional[str]:
        """The configured agent first, then the rest of the rotation in order."""
        candidates = [self.user_agent] if self.user_agent else []
        candidates += [ua for ua in self.user_agents if ua != self.user_agent]
        if not candidates:
            return None
        return candidates[(attempt - 1) % len(candidates)]

    async def _open_page(self, user_agent: Optional[str]) -> None:
        context_options = {"viewport": {"width": 1280, "height": 900}}
        if user_agent:
            context_options["user_agent"] = user_agent
        self.context = await self.browser.new_context(**context_options)

        self.page = await self.context.new_page()
        self.page.set_default_navigation_timeout(self.navigation_timeout_ms)
        await self.page.expose_function(BRIDGE_BINDING, self._relay)

        logger.info(f"[Surface] Opening {self.url}")
        await self.page.goto(self.url, wait_until="networkidle")

    async def _close_context(self) -> None:
        if self.context:
            try:
                await self.context.close()
            except PlaywrightError as e:
                logger.debug(f"[Surface] Context close failed: {e}")
        self.page = self.context = None

    def _relay(self, raw: str) -> None:
        self.bridge.handle_message(raw)

    async def inject(self, script: BrowserScript) -> None:
        """Start evaluating `script` in the page; does not wait for it."""
        if self.page is None:
            raise RuntimeError("Surface not started")
        task = asyncio.create_task(self._evaluate(script))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _evaluate(self, script: BrowserScript) -> None:
        try:
            await self.page.evaluate(script.source)
        except PlaywrightError as e:
            logger.warning(f"[Surface] {script.kind.value} script failed ({script.identifier or '-'}): {e}")

    async def screenshot(self, path: str) -> None:
        await self.page.screenshot(path=path, full_page=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self._playwright:
            await self._playwright.stop()
        self.page = self.context = self.browser = self._playwright = None
        logger.info("[Surface] Browser closed")

    async def __aenter__(self) -> "PlaywrightSurface":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
