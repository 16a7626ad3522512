import random
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional

from playwright.async_api import async_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from core import constants
from core.config import settings
from core.exceptions import BrowserException
from core.logger import get_logger

logger = get_logger(__name__)


class BrowserSession:
    """
    Headless Chromium session scoped to a single drill-chain run.

    Use as an async context manager; the page, context and browser are
    closed on every exit path, including failed launches.

        async with BrowserSession(cookies=cookies) as browser:
            html = await browser.fetch(url)
    """

    def __init__(self, cookies: Optional[List[Dict[str, Any]]] = None, headless: Optional[bool] = None):
        self.cookies = cookies or []
        self.headless = settings.BROWSER_HEADLESS if headless is None else headless
        self.user_agent = random.choice(constants.USER_AGENT_POOL)
        self.viewport = random.choice(constants.VIEWPORT_POOL)
        self._stack: Optional[AsyncExitStack] = None
        self._context = None
        self._page = None
        self._cookies_added = False

    async def __aenter__(self) -> "BrowserSession":
        self._stack = AsyncExitStack()
        try:
            playwright = await self._stack.enter_async_context(async_playwright())
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=constants.BROWSER_LAUNCH_ARGS,
            )
            self._stack.push_async_callback(self._safe_close, "browser", browser)

            self._context = await browser.new_context(
                user_agent=self.user_agent,
                viewport=self.viewport,
                locale="en-US",
                ignore_https_errors=True,
            )
            self._stack.push_async_callback(self._safe_close, "context", self._context)
            await self._context.add_init_script(constants.BROWSER_STEALTH_SCRIPT)

            self._page = await self._context.new_page()
            self._stack.push_async_callback(self._safe_close, "page", self._page)
        except Exception as e:
            await self._stack.aclose()
            self._stack = None
            raise BrowserException("Failed to launch headless browser", {"error": str(e)})

        logger.debug(f"[BROWSER] Session opened (UA: {self.user_agent[:40]}...)")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
            logger.debug("[BROWSER] Session closed")
        return False

    @staticmethod
    async def _safe_close(name: str, resource) -> None:
        try:
            await resource.close()
        except Exception as e:
            logger.warning(f"[BROWSER] Failed to close {name}: {e}")

    async def _add_cookies(self, url: str) -> None:
        # Playwright needs a url or domain per cookie; scope them to the first page visited
        if self._cookies_added or not self.cookies:
            return
        await self._context.add_cookies(
            [{"name": c["name"], "value": c["value"], "url": url} for c in self.cookies]
        )
        self._cookies_added = True

    async def fetch(self, url: str) -> str:
        """
        Navigates the session's page to ``url`` and returns its HTML.

        A navigation or network-idle timeout keeps whatever content loaded.
        """
        if self._page is None:
            raise BrowserException("Browser session is not open", {"url": url})

        try:
            await self._add_cookies(url)
            await self._page.goto(
                url,
                timeout=settings.BROWSER_NAVIGATION_TIMEOUT,
                wait_until="domcontentloaded",
            )
        except PlaywrightTimeoutError:
            logger.warning(f"[BROWSER] Navigation timeout for {url}, using partial content")
        except PlaywrightError as e:
            raise BrowserException(f"Navigation failed for {url}", {"url": url, "error": str(e)})

        try:
            await self._page.wait_for_load_state("networkidle", timeout=settings.BROWSER_NETWORK_IDLE_TIMEOUT)
        except PlaywrightTimeoutError:
            logger.debug(f"[BROWSER] Network did not settle for {url}, proceeding")

        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise BrowserException(f"Could not read page content for {url}", {"url": url, "error": str(e)})
