"""
Drill-chain navigation: follows links across documents, one selector per hop,
and yields the value the last hop resolves to.
"""
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import urljoin

import aiohttp
from core.exceptions import FeedException
from core.logger import get_logger
from core.utils import is_absolute_url, looks_like_url
from models.target import DrillStep, FlareSolverrConfig
from parsers.html_parser import Scope, SelectorResolver, mine_url, parse_document
from parsers.normalizer import process_links, process_words
from services.scraper.browser import BrowserSession
from services.scraper.fetcher import DocumentFetcher, TransportChoice, choose_transport

logger = get_logger(__name__)


class _HopFetcher:
    """
    Fetches every hop of one chain run with the same backend.

    The aiohttp session or browser is opened on first use and registered on
    the run's exit stack, so it is released however the run ends.
    """

    def __init__(
        self,
        navigator: "DrillChainNavigator",
        stack: AsyncExitStack,
        transport: TransportChoice,
        session: Optional[aiohttp.ClientSession],
        flaresolverr: Optional[FlareSolverrConfig],
        cookies: Optional[List[Dict[str, Any]]],
    ):
        self.navigator = navigator
        self.stack = stack
        self.transport = transport
        self.session = session
        self.flaresolverr = flaresolverr
        self.cookies = cookies
        self.browser: Optional[BrowserSession] = None

    async def __call__(self, url: str) -> str:
        if self.transport is TransportChoice.BROWSER:
            if self.browser is None:
                self.browser = await self.stack.enter_async_context(
                    self.navigator.browser_factory(cookies=self.cookies)
                )
        elif self.session is None:
            self.session = await self.stack.enter_async_context(
                await self.navigator.fetcher.create_session()
            )

        return await self.navigator.fetcher.fetch_document(
            self.session,
            url,
            self.transport,
            browser=self.browser,
            flaresolverr=self.flaresolverr,
            cookies=self.cookies,
        )


class DrillChainNavigator:
    def __init__(
        self,
        fetcher: Optional[DocumentFetcher] = None,
        resolver: Optional[SelectorResolver] = None,
        browser_factory: Callable[..., BrowserSession] = BrowserSession,
    ):
        self.fetcher = fetcher or DocumentFetcher()
        self.resolver = resolver or SelectorResolver()
        self.browser_factory = browser_factory

    async def resolve_drill_chain(
        self,
        start: Union[str, Scope],
        chain: Sequence[DrillStep],
        use_advanced: bool = False,
        expect_url: bool = False,
        flaresolverr: Optional[FlareSolverrConfig] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        page_url: Optional[str] = None,
    ) -> str:
        """
        Runs ``chain`` starting from a URL or from already-loaded markup.

        ``page_url`` is where already-loaded markup came from; relative hop
        links are joined against it.

        Returns the terminal value, or "" when the chain is empty, a step
        matches nothing, or any fetch fails. Never raises.
        """
        if not chain:
            return ""

        transport = choose_transport(use_advanced, flaresolverr)
        try:
            async with AsyncExitStack() as stack:
                fetch = _HopFetcher(self, stack, transport, session, flaresolverr, cookies)
                return await self._walk(start, list(chain), expect_url, fetch, page_url)
        except FeedException as e:
            logger.warning(f"[DRILL] Chain aborted: {e}")
        except Exception as e:
            logger.error(f"[DRILL] Unexpected error in drill chain: {e}", exc_info=True)
        return ""

    async def _walk(
        self,
        start: Union[str, Scope],
        chain: List[DrillStep],
        expect_url: bool,
        fetch: _HopFetcher,
        page_url: Optional[str] = None,
    ) -> str:
        current_url = page_url
        if isinstance(start, str) and is_absolute_url(start):
            current_url = start.strip()
            document = parse_document(await fetch(current_url))
        else:
            document = parse_document(start)

        for position, step in enumerate(chain[:-1]):
            next_url = self._hop_url(document, step, current_url)
            if not next_url:
                logger.info(f"[DRILL] Step {position} '{step.selector}' matched nothing, aborting chain")
                return ""
            logger.debug(f"[DRILL] Step {position} -> {next_url}")
            document = parse_document(await fetch(next_url))
            current_url = next_url

        return self._terminal_value(document, chain[-1], expect_url)

    def _hop_url(self, document: Scope, step: DrillStep, current_url: Optional[str]) -> str:
        element = self.resolver.select_first(document, step.selector)
        if element is None:
            return ""
        raw = self.resolver.resolve(document, step.selector, step.attribute)
        value = self._url_value(raw, element, step)
        if value and current_url and not is_absolute_url(value):
            value = urljoin(current_url, value)
        return value

    def _terminal_value(self, document: Scope, step: DrillStep, expect_url: bool) -> str:
        element = self.resolver.select_first(document, step.selector)
        if element is None:
            return ""

        as_html = expect_url and not step.attribute and not step.strip_html
        raw = self.resolver.resolve(document, step.selector, step.attribute, as_html=as_html)
        if not expect_url:
            return process_words(raw, remove_html=step.strip_html).strip()
        return self._url_value(raw, element, step)

    @staticmethod
    def _url_value(raw: str, element: Any, step: DrillStep) -> str:
        # Mine before joining so markup never gets glued onto the base URL
        value = process_links(raw, step.strip_html)
        if value and not looks_like_url(value) and not is_absolute_url(value):
            value = mine_url(value) or mine_url(element) or value
        return process_links(value, False, step.is_relative, step.base_url)
