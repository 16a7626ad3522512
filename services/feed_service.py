import asyncio
from typing import Callable, List, Optional

import aiohttp

from core.exceptions import ConfigurationException, FeedException
from core.interfaces import IFeedHistoryStore, INotificationSink
from core.logger import get_logger
from core.performance import get_performance_monitor
from models.feed import FeedRunResult
from models.target import FeedConfig, FlareSolverrConfig
from parsers.rss_parser import count_items
from repositories.feed_repo import FeedHistoryRepository, FeedRepository
from services.components.change_detector import FeedDiff
from services.notification.webhook import WebhookNotifier, build_payload
from services.rss_builder import RSSBuilder
from services.scraper.browser import BrowserSession
from services.scraper.fetcher import DocumentFetcher, TransportChoice, choose_transport, resolve_flaresolverr

logger = get_logger(__name__)


class FeedService:
    """
    Per-feed refresh pipeline: fetch, build, publish, diff, notify.

    Every feed runs in its own aiohttp session; a failing feed never
    affects the others.
    """

    def __init__(
        self,
        fetcher: Optional[DocumentFetcher] = None,
        builder: Optional[RSSBuilder] = None,
        diff: Optional[FeedDiff] = None,
        notifier: Optional[INotificationSink] = None,
        feed_repo: Optional[FeedRepository] = None,
        history: Optional[IFeedHistoryStore] = None,
        browser_factory: Callable[..., BrowserSession] = BrowserSession,
    ):
        self.fetcher = fetcher or DocumentFetcher()
        self.builder = builder or RSSBuilder(fetcher=self.fetcher)
        self.diff = diff or FeedDiff()
        self.notifier = notifier or WebhookNotifier()
        self.feed_repo = feed_repo or FeedRepository()
        self.history = history or FeedHistoryRepository()
        self.browser_factory = browser_factory

    async def run(self, feeds: List[FeedConfig], trigger_type: str = "automatic") -> List[FeedRunResult]:
        """Refreshes all feeds concurrently. Never raises."""
        monitor = get_performance_monitor()
        logger.info(f"[FEED] Refreshing {len(feeds)} feed(s)...")

        results = await asyncio.gather(*(self._run_isolated(feed, trigger_type) for feed in feeds))

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"[FEED] Complete. {succeeded}/{len(results)} feed(s) updated")
        monitor.log_summary()
        monitor.reset()
        return list(results)

    async def _run_isolated(self, feed: FeedConfig, trigger_type: str) -> FeedRunResult:
        monitor = get_performance_monitor()
        try:
            session = await self.fetcher.create_session()
            async with session:
                with monitor.measure("feed_refresh", {"feed_id": feed.feed_id}):
                    return await self.process_feed(session, feed, trigger_type)
        except FeedException as e:
            logger.warning(f"[FEED] {feed.feed_id} not updated this cycle: {e}")
            return FeedRunResult(feed_id=feed.feed_id, success=False, error=str(e))
        except Exception as e:
            logger.error(f"[FEED] {feed.feed_id} failed unexpectedly: {e}", exc_info=True)
            return FeedRunResult(feed_id=feed.feed_id, success=False, error=str(e))

    async def process_feed(
        self,
        session: aiohttp.ClientSession,
        feed: FeedConfig,
        trigger_type: str = "automatic",
    ) -> FeedRunResult:
        """
        One refresh cycle for one feed. Raises FeedException when the feed
        cannot be built; webhook failures only mark the result.
        """
        logger.info(f"[FEED] Building {feed.display_name} ({feed.feed_type})...")
        rendering = await self.build_feed(session, feed)

        path = self.feed_repo.save(feed.feed_id, rendering)
        result = FeedRunResult(
            feed_id=feed.feed_id,
            success=True,
            item_count=count_items(rendering),
            output_path=str(path),
        )

        webhook = feed.webhook
        if webhook is not None and webhook.is_active:
            if webhook.new_items_only:
                previous = self.history.load(feed.feed_id)
                to_send = self.diff.get_new_items_from_rss(rendering, previous)
            else:
                to_send = rendering

            if to_send is None:
                logger.info(f"[FEED] No new items for {feed.feed_id}, webhook skipped")
            else:
                result.new_item_count = count_items(to_send)
                payload = build_payload(feed, webhook, to_send, trigger_type)
                result.notified = await self.notifier.send_webhook(session, webhook, payload)

        self.history.store(feed.feed_id, rendering)
        logger.info(f"[FEED] {feed.feed_id}: {result.item_count} item(s), {result.new_item_count} new")
        return result

    async def build_feed(self, session: aiohttp.ClientSession, feed: FeedConfig) -> str:
        if feed.feed_type == "api":
            if feed.api_mapping is None:
                raise ConfigurationException("API feed has no apiMapping", {"feed_id": feed.feed_id})
            data = await self.fetcher.fetch_json(session, feed.config)
            return self.builder.build_rss_from_api_data(data, feed)

        if feed.article is None:
            raise ConfigurationException("Web feed has no article schema", {"feed_id": feed.feed_id})
        url = feed.config.request_url
        if not url:
            raise ConfigurationException("Web feed has no baseUrl", {"feed_id": feed.feed_id})

        flaresolverr = resolve_flaresolverr(feed.flaresolverr)
        html = await self._fetch_page(session, feed, url, flaresolverr)
        return await self.builder.build_rss(
            html,
            feed.article,
            api_config=feed.config,
            overrides=feed.overrides,
            reverse=feed.reverse,
            strict=feed.strict,
            session=session,
            flaresolverr=flaresolverr,
            page_url=url,
        )

    async def _fetch_page(
        self,
        session: aiohttp.ClientSession,
        feed: FeedConfig,
        url: str,
        flaresolverr: Optional[FlareSolverrConfig],
    ) -> str:
        cookies = [c.model_dump() for c in feed.config.cookies]
        transport = choose_transport(feed.config.advanced, flaresolverr)

        if transport is TransportChoice.BROWSER:
            async with self.browser_factory(cookies=cookies) as browser:
                return await self.fetcher.fetch_document(session, url, transport, browser=browser)

        return await self.fetcher.fetch_document(
            session,
            url,
            transport,
            flaresolverr=flaresolverr,
            cookies=cookies,
            headers=feed.config.headers or None,
        )
