import argparse
import asyncio
import signal
import sys
from typing import Optional

# 1. Setup Logging First (to capture config errors)
from core.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

# 2. Load Config
try:
    from core.config import settings
except Exception as e:
    logger.critical(f"Failed to load configuration: {e}", exc_info=True)
    sys.exit(1)

from repositories.feed_repo import FeedConfigRepository
from services.feed_service import FeedService
from services.scraper.suggester import SelectorSuggester


class FeedUpdater:
    """Scheduler: refreshes every configured feed once per interval."""

    def __init__(self, feed_id: Optional[str] = None, interval: Optional[int] = None):
        self.service = FeedService()
        self.config_repo = FeedConfigRepository()
        self.feed_id = feed_id
        self.interval = interval or settings.UPDATE_INTERVAL
        self.running = True
        self._sleep_task: Optional[asyncio.Task] = None

    def validate_startup(self) -> bool:
        """Validate configuration before starting"""
        logger.info("=" * 60)
        logger.info("mkfd feed updater - Starting Up")
        logger.info("=" * 60)

        logger.info(f"Interval: {self.interval}s")
        logger.info(f"Feed configs: {settings.FEED_CONFIG_DIR}")
        logger.info(f"Output: {settings.FEEDS_DIR}")
        logger.info(f"Log Level: {settings.LOG_LEVEL}")

        validation_errors = settings.validate_all()
        for msg in validation_errors:
            if "❌" in msg:
                logger.critical(msg)
            else:
                logger.warning(msg)

        if any("❌" in msg for msg in validation_errors):
            logger.critical("Configuration validation failed")
            return False

        logger.info("[OK] Startup validation passed")
        return True

    def load_feeds(self):
        feeds = self.config_repo.get_all_feeds()
        if self.feed_id:
            feeds = [f for f in feeds if f.feed_id == self.feed_id]
            if not feeds:
                logger.warning(f"Feed '{self.feed_id}' not found in {settings.FEED_CONFIG_DIR}")
        return feeds

    async def tick(self):
        # Definitions are re-read every tick so edits apply without a restart
        feeds = self.load_feeds()
        if not feeds:
            logger.warning("No feeds configured, nothing to do")
            return []
        return await self.service.run(feeds)

    async def start(self):
        if not self.validate_startup():
            logger.critical("Startup validation failed. Exiting...")
            sys.exit(1)

        try:
            loop = asyncio.get_running_loop()
            if sys.platform != "win32":
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, self.stop)
            else:
                signal.signal(signal.SIGINT, lambda s, f: self.stop())
                signal.signal(signal.SIGTERM, lambda s, f: self.stop())
        except Exception as e:
            logger.warning(f"Could not set up signal handlers: {e}")

        logger.info("Updater started. Press Ctrl+C to stop.")
        logger.info("=" * 60)

        while self.running:
            try:
                await self.tick()
            except Exception as e:
                # FeedService.run isolates feeds; this only guards the scheduler itself
                logger.critical(f"Unexpected error in scheduler tick: {e}", exc_info=True)

            if self.running:
                logger.info(f"Sleeping for {self.interval}s...")
                self._sleep_task = asyncio.ensure_future(asyncio.sleep(self.interval))
                try:
                    await self._sleep_task
                except asyncio.CancelledError:
                    logger.info("Sleep cancelled")
                finally:
                    self._sleep_task = None

        logger.info("Updater stopped cleanly")

    def stop(self):
        if self.running:
            logger.info("=" * 60)
            logger.info("Stopping updater...")
            logger.info("=" * 60)
            self.running = False
            if self._sleep_task is not None:
                self._sleep_task.cancel()


async def suggest(url: str) -> str:
    """Suggested ArticleSchema for `url` as JSON, in the same shape feed definitions use."""
    schema = await SelectorSuggester().suggest_selectors(url)
    return schema.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def cli():
    parser = argparse.ArgumentParser(description="mkfd feed updater")
    parser.add_argument("--once", action="store_true", help="Run a single refresh and exit")
    parser.add_argument("--feed", type=str, help="Only refresh the feed with this id")
    parser.add_argument("--interval", type=int, help="Override UPDATE_INTERVAL (seconds)")
    parser.add_argument("--suggest", type=str, metavar="URL", help="Print suggested selectors for a listing page and exit")
    args = parser.parse_args()

    if args.suggest:
        try:
            print(asyncio.run(suggest(args.suggest)))
        except Exception as e:
            logger.error(f"Suggestion failed: {e}")
            sys.exit(1)
        sys.exit(0)

    updater = FeedUpdater(feed_id=args.feed, interval=args.interval)
    exit_code = 0

    if args.once:
        logger.info("Running in --once mode")
        try:
            results = asyncio.run(updater.tick())
            failed = [r for r in results if not r.success]
            if failed:
                logger.warning(f"{len(failed)} feed(s) failed: {', '.join(r.feed_id for r in failed)}")
                exit_code = 1
            else:
                logger.info("Run completed successfully")
        except Exception as e:
            logger.critical(f"Run failed: {e}", exc_info=True)
            exit_code = 1
    else:
        try:
            asyncio.run(updater.start())
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        except Exception as e:
            logger.critical(f"Fatal error: {e}", exc_info=True)
            exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
