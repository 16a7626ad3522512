import json
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from core.config import settings
from core.exceptions import StorageException
from core.logger import get_logger
from core.utils import safe_filename
from models.target import FeedConfig

logger = get_logger(__name__)


class _RenderingStore:
    """One ``<feed_id>.xml`` file per feed under a base directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def path_for(self, feed_id: str) -> Path:
        return self.base_dir / f"{safe_filename(feed_id)}.xml"

    def _write(self, feed_id: str, rendering: str) -> Path:
        path = self.path_for(feed_id)
        tmp = path.with_suffix(".xml.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(rendering, encoding="utf-8")
            tmp.replace(path)
        except (OSError, UnicodeError) as e:
            if tmp.exists():
                tmp.unlink()
            raise StorageException(f"Failed to write {path}", {"feed_id": feed_id, "error": str(e)})
        return path

    def _read(self, feed_id: str) -> Optional[str]:
        path = self.path_for(feed_id)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as e:
            logger.warning(f"[HISTORY] Could not read {path}: {e}")
            return None


class FeedRepository(_RenderingStore):
    """Published renderings, served to feed readers."""

    def __init__(self, base_dir: Union[str, Path, None] = None):
        super().__init__(base_dir or settings.FEEDS_DIR)

    def save(self, feed_id: str, rendering: str) -> Path:
        path = self._write(feed_id, rendering)
        logger.debug(f"[FEED] Published {feed_id} -> {path}")
        return path

    def load(self, feed_id: str) -> Optional[str]:
        return self._read(feed_id)


class FeedHistoryRepository(_RenderingStore):
    """
    Previous renderings used for diffing.
    A missing or unreadable entry reads as absent.
    """

    def __init__(self, base_dir: Union[str, Path, None] = None):
        super().__init__(base_dir or settings.FEED_HISTORY_DIR)

    def store(self, feed_id: str, rendering: str) -> None:
        self._write(feed_id, rendering)
        logger.debug(f"[HISTORY] Stored rendering for {feed_id}")

    def load(self, feed_id: str) -> Optional[str]:
        return self._read(feed_id)

    def clear(self, feed_id: str) -> None:
        path = self.path_for(feed_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageException(f"Failed to clear history for {feed_id}", {"error": str(e)})


class FeedConfigRepository:
    """
    Loads feed definitions from ``*.json`` files.

    A file may hold one feed object or a list of them. Invalid entries are
    logged and skipped.
    """

    def __init__(self, config_dir: Union[str, Path, None] = None):
        self.config_dir = Path(config_dir or settings.FEED_CONFIG_DIR)

    def get_all_feeds(self) -> List[FeedConfig]:
        if not self.config_dir.is_dir():
            logger.error(f"[FEED] Feed config directory not found at {self.config_dir}")
            return []

        feeds = []
        for path in sorted(self.config_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"[FEED] Failed to load {path.name}: {e}")
                continue

            for entry in data if isinstance(data, list) else [data]:
                try:
                    feeds.append(FeedConfig.model_validate(entry))
                except ValidationError as e:
                    feed_id = entry.get("feedId", "unknown") if isinstance(entry, dict) else "unknown"
                    logger.error(f"[FEED] Invalid feed configuration in {path.name}: {feed_id} - {e}")

        logger.info(f"[FEED] Loaded {len(feeds)} feed(s) from {self.config_dir}")
        return feeds

    def get_feed_by_id(self, feed_id: str) -> Optional[FeedConfig]:
        for feed in self.get_all_feeds():
            if feed.feed_id == feed_id:
                return feed
        return None
