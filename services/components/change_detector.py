"""
FeedDiff component for detecting newly-appeared feed items.
Compares two renderings of the same feed by item identity (guid, else link).
"""
from typing import Optional
from xml.etree import ElementTree as ET

from core.exceptions import ParsingException
from core.logger import get_logger
from parsers.rss_parser import identities, item_identity, parse_feed

logger = get_logger(__name__)


def _serialize(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body


class FeedDiff:
    """
    Detects which items of a fresh rendering were not in the previous one.
    """

    def get_new_items_from_rss(self, new_rendering: str, previous_rendering: Optional[str] = None) -> Optional[str]:
        """
        Returns a rendering holding only new items, or None when nothing is new.

        First run (no previous rendering) and unreadable input both count as
        "everything is new", so the new rendering comes back unchanged.
        Items without a guid or link cannot be matched and are dropped.
        """
        if not previous_rendering:
            return new_rendering

        try:
            old_ids = set(identities(previous_rendering))
            root = parse_feed(new_rendering)
        except ParsingException as e:
            logger.error(f"[DIFF] Error comparing RSS feeds, treating all items as new: {e}")
            return new_rendering

        channel = root.find("channel")
        items = channel.findall("item")
        kept = 0
        for item in items:
            identity = item_identity(item)
            if identity and identity not in old_ids:
                kept += 1
                continue
            channel.remove(item)

        if kept == 0:
            logger.debug(f"[DIFF] No new items ({len(items)} unchanged)")
            return None

        logger.info(f"[DIFF] {kept} new item(s) out of {len(items)}")
        return _serialize(root)

    def has_changes(self, new_rendering: str, previous_rendering: Optional[str] = None) -> bool:
        return self.get_new_items_from_rss(new_rendering, previous_rendering) is not None


_default_diff = FeedDiff()


def get_new_items_from_rss(new_rendering: str, previous_rendering: Optional[str] = None) -> Optional[str]:
    return _default_diff.get_new_items_from_rss(new_rendering, previous_rendering)
