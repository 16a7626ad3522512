"""
Reads rendered RSS 2.0 documents back into identities and plain dicts.
Used by the diff engine and by JSON webhook payloads.
"""
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree as ET

from core import constants
from core.exceptions import ParsingException
from core.logger import get_logger

logger = get_logger(__name__)

for _prefix, _uri in constants.RSS_NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)


def parse_feed(xml: str) -> ET.Element:
    """Parses a rendering; raises ParsingException when it is not an RSS document."""
    if not xml or not xml.strip():
        raise ParsingException("Empty feed document")
    try:
        root = ET.fromstring(xml.strip().encode("utf-8"))
    except UnicodeError as e:
        raise ParsingException("Feed is not encodable as UTF-8", {"error": str(e)})
    except ET.ParseError as e:
        raise ParsingException("Malformed feed XML", {"error": str(e)})
    if root.find("channel") is None:
        raise ParsingException("Feed has no <channel> element", {"root": root.tag})
    return root


def _text(element: Optional[ET.Element], path: str) -> str:
    if element is None:
        return ""
    child = element.find(path)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def item_identity(item: ET.Element) -> str:
    """guid when present, else link."""
    return _text(item, "guid") or _text(item, "link")


def identities(xml: str) -> List[str]:
    """Identity of every item in document order (unidentifiable items skipped)."""
    root = parse_feed(xml)
    result = []
    for item in root.find("channel").findall("item"):
        identity = item_identity(item)
        if identity:
            result.append(identity)
    return result


def item_to_dict(item: ET.Element) -> Dict[str, Any]:
    enclosure = item.find("enclosure")
    author = _text(item, "author") or _text(item, f"{{{constants.RSS_NAMESPACES['dc']}}}creator")
    return {
        "title": _text(item, "title"),
        "description": _text(item, "description"),
        "link": _text(item, "link"),
        "pubDate": _text(item, "pubDate"),
        "guid": _text(item, "guid"),
        "author": author,
        "category": [c.text.strip() for c in item.findall("category") if c.text],
        "enclosure": (
            {
                "url": enclosure.get("url"),
                "type": enclosure.get("type"),
                "length": enclosure.get("length"),
            }
            if enclosure is not None
            else None
        ),
    }


def parse_rss_to_dict(xml: str) -> Dict[str, Any]:
    """
    Channel metadata plus items as plain dicts.
    Malformed input yields {"items": []} instead of raising.
    """
    try:
        root = parse_feed(xml)
    except ParsingException as e:
        logger.error(f"[RSS_PARSER] Error parsing RSS XML to JSON: {e}")
        return {"items": []}

    channel = root.find("channel")
    return {
        "title": _text(channel, "title"),
        "description": _text(channel, "description"),
        "link": _text(channel, "link"),
        "lastBuildDate": _text(channel, "lastBuildDate"),
        "pubDate": _text(channel, "pubDate"),
        "language": _text(channel, "language"),
        "generator": _text(channel, "generator"),
        "items": [item_to_dict(item) for item in channel.findall("item")],
    }


def count_items(xml: str) -> int:
    try:
        return len(parse_feed(xml).find("channel").findall("item"))
    except ParsingException as e:
        logger.error(f"[RSS_PARSER] Error counting items in RSS XML: {e}")
        return 0
