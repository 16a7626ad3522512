"""
Message formatting utilities for webhook notifications.
Provides Discord embed payloads and custom template rendering.
"""
import json
import re
from typing import Any, Dict, List

from core import constants
from core.utils import truncate_text
from models.webhook import WebhookPayload
from parsers.rss_parser import parse_rss_to_dict

TEMPLATE_ITEM_FIELDS = ["title", "description", "link", "author", "pubDate", "category", "guid"]

_TEMPLATE_VAR = re.compile(r"\$\{([^}]+)\}")
_HTML_ENTITY = re.compile(r"&#?\w+;")


def is_discord_webhook(url: str) -> bool:
    return any(host in url for host in constants.DISCORD_WEBHOOK_HOSTS)


def clean_description(text: str) -> str:
    """Collapses whitespace and drops leftover HTML entities and zero-width joiners."""
    text = re.sub(r"\s+", " ", text)
    text = _HTML_ENTITY.sub("", text)
    return text.replace("‌", "").replace("​", "").strip()


def payload_items(payload: WebhookPayload) -> List[Dict[str, Any]]:
    """Items of the payload's data, whether it carries XML or a parsed feed."""
    if isinstance(payload.data, dict):
        return list(payload.data.get("items") or [])
    return parse_rss_to_dict(payload.data).get("items", [])


def _item_variables(item: Dict[str, Any]) -> Dict[str, str]:
    values = {}
    for name in TEMPLATE_ITEM_FIELDS:
        value = item.get(name)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        values[name] = "" if value is None else str(value)
    return values


def render_custom_payload(template: str, payload: WebhookPayload) -> str:
    """
    Substitutes ${...} variables in a user template.

    Supported: feedId, feedName, feedType, itemCount, timestamp, data,
    items[i].<field> for the first 10 items and firstItem.<field>.
    Unknown variables are left as written.
    """
    data = payload.data if isinstance(payload.data, str) else json.dumps(payload.data)
    variables = {
        "feedId": payload.feed_id,
        "feedName": payload.feed_name,
        "feedType": payload.feed_type,
        "itemCount": str(payload.item_count),
        "timestamp": payload.timestamp,
        "data": data,
    }

    items = payload_items(payload)
    for index, item in enumerate(items[:constants.WEBHOOK_TEMPLATE_ITEM_LIMIT]):
        for name, value in _item_variables(item).items():
            variables[f"items[{index}].{name}"] = value
    if items:
        for name, value in _item_variables(items[0]).items():
            variables[f"firstItem.{name}"] = value

    return _TEMPLATE_VAR.sub(lambda m: variables.get(m.group(1), m.group(0)), template)


def _discord_footer(payload: WebhookPayload) -> Dict[str, str]:
    return {"text": f"Feed Type: {payload.feed_type} | Feed ID: {payload.feed_id}"}


def _discord_item_field(item: Dict[str, Any]) -> Dict[str, Any]:
    title = item.get("title") or "Untitled"
    description = item.get("description") or ""

    value = ""
    if item.get("author"):
        value += f"**Author:** {item['author']}\n"
    if item.get("pubDate"):
        value += f"**Published:** {item['pubDate']}\n"
    if item.get("link"):
        value += f"**Link:** [View Item]({item['link']})\n"
    if description:
        budget = constants.DISCORD_DESCRIPTION_BUDGET - len(value)
        value += "\n" + truncate_text(clean_description(description), max(budget, 3))

    return {
        "name": f"📄 {truncate_text(title, constants.DISCORD_MAX_FIELD_NAME_LENGTH)}",
        "value": truncate_text(value, constants.DISCORD_MAX_FIELD_LENGTH) or "No details available",
        "inline": False,
    }


def format_for_discord(payload: WebhookPayload, fmt: str) -> Dict[str, Any]:
    """Builds a Discord webhook body (content plus one embed)."""
    feed_name = payload.feed_name or "RSS Feed"
    item_count = payload.item_count

    if fmt == "xml" and isinstance(payload.data, str):
        xml = payload.data
        if len(xml) > constants.DISCORD_XML_TRUNCATE_LENGTH:
            xml = xml[:constants.DISCORD_XML_TRUNCATE_LENGTH] + "..."
        return {
            "content": f"**{feed_name}** - {item_count} item(s) updated",
            "embeds": [{
                "title": "RSS Feed Update",
                "description": f"```xml\n{xml}\n```",
                "color": constants.DISCORD_EMBED_COLOR,
                "timestamp": payload.timestamp,
                "footer": _discord_footer(payload),
            }],
        }

    items = payload.data.get("items", []) if isinstance(payload.data, dict) else []
    fields = [_discord_item_field(item) for item in items[:constants.DISCORD_MAX_ITEM_FIELDS]]
    if item_count > constants.DISCORD_MAX_ITEM_FIELDS:
        fields.append({
            "name": "📝 Additional Items",
            "value": f"... and {item_count - constants.DISCORD_MAX_ITEM_FIELDS} more item(s)",
            "inline": False,
        })

    return {
        "content": f"**{feed_name}** updated with {item_count} item(s)",
        "embeds": [{
            "title": f"{feed_name} - Feed Update",
            "description": f"{item_count} item(s) in feed",
            "color": constants.DISCORD_EMBED_COLOR,
            "timestamp": payload.timestamp,
            "fields": fields,
            "footer": _discord_footer(payload),
        }],
    }
