import asyncio
import json
from typing import Any, Dict, Optional, Tuple

import aiohttp

from core.config import settings
from core.logger import get_logger
from core.utils import get_utc_now, truncate_text
from models.target import FeedConfig
from models.webhook import WebhookConfig, WebhookMetadata, WebhookPayload
from parsers.rss_parser import count_items, parse_rss_to_dict
from services.notification.base import NotificationChannel
from services.notification.formatters import format_for_discord, is_discord_webhook, render_custom_payload

logger = get_logger(__name__)


def _metadata(feed_config: FeedConfig) -> WebhookMetadata:
    return WebhookMetadata(
        last_build_date=get_utc_now().isoformat(),
        feed_url=f"{settings.FEEDS_DIR}/{feed_config.feed_id}.xml",
        site_url=feed_config.config.base_url,
    )


def create_webhook_payload(
    feed_config: FeedConfig,
    rss_xml: str,
    trigger_type: str = "automatic",
    item_count: Optional[int] = None,
) -> WebhookPayload:
    """Payload carrying the rendering itself."""
    return WebhookPayload(
        feed_id=feed_config.feed_id,
        feed_name=feed_config.display_name,
        feed_type=feed_config.feed_type,
        timestamp=get_utc_now().isoformat(),
        trigger_type=trigger_type,
        item_count=item_count if item_count is not None else count_items(rss_xml),
        data=rss_xml,
        metadata=_metadata(feed_config),
    )


def create_json_webhook_payload(
    feed_config: FeedConfig,
    rss_xml: str,
    trigger_type: str = "automatic",
) -> WebhookPayload:
    """Payload carrying the rendering parsed into channel fields plus items."""
    parsed = parse_rss_to_dict(rss_xml)
    return WebhookPayload(
        feed_id=feed_config.feed_id,
        feed_name=feed_config.display_name,
        feed_type=feed_config.feed_type,
        timestamp=get_utc_now().isoformat(),
        trigger_type=trigger_type,
        item_count=len(parsed.get("items", [])),
        data=parsed,
        metadata=_metadata(feed_config),
    )


def build_payload(
    feed_config: FeedConfig,
    webhook_config: WebhookConfig,
    rss_xml: str,
    trigger_type: str = "automatic",
) -> WebhookPayload:
    if webhook_config.format == "json":
        return create_json_webhook_payload(feed_config, rss_xml, trigger_type)
    return create_webhook_payload(feed_config, rss_xml, trigger_type)


class WebhookNotifier(NotificationChannel):
    """Posts feed updates to a user-configured webhook URL."""

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.WEBHOOK_TIMEOUT)

    @property
    def channel_name(self) -> str:
        return "webhook"

    @staticmethod
    def prepare_request(webhook_config: WebhookConfig, payload: WebhookPayload) -> Tuple[Dict[str, str], Dict[str, Any]]:
        """
        Chooses the body and Content-Type for a delivery.

        Precedence: custom template, then Discord formatting, then the
        plain xml or json format.
        """
        headers = dict(webhook_config.headers)

        if webhook_config.custom_payload:
            rendered = render_custom_payload(webhook_config.custom_payload, payload)
            try:
                body = json.loads(rendered)
            except ValueError:
                headers["Content-Type"] = "text/plain"
                return headers, {"data": rendered.encode("utf-8")}
            headers["Content-Type"] = "application/json"
            return headers, {"data": json.dumps(body).encode("utf-8")}

        if is_discord_webhook(webhook_config.url):
            headers["Content-Type"] = "application/json"
            body = format_for_discord(payload, webhook_config.format)
            return headers, {"data": json.dumps(body).encode("utf-8")}

        if webhook_config.format == "xml":
            data = payload.data if isinstance(payload.data, str) else json.dumps(payload.data)
            headers["Content-Type"] = "application/xml"
            return headers, {"data": data.encode("utf-8")}

        headers["Content-Type"] = "application/json"
        return headers, {"data": json.dumps(payload.to_wire()).encode("utf-8")}

    async def send_webhook(
        self,
        session: aiohttp.ClientSession,
        webhook_config: WebhookConfig,
        payload: WebhookPayload,
    ) -> bool:
        if not self.is_enabled(webhook_config):
            return False

        headers, body = self.prepare_request(webhook_config, payload)
        try:
            async with session.post(webhook_config.url, headers=headers, timeout=self.timeout, **body) as resp:
                if 200 <= resp.status < 300:
                    logger.info(f"[WEBHOOK] Sent to {webhook_config.url} for feed {payload.feed_id}")
                    return True
                text = await resp.text()
                logger.warning(
                    f"[WEBHOOK] Failed with status {resp.status} for feed {payload.feed_id}. "
                    f"Response body: {truncate_text(text, 500)}"
                )
                return False
        except asyncio.TimeoutError:
            logger.error(f"[WEBHOOK] No response from {webhook_config.url} for feed {payload.feed_id}")
        except aiohttp.ClientError as e:
            logger.error(f"[WEBHOOK] Error sending webhook for feed {payload.feed_id}: {e}")
        return False
