"""
Protocol-based interfaces for Dependency Injection.
These interfaces define the collaborator contracts the feed pipeline calls
into, so tests and alternative backends can be swapped in.
"""
from typing import Optional, Protocol, runtime_checkable

import aiohttp

from models.webhook import WebhookConfig, WebhookPayload


@runtime_checkable
class IFeedHistoryStore(Protocol):
    """Persisted rendering store used to obtain the previous rendering."""

    def store(self, feed_id: str, rendering: str) -> None:
        ...

    def load(self, feed_id: str) -> Optional[str]:
        """Returns the previous rendering, or None when absent."""
        ...

    def clear(self, feed_id: str) -> None:
        ...


@runtime_checkable
class INotificationSink(Protocol):
    """Delivers a rendering (or its new-items subset) to an endpoint."""

    async def send_webhook(
        self,
        session: aiohttp.ClientSession,
        webhook_config: WebhookConfig,
        payload: WebhookPayload,
    ) -> bool:
        """Returns True on a 2xx delivery. Failures are reported, never retried."""
        ...

