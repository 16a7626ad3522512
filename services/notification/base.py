"""
Notification System - Strategy Pattern Implementation

This module defines the abstract interface for notification channels.
"""
from abc import ABC, abstractmethod

import aiohttp

from models.webhook import WebhookConfig, WebhookPayload


class NotificationChannel(ABC):
    """
    Abstract base class for notification channels (Strategy Pattern).

    Usage:
        class SlackChannel(NotificationChannel):
            async def send_webhook(self, session, webhook_config, payload):
                # Slack-specific implementation
                pass
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Returns the name of this notification channel (e.g., 'webhook')."""
        pass

    @abstractmethod
    async def send_webhook(
        self,
        session: aiohttp.ClientSession,
        webhook_config: WebhookConfig,
        payload: WebhookPayload,
    ) -> bool:
        """
        Deliver a payload through this channel.

        Args:
            session: aiohttp client session
            webhook_config: Endpoint, format and headers
            payload: Feed rendering (or its new-items subset) plus metadata

        Returns:
            True on a 2xx response, False otherwise. Never retried.
        """
        pass

    def is_enabled(self, webhook_config: WebhookConfig) -> bool:
        return webhook_config.is_active
