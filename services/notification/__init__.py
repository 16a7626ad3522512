"""
Webhook notification sink.
"""

from services.notification import formatters
from services.notification.webhook import WebhookNotifier

__all__ = ["formatters", "WebhookNotifier"]
