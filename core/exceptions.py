"""
Custom exception hierarchy for mkfd.
Provides specific exceptions for better error handling and debugging.
"""


class FeedException(Exception):
    """Base exception for all feed-related errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# =============================================================================
# Scraper Exceptions
# =============================================================================


class ScraperException(FeedException):
    """Base exception for scraping-related errors."""

    pass


class NetworkException(ScraperException):
    """Exception for network/HTTP errors."""

    pass


class ResponseTooLargeException(NetworkException):
    """Exception when a response body exceeds the size budget."""

    pass


class AntiBotException(ScraperException):
    """Exception for anti-bot proxy failures (bad status or malformed reply)."""

    pass


class BrowserException(ScraperException):
    """Exception for headless browser launch or navigation errors."""

    pass


class ParsingException(ScraperException):
    """Exception for HTML/XML/JSON parsing errors."""

    pass


# =============================================================================
# Storage Exceptions
# =============================================================================


class StorageException(FeedException):
    """Exception for feed rendering/history storage errors."""

    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationException(FeedException):
    """Exception for configuration errors."""

    pass
