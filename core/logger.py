import hashlib
import json
import logging
import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

import pytz
import requests

from core import constants
from core.config import settings


def _resolve_timezone():
    try:
        return pytz.timezone(settings.LOG_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.utc


LOG_TZ = _resolve_timezone()

# Same call site and template inside this window is reported once
ERROR_WEBHOOK_THROTTLE_SECONDS = 60


class SensitiveDataFilter(logging.Filter):
    """
    Masks credentials that end up in log lines: webhook tokens, cookies
    passed to scraped sites, and auth headers copied from feed configs.
    """

    PATTERNS = [
        (re.compile(r"(https://(?:discord|discordapp)\.com/api/webhooks/\d+/)[\w-]+"), r"\1***"),
        (re.compile(r"(https://hooks\.slack\.com/services/)[\w/]+"), r"\1***"),
        (re.compile(r"((?:Cookie|cookie)['\"]?\s*[:=]\s*['\"]?)[^'\"\n}]+"), r"\1***"),
        (re.compile(r"(['\"]value['\"]\s*:\s*['\"])[^'\"]*"), r"\1***"),
        (re.compile(r"((?:Authorization|authorization)['\"]?\s*[:=]\s*['\"]?)(Bearer |Basic )?[^\s'\",}]+"), r"\1\2***"),
        (re.compile(r"([?&](?:token|key|api_key|apikey|secret|sig)=)[^&\s'\"]+"), r"\1***"),
    ]

    def mask(self, text: str) -> str:
        for pattern, replacement in self.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        if record.args:
            record.args = tuple(self.mask(a) if isinstance(a, str) else a for a in record.args)
        return True


class ContextFormatter(logging.Formatter):
    """
    Text formatter for console and file output.

    Timestamps are rendered in LOG_TIMEZONE. Structured context (feed id,
    url) and timings passed through the adapter are appended as
    ``| key=value`` segments.
    """

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=pytz.utc).astimezone(LOG_TZ)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")

    def format(self, record):
        parts = [super().format(record)]

        context = getattr(record, "context", None)
        if context:
            parts.append(" ".join(f"{k}={v}" for k, v in context.items()))

        if hasattr(record, "duration_ms"):
            parts.append(f"{record.duration_ms:.2f}ms")
        elif hasattr(record, "duration"):
            parts.append(f"{record.duration:.2f}s")

        return " | ".join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=pytz.utc).astimezone(LOG_TZ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.lineno}",
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if hasattr(record, "duration"):
            entry["duration_seconds"] = record.duration
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = record.duration_ms
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Accepts ``context=`` and ``duration=``/``duration_ms=`` keyword
    arguments on every log call and moves them into the record.
    """

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["context"] = kwargs.pop("context", {})
        for key in ("duration", "duration_ms"):
            if key in kwargs:
                extra[key] = kwargs.pop(key)
        return msg, kwargs


class ErrorWebhookHandler(logging.Handler):
    """
    Posts WARNING+ records to ERROR_WEBHOOK_URL.

    Delivery runs on a single worker thread so a slow endpoint never stalls
    the event loop, and repeats from the same call site are throttled.
    """

    def __init__(self, webhook_url: str):
        super().__init__()
        self.webhook_url = webhook_url
        self.is_discord = any(host in webhook_url for host in constants.DISCORD_WEBHOOK_HOSTS)
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="error-webhook")
        self._last_sent: Dict[str, float] = {}

    def _throttled(self, record: logging.LogRecord) -> bool:
        key = hashlib.md5(f"{record.pathname}:{record.lineno}:{record.msg}".encode()).hexdigest()
        now = time.monotonic()
        last = self._last_sent.get(key)
        if last is not None and now - last < ERROR_WEBHOOK_THROTTLE_SECONDS:
            return True
        self._last_sent[key] = now
        return False

    def build_payload(self, record: logging.LogRecord) -> dict:
        message = record.getMessage()
        traceback_text = self.formatException(record.exc_info) if record.exc_info else ""
        if len(traceback_text) > 1000:
            traceback_text = traceback_text[:1000] + "..."
        timestamp = datetime.now(pytz.utc).isoformat()

        if not self.is_discord:
            return {
                "level": record.levelname,
                "logger": record.name,
                "message": message,
                "context": getattr(record, "context", None) or None,
                "timestamp": timestamp,
                "traceback": traceback_text or None,
            }

        embed = {
            "title": f"[{record.levelname}] {record.name}",
            "description": message[:4000],
            "color": 0xE74C3C if record.levelno >= logging.ERROR else 0xF39C12,
            "timestamp": timestamp,
            "footer": {"text": f"{record.module}:{record.lineno}"},
        }
        if traceback_text:
            embed["fields"] = [{"name": "Traceback", "value": f"```python\n{traceback_text}\n```"}]
        return {"embeds": [embed]}

    def _post(self, payload: dict):
        try:
            requests.post(self.webhook_url, json=payload, timeout=2.0)
        except requests.RequestException as e:
            sys.stderr.write(f"Failed to send log to error webhook: {e}\n")

    def emit(self, record: logging.LogRecord):
        try:
            if self._throttled(record):
                return
            self.executor.submit(self._post, self.build_payload(record))
        except Exception:
            self.handleError(record)

    def close(self):
        self.executor.shutdown(wait=False)
        super().close()


def _build_handlers(log_file: Optional[str]) -> List[logging.Handler]:
    masking = SensitiveDataFilter()
    handlers: List[logging.Handler] = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(ContextFormatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", "%Y-%m-%d %H:%M:%S"))
    handlers.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        if settings.LOG_FORMAT.lower() == "json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                ContextFormatter("%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s", "%Y-%m-%d %H:%M:%S")
            )
        handlers.append(file_handler)

    if settings.ERROR_WEBHOOK_URL:
        webhook = ErrorWebhookHandler(settings.ERROR_WEBHOOK_URL)
        webhook.setLevel(logging.WARNING)
        handlers.append(webhook)

    for handler in handlers:
        handler.addFilter(masking)
    return handlers


def get_logger(
    name: str,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> StructuredLoggerAdapter:
    """
    Returns a structured logger with console, rotating file and optional
    error-webhook handlers. Handlers are attached once per logger name.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        level = (log_level or settings.LOG_LEVEL).upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        for handler in _build_handlers(settings.LOG_FILE if log_file is None else log_file):
            logger.addHandler(handler)
        logger.propagate = False

    return StructuredLoggerAdapter(logger, {})


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Resets the root logger to the same handler set."""
    logging.getLogger().handlers.clear()
    get_logger("root", log_level, log_file)
