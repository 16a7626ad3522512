"""
Field normalization: pure functions turning raw extracted strings into
final feed values. None of these functions raise.
"""
import re
from datetime import date, datetime, time
from typing import Any, Callable, List, Optional, Tuple

from dateutil import parser as dateparser
from dateutil.parser import isoparse

from core.logger import get_logger
from core.utils import UTC, get_utc_now, is_absolute_url, to_utc

logger = get_logger(__name__)

_TAG_PATTERN = re.compile(r"<[\s\S]*?>", re.MULTILINE)
_WORD_PATTERN = re.compile(r"\w\S*")


def strip_html(text: str) -> str:
    """Removes every <...> span, non-greedy and across newlines."""
    return _TAG_PATTERN.sub("", text)


def title_case(words: str) -> str:
    return _WORD_PATTERN.sub(lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), words)


def append_url(base_url: Optional[str], link: Optional[str]) -> Optional[str]:
    """Joins base and link with exactly one slash at the join point."""
    if not base_url or not link:
        return link
    return base_url.rstrip("/") + "/" + link.lstrip("/")


def process_words(words: Optional[str], title: bool = False, remove_html: bool = False) -> str:
    """Applies HTML stripping then title-casing to titles, descriptions, etc."""
    result = words if isinstance(words, str) else ("" if words is None else str(words))
    if remove_html:
        result = strip_html(result)
    if title:
        result = title_case(result)
    return result


def process_links(
    words: Optional[str],
    remove_html: bool = False,
    relative_link: bool = False,
    root_url: Optional[str] = None,
) -> str:
    """Applies HTML stripping and relative-link resolution to URLs."""
    result = words if isinstance(words, str) else ("" if words is None else str(words))
    if remove_html:
        result = strip_html(result)
    result = result.strip()
    if relative_link and root_url and result and not is_absolute_url(result):
        result = append_url(root_url, result)
    return result


# =============================================================================
# Dates
# =============================================================================

def _parse_unix(value: str) -> datetime:
    return datetime.fromtimestamp(int(value), tz=UTC)


def _parse_unix_millis(value: str) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def _parse_iso(value: str) -> datetime:
    return to_utc(isoparse(value))


def _parse_ymd(value: str) -> datetime:
    # Assumed UTC midnight
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=UTC)


def _parse_ymd_hms(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=UTC)


def _parse_http_date(value: str) -> datetime:
    return to_utc(datetime.strptime(value, "%a, %d %b %Y %H:%M:%S GMT").replace(tzinfo=UTC))


# Priority order matters: the first pattern found anywhere in the value wins.
DATE_PATTERNS: List[Tuple[str, "re.Pattern", Callable[[str], datetime]]] = [
    ("unix", re.compile(r"\b\d{10}\b"), _parse_unix),
    ("unix_millis", re.compile(r"\b\d{13}\b"), _parse_unix_millis),
    ("iso", re.compile(r"\b\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?\b"), _parse_iso),
    ("yyyy-mm-dd", re.compile(r"\b\d{4}-\d{2}-\d{2}\b"), _parse_ymd),
    ("yyyy-mm-dd hh:mm:ss", re.compile(r"\b\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\b"), _parse_ymd_hms),
    ("http-date", re.compile(r"\b\w{3}, \d{2} \w{3} \d{4} \d{2}:\d{2}:\d{2} GMT\b"), _parse_http_date),
]

# moment.js style tokens, longest first so "MMMM" is not read as "MM" + "MM"
_MOMENT_TOKENS = [
    ("YYYY", "%Y"),
    ("YY", "%y"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("M", "%m"),
    ("DDDD", "%j"),
    ("DD", "%d"),
    ("Do", "%d"),
    ("D", "%d"),
    ("dddd", "%A"),
    ("ddd", "%a"),
    ("HH", "%H"),
    ("H", "%H"),
    ("hh", "%I"),
    ("h", "%I"),
    ("mm", "%M"),
    ("m", "%M"),
    ("ss", "%S"),
    ("s", "%S"),
    ("SSS", "%f"),
    ("A", "%p"),
    ("a", "%p"),
    ("ZZ", "%z"),
    ("Z", "%z"),
]
_MOMENT_PATTERN = re.compile("|".join(re.escape(token) for token, _ in _MOMENT_TOKENS))
_MOMENT_MAP = dict(_MOMENT_TOKENS)


def to_strptime_format(fmt: str) -> str:
    """Translates a moment-style pattern ("DD/MM/YYYY HH:mm") into strptime directives."""
    if "%" in fmt:
        return fmt
    return _MOMENT_PATTERN.sub(lambda m: _MOMENT_MAP[m.group(0)], fmt)


def parse_with_format(value: str, fmt: str) -> Optional[datetime]:
    """Strict parse against an explicit format; None when it does not match."""
    try:
        parsed = datetime.strptime(value.strip(), to_strptime_format(fmt))
    except (ValueError, TypeError):
        return None
    return to_utc(parsed)


def process_dates(
    value: Any = None,
    remove_html: bool = False,
    date_format: Optional[str] = None,
) -> datetime:
    """
    Turns a raw date string into an aware UTC datetime.

    Order: explicit format (strict), then the heuristic patterns in
    DATE_PATTERNS (substring search, first match wins), then free-form
    parsing. Anything unparseable becomes the current time.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)

    result = value if isinstance(value, str) else ("" if value is None else str(value))
    if remove_html:
        result = strip_html(result)
    result = result.strip()

    if date_format and result:
        parsed = parse_with_format(result, date_format)
        if parsed is not None:
            return parsed
        logger.debug(f"[NORMALIZER] '{result}' does not match format '{date_format}', trying heuristics")

    for name, pattern, parse in DATE_PATTERNS:
        match = pattern.search(result)
        if not match:
            continue
        try:
            return parse(match.group(0))
        except (ValueError, OverflowError, OSError) as e:
            logger.debug(f"[NORMALIZER] {name} pattern matched '{match.group(0)}' but failed to parse: {e}")

    if result:
        try:
            return to_utc(dateparser.parse(result))
        except (ValueError, OverflowError, TypeError) as e:
            logger.debug(f"[NORMALIZER] Could not parse date '{result}': {e}")

    return get_utc_now()
