"""
Selector suggestions for listing pages.

Given a page URL, guesses which repeating element is one feed item and which
child selector best fills each field. Candidates come from a fixed catalogue
of structured-data, microformat and common class-name selectors. Each one is
scored against a sample of items (coverage, uniqueness, specificity and
field-specific hints) and the winner is reduced to its shortest stable form.

The result is an ArticleSchema that RSSBuilder can use as-is, although it is
meant as a starting point for a human to refine.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from statistics import median
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup, Tag

from core.exceptions import ParsingException
from core.logger import get_logger
from models.target import ArticleSchema, FlareSolverrConfig, Target
from parsers.html_parser import Scope, SelectorResolver, parse_document
from services.scraper.fetcher import DocumentFetcher, TransportChoice, resolve_flaresolverr

logger = get_logger(__name__)

SAMPLE_SIZE = 12
MIN_REPEATS = 3
MAX_ITERATOR_CANDIDATES = 5
FIELDS = ("title", "description", "link", "enclosure", "date", "author")

FIELD_CANDIDATES: Dict[str, List[str]] = {
    "title": [
        '[itemprop="headline"]',
        '[itemprop="name"]',
        ".p-name",
        ".entry-title",
        ".post-title",
        ".article-title",
        ".headline",
        ".title",
        ".story-title",
        ".card-title",
        ".teaser-title",
        "td.title a",
        "td.name a",
        'td[class*="title"] a',
        ".titleline a",
        '[class*="headline"]',
        '[class*="title"]',
        '[class*="heading"]',
        '[data-testid*="headline"]',
        '[data-testid*="title"]',
        '[role="heading"]',
        "header h2",
        "header h3",
        "h1",
        "h2",
        "h3",
    ],
    "description": [
        '[itemprop="description"]',
        '[itemprop="articleBody"]',
        ".p-summary",
        ".entry-summary",
        ".entry-content",
        ".post-excerpt",
        ".excerpt",
        ".summary",
        ".dek",
        ".standfirst",
        ".subtitle",
        '[class*="excerpt"]',
        '[class*="summary"]',
        '[class*="content"]',
        '[class*="description"]',
        '[data-testid*="summary"]',
        '[data-testid*="description"]',
        "article p",
        "div p",
        "p",
    ],
    "link": [
        '[itemprop="url"]',
        'a[rel="bookmark"]',
        ".u-url",
        ".entry-title a",
        ".post-title a",
        ".article-title a",
        ".headline a",
        '[class*="read-more"] a',
        '[class*="readmore"] a',
        '[data-testid*="link"] a',
        "h1 a",
        "h2 a",
        "h3 a",
        "a",
    ],
    "enclosure": [
        '[itemprop="image"]',
        '[itemprop="thumbnailUrl"]',
        "figure img",
        "picture img",
        ".wp-post-image",
        ".thumbnail img",
        ".thumb img",
        '[class*="thumb"] img',
        '[class*="image"] img',
        '[class*="photo"] img',
        "img",
        "video source",
        "video",
        "audio source",
        "audio",
    ],
    "date": [
        "time[datetime]",
        '[itemprop="datePublished"]',
        '[itemprop="dateModified"]',
        ".dt-published",
        ".dt-updated",
        'td[class*="date"]',
        'td[class*="time"]',
        ".age",
        '[class*="publish"]',
        '[class*="updated"]',
        '[class*="timestamp"]',
        '[class*="date"]',
        '[class*="time"]',
        '[data-testid*="date"]',
        "time",
    ],
    "author": [
        '[itemprop="author"] [itemprop="name"]',
        '[itemprop="author"]',
        'a[rel="author"]',
        ".p-author",
        ".byline",
        ".author",
        ".writer",
        'a[href*="author"]',
        'a[href*="/user/"]',
        '[class*="byline"]',
        '[class*="author"]',
        '[class*="posted-by"]',
        '[data-testid*="author"]',
    ],
}

# Table rows need cell-oriented selectors first
TABLE_FIELD_CANDIDATES: Dict[str, List[str]] = {
    "title": ["td.name a", "td.title a", 'td[class*="title"] a', 'td[class*="name"] a', "td:first-child a", "a"],
    "link": ["td.name a", "td.title a", 'td[class*="title"] a', "td:first-child a", "a"],
    "date": ['td[class*="date"]', 'td[class*="time"]', "time"],
    "description": ['td[class*="desc"]', 'td[class*="summary"]'],
}

STRUCTURAL_ITERATORS = [
    "main article",
    "article",
    '[role="article"]',
    "ul > li",
    "ol > li",
    '[role="list"] > [role="listitem"]',
    "tr.submission",
    "tr[class*='item']",
    "tr[class*='row']",
    "table tbody tr",
    "table tr",
    '[role="table"] [role="row"]',
    "[class*='feed-item']",
    "[class*='post-item']",
    "[class*='list-item']",
    "[class*='search-result']",
    "[class*='story']",
    "[class*='teaser']",
    "[class*='card']",
    "div[class*='post']",
    "div[class*='entry']",
    "div[class*='item']",
    "section[class*='post']",
    "[data-testid*='card']",
    "[data-testid*='story']",
]

CONTENT_ITERATORS = [
    "article",
    "li",
    "section",
    "div[class*='post']",
    "div[class*='item']",
    "div[class*='entry']",
    "div[class*='card']",
]

# (pattern, moment-style format); first match wins
DATE_FORMAT_PATTERNS = [
    (re.compile(r"^\d{4}[-/]\d{2}[-/]\d{2}"), "YYYY-MM-DD"),
    (re.compile(r"^\d{2}[-/]\d{2}[-/]\d{4}"), "MM-DD-YYYY"),
    (re.compile(r"^\d{2}[-/]\d{2}[-/]\d{2}"), "MM-DD-YY"),
    (re.compile(r"^\d{2}\.\d{2}\.\d{4}"), "DD.MM.YYYY"),
    (re.compile(r"^\d{4}\.\d{2}\.\d{2}"), "YYYY.MM.DD"),
    (re.compile(r"^\d{8}$"), "YYYYMMDD"),
    (re.compile(r"^\d{1,2} [A-Za-z]+ \d{4}"), "D MMMM YYYY"),
    (re.compile(r"^[A-Za-z]+ \d{1,2}, \d{4}"), "MMMM D, YYYY"),
    (re.compile(r"^[A-Za-z]+ \d{4}"), "MMMM YYYY"),
    (re.compile(r"^\d{1,2}/\d{1,2}/\d{4}"), "M/D/YYYY"),
]

FIELD_WEIGHTS = {"title": 100, "link": 80, "date": 40, "description": 20, "author": 30}
BARE_TAG_PENALTY = {"title": 80, "link": 80, "date": 40, "description": 30, "enclosure": 30}
DOMINANCE_LIMITS = {"title": (0.35, 300), "link": (0.35, 300), "description": (0.5, 200), "date": (0.7, 150)}
COVERAGE_THRESHOLDS = {"author": 0.2, "date": 0.5}

LAZY_IMAGE_ATTRIBUTES = ["src", "data-src", "data-lazy-src", "data-original", "data-url"]
REJECTED_HREF_PREFIXES = ("#", "javascript:", "data:", "vbscript:", "mailto:", "tel:")

_CONTENT_HINT = re.compile(r"\b(content|main|article|post|entry|story|news|feed)\b")
_WRAPPER_HINT = re.compile(r"\b(container|wrapper)\b")
_CHROME_HINT = re.compile(r"\b(nav|sidebar|aside|footer|header|menu|comment|ad|banner)\b")
_HIDDEN_HINT = re.compile(r"\b(skip|hidden|modal|popup|overlay)\b")
_BOILERPLATE_ITEM = ["sign in", "subscribe", "home", "menu", "nav", "footer", "cookie", "privacy", "terms", "login", "register"]
_BOILERPLATE_VALUE = re.compile(r"sign in|subscribe|read more|continue reading|home|menu", re.IGNORECASE)
_BARE_TAG = re.compile(r"^(h[1-6]|p|a|img|time|span|div|li|section|article)$")
_DATE_TOKEN = re.compile(r"\b\d{1,4}\b|\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\b", re.IGNORECASE)
_PERSON_NAME = re.compile(r"^[A-Z][a-z]+\s+[A-Z][a-z]+$")
_AUTHOR_HINT = re.compile(r"author|byline|writer|contributor|posted-by", re.IGNORECASE)
_UTILITY_CLASS = re.compile(r"^(flex|grid|p-\d|m-\d|text-|bg-|border-|rounded-|shadow-|w-\d|h-\d)")
_HASHED_CLASS = re.compile(r"^(?=.*\d)[a-z0-9]{8,}$", re.IGNORECASE)
_CSS_IDENTIFIER = re.compile(r"^[A-Za-z_][\w-]*$")


# =============================================================================
# Small helpers
# =============================================================================

def _classes(el: Tag) -> List[str]:
    value = el.get("class") or []
    return value.split() if isinstance(value, str) else list(value)


def _hints(el: Tag) -> str:
    return f"{' '.join(_classes(el))} {el.get('id') or ''}".lower()


def _depth(el: Tag) -> int:
    # The BeautifulSoup object itself is not an element
    return sum(1 for parent in el.parents if not isinstance(parent, BeautifulSoup))


def _text(el: Optional[Tag]) -> str:
    return el.get_text(" ", strip=True) if el is not None else ""


def _index_of(el: Tag, elements: List[Tag]) -> Optional[int]:
    # Tag equality is structural, so look the element up by identity
    return next((i for i, candidate in enumerate(elements) if candidate is el), None)


def is_relative_url(value: Optional[str]) -> bool:
    if not value or value.startswith("//"):
        return False
    return not re.match(r"^https?://", value, re.IGNORECASE)


def root_url(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def detect_date_format(text: str) -> Optional[str]:
    text = (text or "").strip()
    for pattern, fmt in DATE_FORMAT_PATTERNS:
        if pattern.match(text):
            return fmt
    return None


def is_stable_class_token(token: str) -> bool:
    """False for hashed, generated or utility class names."""
    if not token or len(token) > 40 or not _CSS_IDENTIFIER.match(token):
        return False
    if sum(1 for c in token if c.isdigit() or c in "_-") / len(token) > 0.4:
        return False
    if _UTILITY_CLASS.match(token) or _HASHED_CLASS.match(token):
        return False
    return True


def specificity_bonus(selector: str) -> int:
    return (
        selector.count("#") * 8
        + selector.count(".") * 3
        + selector.count("[") * 3
        + len(re.findall(r"[>+~]", selector))
    )


def extract_value(field_name: str, el: Optional[Tag]) -> str:
    """The value a field would take from ``el``, using the attribute that field prefers."""
    if el is None:
        return ""

    if field_name == "link":
        href = el.get("href")
        if el.name != "a":
            anchor = el.select_one("a[href]")
            if anchor is not None:
                href = anchor.get("href")
        if not href or href.startswith(REJECTED_HREF_PREFIXES):
            return ""
        return href

    if field_name == "enclosure":
        for attribute in LAZY_IMAGE_ATTRIBUTES:
            value = el.get(attribute)
            if not value or value.startswith("data:") or re.search(r"1x1|1px|tracking|pixel", value, re.IGNORECASE):
                continue
            return value
        srcset = el.get("srcset")
        if el.name == "picture" and not srcset:
            source = el.select_one("source[srcset]")
            srcset = source.get("srcset") if source is not None else None
        if srcset:
            first = srcset.split(",")[0].strip().split()[0] if srcset.strip() else ""
            if first and not first.startswith("data:"):
                return first
        poster = el.get("poster") if el.name == "video" else None
        return poster if poster and not poster.startswith("data:") else ""

    if field_name == "date" and el.name == "time" and el.get("datetime"):
        return el["datetime"]

    if field_name == "author":
        if el.name == "meta":
            return (el.get("content") or "").strip()
        if el.name != "a":
            anchor = el.find("a")
            if anchor is not None:
                return _text(anchor)

    return _text(el)


def field_attribute(field_name: str, el: Tag) -> Optional[str]:
    if field_name == "link":
        return "href"
    if field_name == "enclosure":
        for attribute in LAZY_IMAGE_ATTRIBUTES:
            if el.get(attribute):
                return attribute
        if el.get("srcset"):
            return "srcset"
        if el.name == "video" and el.get("poster"):
            return "poster"
        return None
    if field_name == "date" and el.name == "time" and el.get("datetime"):
        return "datetime"
    return None


@dataclass
class _CandidateStats:
    selector: str
    score: float
    values: List[str] = field(default_factory=list)
    # (item, first match) for every item where the selector produced a value
    pairs: List[Tuple[Tag, Tag]] = field(default_factory=list)


class SelectorSuggester:
    """
    Suggests an ArticleSchema for a listing page.

    ``suggest_selectors`` fetches the page (through FlareSolverr when one is
    configured) and ``suggest_from_html`` does the analysis on markup that is
    already at hand.
    """

    def __init__(self, fetcher: Optional[DocumentFetcher] = None):
        self.fetcher = fetcher or DocumentFetcher()
        self.resolver = SelectorResolver()

    async def suggest_selectors(
        self,
        url: str,
        flaresolverr: Optional[FlareSolverrConfig] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> ArticleSchema:
        """Fetches ``url`` and suggests selectors. Fetch errors propagate to the caller."""
        proxy = resolve_flaresolverr(flaresolverr)
        transport = TransportChoice.FLARESOLVERR if proxy is not None else TransportChoice.HTTP

        owns_session = session is None
        if owns_session:
            session = await self.fetcher.create_session()
        try:
            logger.info(f"[SUGGEST] Fetching {url} via {transport.value}")
            html = await self.fetcher.fetch_document(
                session, url, transport, flaresolverr=proxy, cookies=cookies
            )
        finally:
            if owns_session:
                await session.close()

        return self.suggest_from_html(html, url)

    def suggest_from_html(self, html: str, url: str = "") -> ArticleSchema:
        document = parse_document(html)

        main_area = self.find_main_content_area(document)
        candidates = list(dict.fromkeys(
            [s for s in STRUCTURAL_ITERATORS if len(self.resolver.select_all(document, s)) >= MIN_REPEATS]
            + self.find_repeating_structures(main_area)
            + self.find_common_parents(document)
        ))
        if not candidates:
            raise ParsingException("No common repeating parent structures identified", {"url": url})

        ranked = self.choose_best_iterators(document, candidates)
        iterator, children = self._validate_iterators(document, ranked)

        items = self.resolver.select_all(document, iterator)[:SAMPLE_SIZE]
        base = root_url(url)
        link_relative = self._mostly_relative(items, children.get("link"), "href")
        enclosure = children.get("enclosure")
        enclosure_relative = self._mostly_relative(items, enclosure, enclosure.attribute if enclosure is not None and enclosure.attribute else "src")

        date_target = children.get("date")
        if date_target is not None and not date_target.date_format:
            first_date = next((_text(m) for m in (
                self.resolver.select_first(item, date_target.selector) for item in items
            ) if m is not None), "")
            date_target.date_format = detect_date_format(first_date)

        for name, relative in (("link", link_relative), ("enclosure", enclosure_relative)):
            target = children.get(name)
            if target is not None:
                target.is_relative = relative
                target.base_url = base if relative and base else None

        logger.info(f"[SUGGEST] Iterator '{iterator}' with {len(items)} sampled item(s)")
        return ArticleSchema(iterator=Target(selector=iterator), **children)

    # =========================================================================
    # Iterator discovery
    # =========================================================================

    def find_main_content_area(self, document: Scope) -> Scope:
        """The element most likely to hold the main content: semantic tags first, then a heuristic score."""
        semantic = self.resolver.select_first(document, 'main, [role="main"]')
        if semantic is not None:
            return semantic
        articles = self.resolver.select_all(document, "article")
        if len(articles) == 1:
            return articles[0]

        best_score = -1000
        best = document.body or document
        for el in self.resolver.select_all(document, "div, section, article, main"):
            hints = _hints(el)
            score = 0
            if _CONTENT_HINT.search(hints):
                score += 25
            if _WRAPPER_HINT.search(hints):
                score += 10
            if _CHROME_HINT.search(hints):
                score -= 50
            if _HIDDEN_HINT.search(hints):
                score -= 30

            paragraphs = len(el.find_all("p"))
            links = len(el.find_all("a"))
            headings = len(el.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]))
            score += paragraphs * 3 + headings * 2
            if links and paragraphs / links > 2:
                score += 10
            if paragraphs and links / paragraphs > 5:
                score -= 20
            if 2 < _depth(el) < 8:
                score += 5

            if score > best_score:
                best_score, best = score, el

        logger.debug(f"[SUGGEST] Main content score {best_score} ({getattr(best, 'name', None)})")
        return best

    def find_repeating_structures(self, scope: Scope, min_count: int = MIN_REPEATS) -> List[str]:
        return [s for s in CONTENT_ITERATORS if len(self.resolver.select_all(scope, s)) >= min_count]

    def find_common_parents(self, document: Scope) -> List[str]:
        """Bare container tags that repeat, else the most common parent of any field candidate."""
        found = [tag for tag in ("article", "li", "section", "div") if len(document.find_all(tag)) >= MIN_REPEATS]
        if found:
            return found

        counts: Counter = Counter()
        for selectors in FIELD_CANDIDATES.values():
            for selector in selectors:
                for el in self.resolver.select_all(document, selector):
                    parent = el.parent
                    if parent is None or isinstance(parent, BeautifulSoup):
                        continue
                    stable = [c for c in _classes(parent) if _CSS_IDENTIFIER.match(c)]
                    counts[parent.name + "".join(f".{c}" for c in stable)] += 1

        if counts:
            selector, count = counts.most_common(1)[0]
            if count >= MIN_REPEATS:
                return [selector]
        return []

    def choose_best_iterators(self, document: Scope, candidates: List[str]) -> List[str]:
        """
        Ranks iterator candidates by how well sampled items fill the main
        fields, minus penalties for navigation-like, nested or oversized
        matches. Returns up to five positive scorers, or the first
        candidate when none scores above zero.
        """
        scored = []
        for candidate in candidates:
            items = self.resolver.select_all(document, candidate)[:SAMPLE_SIZE]
            if not items:
                continue
            n = len(items)

            coverage = {}
            for name in FIELD_WEIGHTS:
                found = sum(
                    1 for item in items
                    if any(_text(self.resolver.select_first(item, s)) for s in FIELD_CANDIDATES[name])
                )
                coverage[name] = found / n

            texts = [_text(item) for item in items]
            link_counts = [len(item.find_all("a")) for item in items]
            heading_counts = [len(item.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])) for item in items]

            overlap = sum(1 for item in items if self.resolver.select_all(item, candidate)) / n
            boilerplate = sum(1 for t in texts if any(k in t.lower() for k in _BOILERPLATE_ITEM)) / n
            shallow = sum(1 for t in texts if len(t) < 20) / n
            avg_text = sum(len(t) for t in texts) / n
            link_density = (sum(link_counts) / n) / avg_text * 1000 if avg_text else 0

            score = sum(coverage[name] * weight for name, weight in FIELD_WEIGHTS.items())
            score -= link_density if link_density > 50 else 0
            score -= boilerplate * 50
            score -= shallow * 30
            score -= overlap * 200 if overlap > 0.2 else 0
            score -= (
                (100 if median(len(t) for t in texts) > 2000 else 0)
                + (50 if median(link_counts) > 15 else 0)
                + (50 if median(heading_counts) > 5 else 0)
            )
            scored.append((candidate, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        for selector, score in scored[:3]:
            logger.debug(f"[SUGGEST] Iterator candidate '{selector}' scored {score:.1f}")

        viable = [selector for selector, score in scored if score > 0][:MAX_ITERATOR_CANDIDATES]
        return viable or candidates[:1]

    def _validate_iterators(self, document: Scope, ranked: List[str]) -> Tuple[str, Dict[str, Target]]:
        """First ranked iterator whose items carry distinct links and mostly have descriptions."""
        for candidate in ranked:
            items = self.resolver.select_all(document, candidate)[:SAMPLE_SIZE]
            if not items:
                continue
            children = self.suggest_child_selectors(document, candidate)

            links = set()
            described = 0
            for item in items:
                link_target = children.get("link")
                if link_target is not None:
                    match = self.resolver.select_first(item, link_target.selector)
                    href = match.get("href") if match is not None else None
                    if isinstance(href, str) and not href.strip().lower().startswith(REJECTED_HREF_PREFIXES):
                        links.add(href.strip().lower())
                desc_target = children.get("description")
                if desc_target is not None and len(_text(self.resolver.select_first(item, desc_target.selector))) > 20:
                    described += 1

            required = max(2, min(5, -(-len(items) * 2 // 5)))
            if len(links) >= required and described / len(items) >= 0.3:
                logger.info(f"[SUGGEST] Selected iterator '{candidate}' ({len(links)} unique links)")
                return candidate, children
            logger.debug(
                f"[SUGGEST] Rejected iterator '{candidate}': {len(links)}/{required} unique links, "
                f"{described}/{len(items)} described"
            )

        logger.info("[SUGGEST] No iterator passed validation, using the best ranked one")
        return ranked[0], self.suggest_child_selectors(document, ranked[0])

    def _mostly_relative(self, items: List[Tag], target: Optional[Target], attribute: str) -> bool:
        if target is None:
            return False
        relative = absolute = 0
        for item in items[:5]:
            match = self.resolver.select_first(item, target.selector)
            value = match.get(attribute) if match is not None else None
            if value:
                if is_relative_url(value):
                    relative += 1
                else:
                    absolute += 1
        return relative > absolute

    # =========================================================================
    # Child selectors
    # =========================================================================

    def suggest_child_selectors(self, document: Scope, iterator: str) -> Dict[str, Target]:
        """Best-scoring child Target per field; fields with no usable candidate are left out."""
        items = self.resolver.select_all(document, iterator)[:SAMPLE_SIZE]
        if not items:
            return {}

        candidates = dict(FIELD_CANDIDATES)
        if self._is_table_iterator(iterator):
            for name, extra in TABLE_FIELD_CANDIDATES.items():
                # Tables rarely carry descriptions
                candidates[name] = extra if name == "description" else extra + FIELD_CANDIDATES[name]

        results: Dict[str, Target] = {}
        for name in FIELDS:
            stats = [s for s in (self._score_candidate(name, c, items) for c in candidates[name]) if s is not None]
            stats.sort(key=lambda s: s.score, reverse=True)
            self._break_ties(name, stats, results)
            if not stats or not stats[0].pairs:
                continue

            best = stats[0]
            item, el = best.pairs[0]
            target = Target(
                selector=self.minimize_selector(name, el, item, items),
                attribute=field_attribute(name, el),
            )
            if name == "date" and best.values:
                target.date_format = detect_date_format(best.values[0])
            results[name] = target

        return results

    @staticmethod
    def _is_table_iterator(selector: str) -> bool:
        lowered = selector.lower()
        return bool(re.search(r"\btr\b", lowered)) or any(t in lowered for t in ('[role="row"]', "tbody", "table"))

    def _score_candidate(self, name: str, selector: str, items: List[Tag]) -> Optional[_CandidateStats]:
        values: List[str] = []
        pairs: List[Tuple[Tag, Tag]] = []
        total_matches = matched_items = 0

        for item in items:
            matches = self.resolver.select_all(item, selector)
            total_matches += len(matches)
            if matches:
                matched_items += 1
                value = extract_value(name, matches[0])
                if value:
                    values.append(value)
                    pairs.append((item, matches[0]))

        # One hero or ad card is not a pattern
        if matched_items < 2:
            return None

        n = len(items)
        coverage = len(values) / n
        unique_ratio = len(set(values)) / len(values) if values else 0
        avg_matches = total_matches / n
        avg_len = sum(len(v) for v in values) / len(values) if values else 0

        score = coverage * 100
        score += max(0, unique_ratio - 0.2) * 20 if name == "author" else unique_ratio * 50
        if avg_matches > 1.5:
            score -= (avg_matches - 1) * (10 if name == "author" else 30)
        score += specificity_bonus(selector)
        if _BARE_TAG.match(selector.strip()):
            score -= BARE_TAG_PENALTY.get(name, 20)

        if name == "title":
            score += sum(self._title_link_affinity(item, selector) for item in items) / n

        if values and name in DOMINANCE_LIMITS:
            limit, weight = DOMINANCE_LIMITS[name]
            dominance = Counter(v.lower().strip() for v in values).most_common(1)[0][1] / len(values)
            if dominance > limit:
                score -= (dominance - limit) * weight

        score += self._field_hints(name, selector, values, pairs, avg_len)

        if values:
            boilerplate = sum(1 for v in values if _BOILERPLATE_VALUE.search(v))
            score -= boilerplate / len(values) * 40

        return _CandidateStats(selector=selector, score=score, values=values, pairs=pairs)

    @staticmethod
    def _field_hints(name: str, selector: str, values: List[str], pairs: List[Tuple[Tag, Tag]], avg_len: float) -> float:
        score = 0.0
        if name == "title":
            if 10 <= avg_len <= 100:
                score += 20
            if avg_len < 5:
                score -= 30
        elif name == "description":
            if 50 <= avg_len <= 600:
                score += 20
            if avg_len < 20:
                score -= 20
        elif name == "date":
            if any(_DATE_TOKEN.search(v) for v in values):
                score += 30
        elif name == "link" and values:
            # extract_value already rejected unusable hrefs
            score += 30
        elif name == "author" and values:
            names = sum(1 for v in values if _PERSON_NAME.match(v.strip()))
            score += names / len(values) * 50
            if _AUTHOR_HINT.search(selector):
                score += 40
            parent_hints = sum(1 for _, el in pairs if el.parent is not None and _AUTHOR_HINT.search(_hints(el.parent)))
            if pairs:
                score += parent_hints / len(pairs) * 30
            if 5 <= avg_len <= 50:
                score += 20
            if avg_len < 3 or avg_len > 100:
                score -= 30
        return score

    def _title_link_affinity(self, item: Tag, selector: str) -> int:
        el = self.resolver.select_first(item, selector)
        if el is None:
            return 0
        is_anchor = el.name == "a" and el.get("href") is not None
        has_anchor_child = el.select_one("a[href]") is not None
        inside_anchor = el.find_parent("a", href=True) is not None
        return (20 if has_anchor_child else 0) + (30 if is_anchor else 0) + (15 if inside_anchor else 0)

    def _break_ties(self, name: str, stats: List[_CandidateStats], results: Dict[str, Target]) -> None:
        """Re-ranks near-equal link and date candidates by where they sit relative to the title."""
        if len(stats) < 2 or name not in ("link", "date"):
            return
        top = stats[0].score
        close = [s for s in stats if s.score >= top * 0.9]
        if len(close) < 2:
            return

        title = results.get("title")
        title_selector = title.selector if title is not None else ""
        if name == "link" and not title_selector:
            return

        for candidate in close:
            if name == "link":
                candidate.score += self._proximity_to_title(candidate.pairs, title_selector)
            else:
                candidate.score += self._date_position_bonus(candidate.pairs, title_selector)
        stats.sort(key=lambda s: s.score, reverse=True)

    def _proximity_to_title(self, pairs: List[Tuple[Tag, Tag]], title_selector: str) -> float:
        total = counted = 0
        for item, el in pairs:
            title = self.resolver.select_first(item, title_selector)
            if title is None:
                continue
            anchor = title if title.name == "a" else title.find("a")
            if anchor is el:
                total += 30
                counted += 1
                continue
            distance = self._common_ancestor_distance(title, el)
            if distance is not None:
                total += {0: 25, 1: 20, 2: 15}.get(distance, 10)
                counted += 1
        return total / counted if counted else 0

    def _date_position_bonus(self, pairs: List[Tuple[Tag, Tag]], title_selector: str) -> float:
        total = counted = 0
        for item, el in pairs:
            elements = [item] + item.find_all(True)
            index = _index_of(el, elements)
            if index is not None:
                position = index / max(len(elements), 1)
                total += 20 if position <= 0.25 else 15 if position <= 0.5 else 10 if position <= 0.75 else 5
                counted += 1
            if title_selector:
                title = self.resolver.select_first(item, title_selector)
                distance = self._common_ancestor_distance(title, el) if title is not None else None
                if distance is not None and distance < 2:
                    total += 10
        return total / counted if counted else 0

    @staticmethod
    def _common_ancestor_distance(a: Tag, b: Tag) -> Optional[int]:
        b_parents = [id(p) for p in b.parents]
        for distance, parent in enumerate(a.parents):
            if id(parent) in b_parents:
                return min(distance, b_parents.index(id(parent)))
        return None

    def minimize_selector(self, name: str, el: Tag, item: Tag, items: List[Tag]) -> str:
        """
        Shortest selector for ``el`` relative to its item that still yields a
        value in enough sampled items without matching more than three
        elements in any of them.
        """
        candidates = []
        data_attributes = ["data-testid", "data-qa", "data-test"] + sorted(a for a in el.attrs if a.startswith("data-"))
        for attribute in dict.fromkeys(data_attributes):
            value = el.get(attribute)
            if isinstance(value, str) and value and '"' not in value:
                candidates.append(f'[{attribute}="{value}"]')

        element_id = el.get("id")
        if isinstance(element_id, str) and is_stable_class_token(element_id):
            candidates.append(f"#{element_id}")

        stable = [c for c in _classes(el) if is_stable_class_token(c)]
        if stable:
            candidates.append(f"{el.name}.{stable[0]}")

        path = self._path_from_item(el, item)
        if 1 < len(path) <= 4:
            candidates.append(" > ".join(self._path_step(node) for node in path))

        candidates.append(el.name)
        siblings = el.parent.find_all(el.name, recursive=False) if el.parent is not None else []
        index = _index_of(el, siblings)
        if index is not None:
            candidates.append(f"{el.name}:nth-of-type({index + 1})")

        threshold = COVERAGE_THRESHOLDS.get(name, 0.7)
        for candidate in candidates:
            valid = 0
            too_broad = False
            for sample in items:
                matches = self.resolver.select_all(sample, candidate)
                if len(matches) > 3:
                    too_broad = True
                    break
                if matches and extract_value(name, matches[0]):
                    valid += 1
            if not too_broad and valid >= len(items) * threshold:
                return candidate

        # Full path with every class, as a last resort
        return " > ".join(node.name + "".join(f".{c}" for c in _classes(node) if _CSS_IDENTIFIER.match(c)) for node in path)

    @staticmethod
    def _path_step(node: Tag) -> str:
        stable = [c for c in _classes(node) if is_stable_class_token(c)]
        return f"{node.name}.{stable[0]}" if stable else node.name

    @staticmethod
    def _path_from_item(el: Tag, item: Tag) -> List[Tag]:
        path = [el]
        for parent in el.parents:
            if parent is item or isinstance(parent, BeautifulSoup):
                break
            path.append(parent)
        path.reverse()
        return path
