"""
RSS assembly: turns a scraped document (or a JSON API response) into an
RSS 2.0 rendering.

Each iterator match becomes one FeedItem. Field failures degrade to empty
values on that field only; an item is never dropped because a selector
missed (strict mode aside).
"""
import asyncio
import json
import re
from dataclasses import dataclass, field
from email.utils import format_datetime
from typing import Any, Dict, List, Optional, Union
from xml.etree import ElementTree as ET

import aiohttp

from core import constants
from core.config import settings
from core.logger import get_logger
from core.utils import get_path, get_utc_now, is_absolute_url, to_utc
from models.feed import ChannelMeta, FeedItem
from models.target import ApiConfig, ApiMapping, ArticleSchema, FeedConfig, FlareSolverrConfig, Target
from parsers.html_parser import Scope, SelectorResolver, parse_document
from parsers.normalizer import process_dates, process_links, process_words
from services.components.hash_calculator import HashCalculator
from services.scraper.drill_chain import DrillChainNavigator
from services.scraper.fetcher import DocumentFetcher

logger = get_logger(__name__)

URL_FIELDS = {"link", "enclosure"}
OVERRIDABLE_FIELDS = {"title", "description", "link", "date", "author", "enclosure", "guid"}

# Anything outside the XML 1.0 Char production, plus DEL
_INVALID_XML_CHARS = re.compile(r"[^\x09\x0A\x0D\x20-\x7E\x80-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")
_ENTITIES = [("&lt;", "<"), ("&gt;", ">"), ("&quot;", '"'), ("&apos;", "'"), ("&amp;", "&")]

for _prefix, _uri in constants.RSS_NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)


# =============================================================================
# Rendering
# =============================================================================

def sanitize_for_xml(text: Optional[str]) -> str:
    """
    Decodes pre-escaped entities and drops every character XML 1.0 cannot
    carry, lone surrogates included. Escaping itself is left to the XML
    writer, so nothing is double-encoded.
    """
    if not text:
        return ""
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return _INVALID_XML_CHARS.sub("", text)


def sanitize_url_for_xml(url: Optional[str]) -> str:
    # "&amp;" in a scraped href means a literal "&"
    if not url:
        return ""
    return _INVALID_XML_CHARS.sub("", url.replace("&amp;", "&")).strip()


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrs) -> ET.Element:
    element = ET.SubElement(parent, tag, {k: v for k, v in attrs.items() if v is not None})
    if text is not None:
        element.text = text
    return element


def _http_date(value) -> str:
    return format_datetime(to_utc(value), usegmt=True)


def render_rss(channel: ChannelMeta, items: List[FeedItem]) -> str:
    """Serializes channel metadata and items into an RSS 2.0 document."""
    dc = constants.RSS_NAMESPACES["dc"]
    rss = ET.Element("rss", {"version": "2.0"})
    chan = _sub(rss, "channel")

    _sub(chan, "title", sanitize_for_xml(channel.title))
    _sub(chan, "description", sanitize_for_xml(channel.description))
    _sub(chan, "link", sanitize_url_for_xml(channel.link))
    if channel.image_url:
        image = _sub(chan, "image")
        _sub(image, "url", sanitize_url_for_xml(channel.image_url))
        _sub(image, "title", sanitize_for_xml(channel.title))
        _sub(image, "link", sanitize_url_for_xml(channel.link))
    _sub(chan, "generator", channel.generator)
    if channel.language:
        _sub(chan, "language", sanitize_for_xml(channel.language))
    _sub(chan, "lastBuildDate", _http_date(channel.last_build_date or get_utc_now()))
    if channel.pub_date:
        _sub(chan, "pubDate", _http_date(channel.pub_date))
    if channel.author:
        _sub(chan, f"{{{dc}}}creator", sanitize_for_xml(channel.author))

    for item in items:
        node = _sub(chan, "item")
        _sub(node, "title", sanitize_for_xml(item.title))
        _sub(node, "description", sanitize_for_xml(item.description))
        _sub(node, "link", sanitize_url_for_xml(item.url))
        _sub(
            node,
            "guid",
            sanitize_for_xml(item.guid),
            isPermaLink="true" if item.guid_is_permalink else "false",
        )
        for category in item.categories:
            _sub(node, "category", sanitize_for_xml(category))
        if item.author:
            _sub(node, f"{{{dc}}}creator", sanitize_for_xml(item.author))
        if item.date is not None:
            _sub(node, "pubDate", _http_date(item.date))
        if item.enclosure.url:
            _sub(
                node,
                "enclosure",
                url=sanitize_url_for_xml(item.enclosure.url),
                length=str(item.enclosure.length or 0),
                type=item.enclosure.type or constants.DEFAULT_ENCLOSURE_TYPE,
            )

    ET.indent(rss, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(rss, encoding="unicode")


def filter_strictly(items: List[FeedItem]) -> List[FeedItem]:
    """
    Drops items that lack a field every "most complete" item has.

    The required set is the intersection of the field sets of all items
    sharing the largest number of non-empty fields.
    """
    if not items:
        return items
    field_sets = [item.non_empty_fields() for item in items]
    max_size = max(len(s) for s in field_sets)
    top = [s for s in field_sets if len(s) == max_size]
    required = set.intersection(*top)
    kept = [item for item, fields in zip(items, field_sets) if required <= fields]
    if len(kept) != len(items):
        logger.info(f"[BUILDER] Strict mode dropped {len(items) - len(kept)} incomplete item(s)")
    return kept


# =============================================================================
# Assembly
# =============================================================================

@dataclass
class _BuildContext:
    document: Scope
    use_advanced: bool = False
    flaresolverr: Optional[FlareSolverrConfig] = None
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    session: Optional[aiohttp.ClientSession] = None
    page_url: Optional[str] = None
    drill_limit: asyncio.Semaphore = field(
        default_factory=lambda: asyncio.Semaphore(constants.MAX_CONCURRENT_DRILL_CHAINS)
    )


class RSSBuilder:
    def __init__(
        self,
        navigator: Optional[DrillChainNavigator] = None,
        fetcher: Optional[DocumentFetcher] = None,
        resolver: Optional[SelectorResolver] = None,
    ):
        self.fetcher = fetcher or DocumentFetcher()
        self.resolver = resolver or SelectorResolver()
        self.navigator = navigator or DrillChainNavigator(fetcher=self.fetcher, resolver=self.resolver)
        self.hash_calculator = HashCalculator()

    async def build_rss(
        self,
        document: Union[str, Scope],
        schema: ArticleSchema,
        api_config: Optional[ApiConfig] = None,
        overrides: Optional[Dict[str, Target]] = None,
        reverse: bool = False,
        strict: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        flaresolverr: Optional[FlareSolverrConfig] = None,
        page_url: Optional[str] = None,
    ) -> str:
        """
        Builds a rendering from a scraped document.

        ``reverse`` inverts the final publish order; it is applied after
        strict filtering and does not depend on which fields resolved.
        """
        api_config = api_config or ApiConfig()
        doc = parse_document(document)
        ctx = _BuildContext(
            document=doc,
            use_advanced=api_config.advanced,
            flaresolverr=flaresolverr,
            cookies=[c.model_dump() for c in api_config.cookies],
            session=session,
            page_url=page_url or api_config.request_url,
        )

        elements = self.resolver.select_all(doc, schema.iterator.selector)
        logger.info(f"[BUILDER] {len(elements)} item(s) matched '{schema.iterator.selector}'")

        items = list(await asyncio.gather(
            *(self._build_item(ctx, schema, element, index) for index, element in enumerate(elements))
        ))

        if overrides:
            await self._apply_overrides(ctx, items, overrides)

        self._assign_guids(items, schema.guid)

        if session is not None and settings.ENCLOSURE_PROBE:
            await self._probe_enclosures(session, items, ctx.page_url)

        if strict:
            items = filter_strictly(items)
        if reverse:
            items.reverse()

        channel = self._channel_meta(doc, schema, api_config, ctx.page_url)
        return render_rss(channel, items)

    async def _build_item(self, ctx: _BuildContext, schema: ArticleSchema, element, index: int) -> FeedItem:
        fields = schema.item_fields()
        names = list(fields)
        values = await asyncio.gather(
            *(self._resolve_field(ctx, element, index, name, fields[name]) for name in names),
            return_exceptions=True,
        )

        item = FeedItem()
        for name, value in zip(names, values):
            if isinstance(value, Exception):
                logger.warning(f"[BUILDER] Field '{name}' failed on item {index}: {value}")
                value = ""
            self._set_field(item, name, value, fields[name])
        return item

    async def _resolve_field(self, ctx: _BuildContext, element, index: int, name: str, target: Target) -> str:
        """Raw value of one field for the index-th item."""
        scope = element
        if target.iterator:
            scopes = self.resolver.select_all(ctx.document, target.iterator)
            if index >= len(scopes):
                return ""
            scope = scopes[index]

        if target.has_drill_chain:
            return await self._run_chain(ctx, scope, target, name in URL_FIELDS)
        return self.resolver.resolve(scope, target.selector, target.attribute)

    async def _run_chain(self, ctx: _BuildContext, scope, target: Target, expect_url: bool) -> str:
        async with ctx.drill_limit:
            return await self.navigator.resolve_drill_chain(
                str(scope),
                target.drill_chain,
                use_advanced=ctx.use_advanced,
                expect_url=expect_url,
                flaresolverr=ctx.flaresolverr,
                cookies=ctx.cookies,
                session=ctx.session,
                page_url=ctx.page_url,
            )

    @staticmethod
    def _set_field(item: FeedItem, name: str, raw: str, target: Target) -> None:
        if name in ("title", "description", "author"):
            setattr(item, name, process_words(raw, target.title_case, target.strip_html).strip())
        elif name == "link":
            item.url = process_links(raw, target.strip_html, target.is_relative, target.base_url)
        elif name == "enclosure":
            item.enclosure.url = process_links(raw, target.strip_html, target.is_relative, target.base_url)
        elif name == "guid":
            item.guid = process_words(raw, False, target.strip_html).strip()
        elif name == "date":
            item.date = process_dates(raw, target.strip_html, target.explicit_date_format)

    async def _apply_overrides(self, ctx: _BuildContext, items: List[FeedItem], overrides: Dict[str, Target]) -> None:
        """
        Re-resolves fields from document-wide selectors, aligned by index.

        Item i takes the i-th override match. Items past the last match get
        an empty value.
        """
        for name, target in overrides.items():
            if name not in OVERRIDABLE_FIELDS:
                logger.warning(f"[BUILDER] Ignoring override for unknown field '{name}'")
                continue

            matches = self.resolver.select_all(ctx.document, target.selector)
            if len(matches) != len(items):
                logger.warning(
                    f"[BUILDER] Override '{name}' matched {len(matches)} element(s) for {len(items)} item(s); "
                    f"aligning by index"
                )

            async def _value(index: int) -> str:
                if index >= len(matches):
                    return ""
                if target.has_drill_chain:
                    return await self._run_chain(ctx, matches[index], target, name in URL_FIELDS)
                return self.resolver.extract(matches[index], target.attribute)

            values = await asyncio.gather(*(_value(i) for i in range(len(items))))
            for item, raw in zip(items, values):
                self._set_field(item, name, raw, target)

    def _assign_guids(self, items: List[FeedItem], guid_target: Optional[Target]) -> None:
        explicit_permalink = guid_target.guid_is_permalink if guid_target else None
        for item in items:
            if not item.guid:
                item.guid = item.url or item.title or self.hash_calculator.calculate_hash(item)
            if explicit_permalink is not None:
                item.guid_is_permalink = explicit_permalink
            else:
                item.guid_is_permalink = item.guid == item.url and is_absolute_url(item.url)

    async def _probe_enclosures(self, session: aiohttp.ClientSession, items: List[FeedItem], referer: Optional[str]) -> None:
        """Fills enclosure length/type from HEAD responses."""
        probed = [item for item in items if is_absolute_url(item.enclosure.url)]
        if not probed:
            return

        semaphore = asyncio.Semaphore(constants.MAX_CONCURRENT_ENCLOSURE_PROBES)

        async def _head(item: FeedItem) -> Dict[str, Any]:
            async with semaphore:
                return await self.fetcher.fetch_file_head(session, item.enclosure.url, referer)

        results = await asyncio.gather(*(_head(item) for item in probed))
        for item, meta in zip(probed, results):
            if not 200 <= meta.get("status", 0) < 300:
                logger.debug(f"[BUILDER] Enclosure probe for {item.enclosure.url} returned {meta.get('status')}")
                continue
            item.enclosure.length = meta.get("content_length") or 0
            if meta.get("content_type"):
                item.enclosure.type = meta["content_type"]

    def _feed_target(self, document: Scope, target: Optional[Target], url: bool = False) -> str:
        if target is None or not target.selector:
            return ""
        raw = self.resolver.resolve(document, target.selector, target.attribute)
        if url:
            return process_links(raw, target.strip_html, target.is_relative, target.base_url)
        return process_words(raw, target.title_case, target.strip_html).strip()

    def _channel_meta(self, document: Scope, schema: ArticleSchema, api_config: ApiConfig, page_url: Optional[str]) -> ChannelMeta:
        """Explicit config wins, then feed-level targets, then document tags."""
        title = (
            api_config.title
            or self._feed_target(document, schema.feed_title)
            or self.resolver.document_title(document)
        )
        description = (
            api_config.description
            or self._feed_target(document, schema.feed_description)
            or self.resolver.meta_content(
                document,
                'meta[property="twitter:description"]',
                'meta[name="twitter:description"]',
                'meta[property="og:description"]',
                'meta[name="description"]',
            )
        )
        language = (
            api_config.language
            or self._feed_target(document, schema.feed_language)
            or self.resolver.document_language(document)
        )
        image = (
            self._feed_target(document, schema.feed_image, url=True)
            or self.resolver.meta_content(document, 'meta[property="og:image"]')
        )
        return ChannelMeta(
            title=title,
            description=description,
            link=api_config.base_url or page_url or "",
            language=language or None,
            image_url=image or None,
            last_build_date=get_utc_now(),
        )

    # =========================================================================
    # API feeds
    # =========================================================================

    def build_rss_from_api_data(self, api_data: Any, feed_config: FeedConfig) -> str:
        """Builds a rendering from a JSON API response using dotted-path mappings."""
        mapping = feed_config.api_mapping or ApiMapping()
        config = feed_config.config

        raw_items = get_path(api_data, mapping.items, [])
        if not isinstance(raw_items, list):
            logger.warning(f"[BUILDER] API path '{mapping.items}' is not a list, feed will be empty")
            raw_items = []

        items = [self._api_item(raw, mapping) for raw in raw_items]
        logger.info(f"[BUILDER] {len(items)} item(s) from API data")

        if feed_config.strict:
            items = filter_strictly(items)
        if feed_config.reverse:
            items.reverse()

        channel = ChannelMeta(
            title=self._api_text(api_data, mapping.feed_title) or config.title or constants.DEFAULT_API_FEED_TITLE,
            description=(
                self._api_text(api_data, mapping.feed_description)
                or config.description
                or constants.DEFAULT_API_FEED_DESCRIPTION
            ),
            link=config.base_url or "",
            language=config.language,
            pub_date=get_utc_now(),
            last_build_date=get_utc_now(),
        )
        return render_rss(channel, items)

    @staticmethod
    def _api_text(data: Any, path: Optional[str]) -> str:
        # An empty path would address the whole object
        if not path:
            return ""
        value = get_path(data, path, "")
        return "" if value is None else str(value).strip()

    @staticmethod
    def _api_categories(data: Any, path: Optional[str]) -> List[str]:
        """A list of strings or named objects, or one comma-separated string."""
        if not path:
            return []
        value = get_path(data, path, None)
        if isinstance(value, str):
            value = value.split(",")
        elif not isinstance(value, list):
            return []

        categories = []
        for entry in value:
            if isinstance(entry, dict):
                entry = next((entry[k] for k in ("name", "label", "term") if entry.get(k)), "")
            name = "" if entry is None else str(entry).strip()
            if name:
                categories.append(name)
        return categories

    def _api_item(self, raw: Any, mapping: ApiMapping) -> FeedItem:
        def text(path: Optional[str]) -> str:
            return self._api_text(raw, path)

        item = FeedItem(
            title=text(mapping.title),
            description=text(mapping.description),
            url=text(mapping.link),
            author=text(mapping.author),
        )
        item.enclosure.url = text(mapping.enclosure)
        item.categories = self._api_categories(raw, mapping.categories)

        date_value = get_path(raw, mapping.date, None) if mapping.date else None
        item.date = process_dates(date_value) if date_value not in (None, "") else get_utc_now()

        item.guid = text(mapping.guid) or item.url or item.title
        if not item.guid:
            item.guid = self.hash_calculator.calculate_simple_hash(json.dumps(raw, sort_keys=True, default=str))
        item.guid_is_permalink = item.guid == item.url and is_absolute_url(item.url)
        return item
