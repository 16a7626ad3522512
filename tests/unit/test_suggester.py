"""
Unit tests for SelectorSuggester.

Tests cover:
- Iterator choice over navigation lists
- Child selectors, attributes and date formats
- Relative URL detection
- Pages without repeating structure
- HTTP and anti-bot proxy fetching
"""

import pytest
from bs4 import BeautifulSoup

from core.config import settings
from core.exceptions import NetworkException, ParsingException
from models.target import FlareSolverrConfig
from services.scraper.suggester import (
    SelectorSuggester,
    detect_date_format,
    is_relative_url,
    is_stable_class_token,
    root_url,
    specificity_bonus,
)

URL = "https://example.com/news/index.html"

STORIES = [
    ("Library opens new reading room", "The central library unveiled a quiet reading room with extended evening access.", "2024-01-15", "January 15, 2024"),
    ("Bridge repairs finish early", "Crews completed the bridge repairs two weeks ahead of the planned schedule.", "2024-01-16", "January 16, 2024"),
    ("Market adds weekend hours", "The farmers market will now open on Saturdays and Sundays through the summer.", "2024-01-17", "January 17, 2024"),
    ("School choir wins regional prize", "Forty students took first place at the regional choir festival last weekend.", "2024-01-18", "January 18, 2024"),
]


def listing_html() -> str:
    articles = "".join(
        f"""
        <article class="post">
          <h2 class="post-title"><a href="/news/{i}">{title}</a></h2>
          <time datetime="{stamp}">{shown}</time>
          <p class="summary">{summary}</p>
          <img src="/img/{i}.jpg" alt="">
        </article>"""
        for i, (title, summary, stamp, shown) in enumerate(STORIES, start=1)
    )
    return f"""
    <html><body>
      <nav><ul>
        <li><a href="/">Home</a></li>
        <li><a href="/about">About</a></li>
        <li><a href="/contact">Contact</a></li>
      </ul></nav>
      <main>{articles}</main>
    </body></html>
    """


@pytest.fixture
def suggester():
    return SelectorSuggester()


class TestSuggestFromHtml:
    def test_iterator_skips_navigation(self, suggester):
        schema = suggester.suggest_from_html(listing_html(), URL)

        document = BeautifulSoup(listing_html(), "html.parser")
        items = document.select(schema.iterator.selector)
        assert len(items) == 4
        assert all(item.name == "article" for item in items)

    def test_child_selectors(self, suggester):
        schema = suggester.suggest_from_html(listing_html(), URL)

        assert schema.title.selector == "h2.post-title"
        assert schema.description.selector == "p.summary"
        assert schema.date.selector == "time"
        assert schema.date.attribute == "datetime"
        assert schema.date.date_format == "YYYY-MM-DD"
        assert schema.author is None

    def test_link_is_relative_to_site_root(self, suggester):
        schema = suggester.suggest_from_html(listing_html(), URL)

        document = BeautifulSoup(listing_html(), "html.parser")
        first = document.select(schema.iterator.selector)[0]
        assert first.select_one(schema.link.selector)["href"] == "/news/1"
        assert schema.link.attribute == "href"
        assert schema.link.is_relative is True
        assert schema.link.base_url == "https://example.com"

    def test_absolute_links_not_marked_relative(self, suggester):
        html = listing_html().replace('href="/news/', 'href="https://example.com/news/')
        schema = suggester.suggest_from_html(html, URL)

        assert schema.link.is_relative is False
        assert schema.link.base_url is None

    def test_enclosure_uses_image_source(self, suggester):
        schema = suggester.suggest_from_html(listing_html(), URL)

        assert schema.enclosure.attribute == "src"
        assert schema.enclosure.is_relative is True

    def test_no_repeating_structure(self, suggester):
        with pytest.raises(ParsingException, match="No common repeating parent"):
            suggester.suggest_from_html("<html><body><p>Only one paragraph</p></body></html>", URL)

    def test_main_content_area_prefers_main(self, suggester):
        document = BeautifulSoup(listing_html(), "html.parser")
        assert suggester.find_main_content_area(document).name == "main"


class TestHelpers:
    @pytest.mark.parametrize("text,expected", [
        ("2024-01-15", "YYYY-MM-DD"),
        ("2024/01/15 10:00", "YYYY-MM-DD"),
        ("01-15-2024", "MM-DD-YYYY"),
        ("15.01.2024", "DD.MM.YYYY"),
        ("2024.01.15", "YYYY.MM.DD"),
        ("20240115", "YYYYMMDD"),
        ("15 January 2024", "D MMMM YYYY"),
        ("January 15, 2024", "MMMM D, YYYY"),
        ("January 2024", "MMMM YYYY"),
        ("1/5/2024", "M/D/YYYY"),
        ("yesterday", None),
        ("", None),
    ])
    def test_detect_date_format(self, text, expected):
        assert detect_date_format(text) == expected

    @pytest.mark.parametrize("token,expected", [
        ("post-title", True),
        ("headline", True),
        ("css-1q2w3e4r", False),
        ("a8f3k2j9x1", False),
        ("text-lg", False),
        ("2col", False),
        ("", False),
    ])
    def test_stable_class_tokens(self, token, expected):
        assert is_stable_class_token(token) is expected

    def test_relative_urls(self):
        assert is_relative_url("/news/1") is True
        assert is_relative_url("news/1") is True
        assert is_relative_url("//cdn.example.com/a.jpg") is False
        assert is_relative_url("HTTPS://example.com/a") is False
        assert is_relative_url("") is False

    def test_root_url(self):
        assert root_url("https://example.com:8080/a/b?c=1") == "https://example.com:8080"
        assert root_url("not a url") == ""

    def test_specificity_bonus(self):
        assert specificity_bonus("#main") == 8
        assert specificity_bonus("div.post > a[href]") == 7
        assert specificity_bonus("a") == 0


class TestSuggestSelectors:
    FS = FlareSolverrConfig(enabled=True, server_url="http://fs:8191")

    @pytest.mark.asyncio
    async def test_plain_http_fetch(self, suggester, fake_session, fake_response, monkeypatch):
        monkeypatch.setattr(settings, "FLARESOLVERR_ENABLED", False)
        session = fake_session({URL: fake_response(listing_html())})

        schema = await suggester.suggest_selectors(URL, session=session)

        assert session.calls[0]["method"] == "GET"
        assert schema.title.selector == "h2.post-title"
        assert session.closed is False

    @pytest.mark.asyncio
    async def test_fetch_through_proxy(self, suggester, fake_session, fake_response):
        session = fake_session({
            "http://fs:8191/v1": fake_response(json_data={
                "status": "ok",
                "solution": {"status": 200, "response": listing_html()},
            }),
        })

        schema = await suggester.suggest_selectors(
            URL, flaresolverr=self.FS, cookies=[{"name": "sid", "value": "abc"}], session=session
        )

        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["json"]["cmd"] == "request.get"
        assert call["json"]["url"] == URL
        assert call["json"]["cookies"] == [{"name": "sid", "value": "abc"}]
        assert schema.link.base_url == "https://example.com"

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, suggester, fake_session, monkeypatch):
        monkeypatch.setattr(settings, "FLARESOLVERR_ENABLED", False)
        with pytest.raises(NetworkException):
            await suggester.suggest_selectors(URL, session=fake_session({}))
