import pytest
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import aiohttp

# =============================================================================
# Fake aiohttp plumbing
# =============================================================================


class FakeContent:
    def __init__(self, body: bytes, chunk_size: int = 1024):
        self._body = body
        self._chunk_size = chunk_size

    async def iter_chunked(self, n: int):
        size = min(n, self._chunk_size)
        for start in range(0, len(self._body), size):
            yield self._body[start:start + size]


class FakeResponse:
    """Just enough of aiohttp.ClientResponse for the fetch code paths."""

    def __init__(
        self,
        body: Any = b"",
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        json_data: Any = None,
        content_length: Optional[int] = None,
        charset: Optional[str] = "utf-8",
    ):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        self.status = status
        self.headers = headers or {}
        self._json = json_data
        self.content_length = content_length
        self.charset = charset
        self.content = FakeContent(body)

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                request_info=Mock(real_url="http://fake"), history=(), status=self.status, message="error"
            )

    async def json(self, content_type=None):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    async def text(self):
        return self.body.decode("utf-8", errors="replace")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Records requests and answers from a url -> response (or exception) map.
    Unknown URLs raise aiohttp.ClientConnectionError.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _respond(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.routes.get(url)
        if response is None:
            raise aiohttp.ClientConnectionError(f"no route for {url}")
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def head(self, url, **kwargs):
        return self._respond("HEAD", url, **kwargs)

    def request(self, method, url, **kwargs):
        return self._respond(method, url, **kwargs)

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False


class FakeBrowser:
    """Stands in for BrowserSession; tracks whether it was released."""

    instances: List["FakeBrowser"] = []

    def __init__(self, pages: Dict[str, str], cookies=None, fail_on_enter: bool = False):
        self.pages = pages
        self.cookies = cookies
        self.fail_on_enter = fail_on_enter
        self.entered = False
        self.closed = False
        self.visited: List[str] = []
        FakeBrowser.instances.append(self)

    async def __aenter__(self):
        from core.exceptions import BrowserException

        self.entered = True
        if self.fail_on_enter:
            self.closed = True
            raise BrowserException("launch failed")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def fetch(self, url: str) -> str:
        self.visited.append(url)
        return self.pages.get(url, "<html><body></body></html>")


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def browser_factory():
    """Returns (factory, instances) where factory builds FakeBrowser sessions."""
    FakeBrowser.instances = []

    def make(pages: Optional[Dict[str, str]] = None, fail_on_enter: bool = False):
        def factory(cookies=None):
            return FakeBrowser(pages or {}, cookies=cookies, fail_on_enter=fail_on_enter)
        return factory

    return make, FakeBrowser.instances


@pytest.fixture
def mock_aiohttp_session():
    """Mock aiohttp ClientSession."""
    session = AsyncMock()

    response = AsyncMock()
    response.status = 200
    response.text = AsyncMock(return_value="ok")
    response.headers = {"Content-Type": "application/json"}

    session.post.return_value.__aenter__.return_value = response
    return session


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_listing_html() -> str:
    """A news listing page with three articles."""
    return """
    <html lang="en">
    <head>
        <title>Example News</title>
        <meta property="twitter:description" content="Latest stories from Example">
    </head>
    <body>
        <div class="post">
            <h2 class="title"><a href="/posts/1">first post</a></h2>
            <p class="summary"><b>Alpha</b> summary</p>
            <span class="date">2024-01-15</span>
            <span class="by">Ann</span>
        </div>
        <div class="post">
            <h2 class="title"><a href="/posts/2">second post</a></h2>
            <p class="summary">Beta summary</p>
            <span class="date">1700000000</span>
        </div>
        <div class="post">
            <h2 class="title"><a href="https://other.example.com/3">third post</a></h2>
            <p class="summary">Gamma summary</p>
            <span class="date">Mon, 15 Jan 2024 10:00:00 GMT</span>
            <span class="by">Cy</span>
        </div>
    </body>
    </html>
    """


@pytest.fixture
def sample_schema_data() -> Dict[str, Any]:
    return {
        "iterator": {"selector": "div.post"},
        "title": {"selector": "h2.title a", "titleCase": True},
        "description": {"selector": "p.summary"},
        "link": {
            "selector": "h2.title a",
            "attribute": "href",
            "isRelative": True,
            "baseUrl": "https://example.com",
        },
        "date": {"selector": "span.date"},
        "author": {"selector": "span.by"},
    }


@pytest.fixture
def sample_schema(sample_schema_data):
    from models.target import ArticleSchema

    return ArticleSchema.model_validate(sample_schema_data)


def _rss(items: List[Dict[str, str]]) -> str:
    body = []
    for item in items:
        parts = [f"<title>{item.get('title', '')}</title>"]
        if "link" in item:
            parts.append(f"<link>{item['link']}</link>")
        if "guid" in item:
            parts.append(f"<guid>{item['guid']}</guid>")
        body.append("<item>" + "".join(parts) + "</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Feed</title><link>https://example.com</link>'
        "<description>Test feed</description>" + "".join(body) + "</channel></rss>"
    )


@pytest.fixture
def make_rss():
    """Builds a minimal RSS document from item dicts (title/link/guid)."""
    return _rss
