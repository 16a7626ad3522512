"""
Unit tests for DrillChainNavigator.

Tests cover:
- Empty chain no-op
- Multi-hop navigation over direct HTTP
- Abort semantics (selector miss, fetch failure, oversized response)
- URL mining on the terminal step
- Browser session reuse and release
- Anti-bot proxy transport
"""

import pytest

from models.target import DrillStep, FlareSolverrConfig
from services.scraper.drill_chain import DrillChainNavigator
from services.scraper.fetcher import DocumentFetcher

LIST_URL = "https://e.com/list"
DETAIL_URL = "https://e.com/detail/1"

LIST_HTML = '<html><body><a class="more" href="/detail/1">Read more</a></body></html>'
DETAIL_HTML = "<html><body><h1> Detail Title </h1><div class='dl'><a href='/file.pdf'>Get</a></div></body></html>"


def steps(*specs):
    return [DrillStep.model_validate(spec) for spec in specs]


@pytest.fixture
def navigator():
    return DrillChainNavigator(fetcher=DocumentFetcher())


@pytest.fixture
def routes(fake_response):
    return {
        LIST_URL: fake_response(LIST_HTML),
        DETAIL_URL: fake_response(DETAIL_HTML),
    }


class TestDrillChainHttp:
    @pytest.mark.asyncio
    async def test_empty_chain_is_noop(self, navigator, fake_session, routes):
        session = fake_session(routes)
        assert await navigator.resolve_drill_chain(LIST_URL, [], session=session) == ""
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_two_hops_from_url(self, navigator, fake_session, routes):
        session = fake_session(routes)
        chain = steps({"selector": "a.more", "attribute": "href"}, {"selector": "h1"})

        result = await navigator.resolve_drill_chain(LIST_URL, chain, session=session)

        assert result == "Detail Title"
        assert [c["url"] for c in session.calls] == [LIST_URL, DETAIL_URL]

    @pytest.mark.asyncio
    async def test_start_from_markup_needs_no_fetch(self, navigator, fake_session):
        session = fake_session({})
        result = await navigator.resolve_drill_chain(DETAIL_HTML, steps({"selector": "h1"}), session=session)
        assert result == "Detail Title"
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_intermediate_miss_aborts(self, navigator, fake_session, routes):
        session = fake_session(routes)
        chain = steps({"selector": "a.nope", "attribute": "href"}, {"selector": "h1"})

        assert await navigator.resolve_drill_chain(LIST_URL, chain, session=session) == ""
        assert [c["url"] for c in session.calls] == [LIST_URL]

    @pytest.mark.asyncio
    async def test_terminal_miss_is_empty(self, navigator, fake_session, routes):
        session = fake_session(routes)
        chain = steps({"selector": "a.more", "attribute": "href"}, {"selector": "h3.none"})
        assert await navigator.resolve_drill_chain(LIST_URL, chain, session=session) == ""

    @pytest.mark.asyncio
    async def test_fetch_failure_aborts(self, navigator, fake_session, fake_response):
        session = fake_session({LIST_URL: fake_response(LIST_HTML)})
        chain = steps({"selector": "a.more", "attribute": "href"}, {"selector": "h1"})
        assert await navigator.resolve_drill_chain(LIST_URL, chain, session=session) == ""

    @pytest.mark.asyncio
    async def test_http_error_status_aborts(self, navigator, fake_session, fake_response):
        session = fake_session({LIST_URL: fake_response("gone", status=404)})
        assert await navigator.resolve_drill_chain(LIST_URL, steps({"selector": "h1"}), session=session) == ""

    @pytest.mark.asyncio
    async def test_oversized_response_aborts(self, fake_session, fake_response):
        navigator = DrillChainNavigator(fetcher=DocumentFetcher(max_bytes=100))
        session = fake_session({LIST_URL: fake_response("<h1>" + "x" * 500 + "</h1>")})
        assert await navigator.resolve_drill_chain(LIST_URL, steps({"selector": "h1"}), session=session) == ""

    @pytest.mark.asyncio
    async def test_declared_length_over_cap_aborts(self, navigator, fake_session, fake_response):
        session = fake_session({LIST_URL: fake_response("<h1>x</h1>", content_length=3 * 1024 * 1024)})
        assert await navigator.resolve_drill_chain(LIST_URL, steps({"selector": "h1"}), session=session) == ""

    @pytest.mark.asyncio
    async def test_relative_step_joins_base(self, navigator, fake_session, fake_response):
        session = fake_session({
            "https://e.com/p/2": fake_response("<h1>Page two</h1>"),
        })
        start = '<a class="next" href="p/2">next</a>'
        chain = steps(
            {"selector": "a.next", "attribute": "href", "isRelative": True, "baseUrl": "https://e.com/"},
            {"selector": "h1"},
        )
        assert await navigator.resolve_drill_chain(start, chain, session=session) == "Page two"

    @pytest.mark.asyncio
    async def test_hop_relative_to_page_url(self, navigator, fake_session, routes):
        session = fake_session(routes)
        chain = steps({"selector": "a.more", "attribute": "href"}, {"selector": "h1"})
        result = await navigator.resolve_drill_chain(LIST_HTML, chain, session=session, page_url=LIST_URL)
        assert result == "Detail Title"


class TestDrillChainUrlMining:
    @pytest.mark.asyncio
    async def test_terminal_url_mined_from_markup(self, navigator):
        chain = steps({"selector": "div.dl"})
        assert await navigator.resolve_drill_chain(DETAIL_HTML, chain, expect_url=True) == "/file.pdf"

    @pytest.mark.asyncio
    async def test_mined_url_made_absolute(self, navigator):
        chain = steps({"selector": "div.dl", "isRelative": True, "baseUrl": "https://cdn.e.com"})
        result = await navigator.resolve_drill_chain(DETAIL_HTML, chain, expect_url=True)
        assert result == "https://cdn.e.com/file.pdf"

    @pytest.mark.asyncio
    async def test_url_value_is_kept(self, navigator):
        chain = steps({"selector": "div.dl a", "attribute": "href"})
        assert await navigator.resolve_drill_chain(DETAIL_HTML, chain, expect_url=True) == "/file.pdf"

    @pytest.mark.asyncio
    async def test_text_without_url_expectation_is_plain(self, navigator):
        chain = steps({"selector": "div.dl"})
        assert await navigator.resolve_drill_chain(DETAIL_HTML, chain) == "Get"


class TestDrillChainBrowser:
    @pytest.mark.asyncio
    async def test_single_session_reused_and_released(self, browser_factory):
        make, instances = browser_factory
        navigator = DrillChainNavigator(
            fetcher=DocumentFetcher(),
            browser_factory=make({LIST_URL: LIST_HTML, DETAIL_URL: DETAIL_HTML}),
        )
        chain = steps({"selector": "a.more", "attribute": "href"}, {"selector": "h1"})

        result = await navigator.resolve_drill_chain(LIST_URL, chain, use_advanced=True)

        assert result == "Detail Title"
        assert len(instances) == 1
        assert instances[0].visited == [LIST_URL, DETAIL_URL]
        assert instances[0].closed

    @pytest.mark.asyncio
    async def test_released_when_step_misses(self, browser_factory):
        make, instances = browser_factory
        navigator = DrillChainNavigator(fetcher=DocumentFetcher(), browser_factory=make({LIST_URL: LIST_HTML}))
        chain = steps({"selector": "a.nope", "attribute": "href"}, {"selector": "h1"})

        assert await navigator.resolve_drill_chain(LIST_URL, chain, use_advanced=True) == ""
        assert instances[0].closed

    @pytest.mark.asyncio
    async def test_launch_failure_is_contained(self, browser_factory):
        make, instances = browser_factory
        navigator = DrillChainNavigator(fetcher=DocumentFetcher(), browser_factory=make(fail_on_enter=True))

        assert await navigator.resolve_drill_chain(LIST_URL, steps({"selector": "h1"}), use_advanced=True) == ""
        assert instances[0].closed

    @pytest.mark.asyncio
    async def test_no_browser_for_markup_only_chain(self, browser_factory):
        make, instances = browser_factory
        navigator = DrillChainNavigator(fetcher=DocumentFetcher(), browser_factory=make())

        assert await navigator.resolve_drill_chain(DETAIL_HTML, steps({"selector": "h1"}), use_advanced=True) == "Detail Title"
        assert instances == []


class TestDrillChainFlareSolverr:
    FS = FlareSolverrConfig(enabled=True, server_url="http://fs:8191", timeout=30000)

    @pytest.mark.asyncio
    async def test_fetch_delegated_to_proxy(self, navigator, fake_session, fake_response, browser_factory):
        make, instances = browser_factory
        navigator.browser_factory = make()
        session = fake_session({
            "http://fs:8191/v1": fake_response(json_data={
                "status": "ok",
                "solution": {"status": 200, "response": "<h1>Solved</h1>"},
            }),
        })

        result = await navigator.resolve_drill_chain(
            LIST_URL,
            steps({"selector": "h1"}),
            use_advanced=True,
            flaresolverr=self.FS,
            cookies=[{"name": "sid", "value": "abc"}],
            session=session,
        )

        assert result == "Solved"
        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["json"] == {
            "cmd": "request.get",
            "url": LIST_URL,
            "maxTimeout": 30000,
            "cookies": [{"name": "sid", "value": "abc"}],
        }
        # Proxy wins over the browser
        assert instances == []

    @pytest.mark.asyncio
    async def test_bad_inner_status_is_hard_failure(self, navigator, fake_session, fake_response):
        session = fake_session({
            "http://fs:8191/v1": fake_response(json_data={
                "status": "error",
                "message": "Challenge not solved",
                "solution": {"status": 403, "response": "<h1>Blocked</h1>"},
            }),
            LIST_URL: fake_response("<h1>Direct</h1>"),
        })

        result = await navigator.resolve_drill_chain(
            LIST_URL, steps({"selector": "h1"}), flaresolverr=self.FS, session=session
        )

        assert result == ""
        assert all(c["method"] == "POST" for c in session.calls)

    @pytest.mark.asyncio
    async def test_malformed_reply_is_hard_failure(self, navigator, fake_session, fake_response):
        session = fake_session({"http://fs:8191/v1": fake_response("not json")})
        result = await navigator.resolve_drill_chain(
            LIST_URL, steps({"selector": "h1"}), flaresolverr=self.FS, session=session
        )
        assert result == ""
