"""
Unit tests for selector resolution and URL mining.
"""

import pytest

from parsers.html_parser import SelectorResolver, mine_url, parse_document


@pytest.fixture
def resolver():
    return SelectorResolver()


@pytest.fixture
def document(sample_listing_html):
    return parse_document(sample_listing_html)


class TestSelectorResolver:
    def test_text_of_match(self, resolver, document):
        assert resolver.resolve(document, "h2.title a") == "first postsecond postthird post"

    def test_attribute_of_first_match(self, resolver, document):
        assert resolver.resolve(document, "h2.title a", "href") == "/posts/1"

    def test_missing_attribute_is_empty(self, resolver, document):
        assert resolver.resolve(document, "h2.title a", "data-missing") == ""

    def test_selector_miss_is_empty(self, resolver, document):
        assert resolver.resolve(document, "article.none") == ""

    def test_invalid_selector_is_empty(self, resolver, document):
        assert resolver.resolve(document, "div[[") == ""

    def test_inner_html_mode(self, resolver, document):
        assert resolver.resolve(document, "p.summary", as_html=True) == "<b>Alpha</b> summary"
        assert resolver.resolve(document, "p.summary") == "Alpha summary"

    def test_resolution_stays_inside_item_scope(self, resolver, document):
        second = resolver.select_all(document, "div.post")[1]
        # The second post has no author; the other posts' authors must not leak in
        assert resolver.resolve(second, "span.by") == ""
        assert resolver.resolve(second, "p.summary") == "Beta summary"

    def test_empty_selector_addresses_scope_element(self, resolver, document):
        link = resolver.select_first(document, "h2.title a")
        assert resolver.resolve(link, "", "href") == "/posts/1"

    def test_resolve_indexed(self, resolver, document):
        assert resolver.resolve_indexed(document, "div.post", 2, "span.by") == "Cy"
        assert resolver.resolve_indexed(document, "div.post", 9, "span.by") == ""

    def test_document_metadata(self, resolver, document):
        assert resolver.document_title(document) == "Example News"
        assert resolver.document_language(document) == "en"
        assert resolver.meta_content(
            document, 'meta[name="description"]', 'meta[property="twitter:description"]'
        ) == "Latest stories from Example"


class TestMineUrl:
    def test_url_text_is_returned_as_is(self):
        assert mine_url("https://example.com/a") == "https://example.com/a"

    def test_href_in_fragment(self):
        assert mine_url('<div><span>Read</span><a href="/story/9">more</a></div>') == "/story/9"

    def test_href_preferred_over_src(self):
        assert mine_url('<div><img src="/i.png"><a href="/p">x</a></div>') == "/p"

    def test_data_attribute(self):
        assert mine_url('<button data-url="https://e.com/go">Go</button>') == "https://e.com/go"

    def test_bare_url_in_text(self):
        assert mine_url("<p>See https://e.com/x for details</p>") == "https://e.com/x"

    def test_tag_root_counts(self):
        tag = parse_document('<a href="/root">r</a>').a
        assert mine_url(tag) == "/root"

    @pytest.mark.parametrize("fragment", ["", None, "<p>nothing here</p>"])
    def test_nothing_to_mine(self, fragment):
        assert mine_url(fragment) == ""
