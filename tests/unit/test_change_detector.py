"""
Unit tests for FeedDiff.
"""

import pytest

from parsers.rss_parser import count_items, identities, parse_rss_to_dict
from services.components.change_detector import FeedDiff, get_new_items_from_rss


@pytest.fixture
def diff():
    return FeedDiff()


class TestFeedDiff:
    def test_first_run_everything_is_new(self, diff, make_rss):
        new = make_rss([{"title": "a", "guid": "g1"}])
        assert diff.get_new_items_from_rss(new, None) == new
        assert diff.get_new_items_from_rss(new, "") == new

    def test_only_unseen_items_kept(self, diff, make_rss):
        old = make_rss([{"title": "one", "guid": "guid1"}, {"title": "two", "guid": "guid2"}])
        new = make_rss([
            {"title": "one", "guid": "guid1"},
            {"title": "two", "guid": "guid2"},
            {"title": "three", "guid": "guid3"},
        ])

        result = diff.get_new_items_from_rss(new, old)

        assert identities(result) == ["guid3"]
        feed = parse_rss_to_dict(result)
        assert feed["title"] == "Feed"
        assert feed["items"][0]["title"] == "three"

    def test_identical_renderings_yield_none(self, diff, make_rss):
        xml = make_rss([{"title": "one", "guid": "guid1"}])
        assert diff.get_new_items_from_rss(xml, xml) is None
        assert not diff.has_changes(xml, xml)

    def test_link_is_identity_without_guid(self, diff, make_rss):
        old = make_rss([{"title": "a", "link": "https://e.com/a"}])
        new = make_rss([{"title": "a", "link": "https://e.com/a"}, {"title": "b", "link": "https://e.com/b"}])
        assert identities(diff.get_new_items_from_rss(new, old)) == ["https://e.com/b"]

    def test_unidentifiable_items_dropped(self, diff, make_rss):
        old = make_rss([{"title": "a", "guid": "g1"}])
        new = make_rss([{"title": "no id"}, {"title": "b", "guid": "g2"}])
        result = diff.get_new_items_from_rss(new, old)
        assert count_items(result) == 1
        assert identities(result) == ["g2"]

    def test_malformed_previous_treated_as_first_run(self, diff, make_rss):
        new = make_rss([{"title": "a", "guid": "g1"}])
        assert diff.get_new_items_from_rss(new, "<rss><channel>") == new

    def test_malformed_new_is_returned_as_is(self, diff, make_rss):
        old = make_rss([{"title": "a", "guid": "g1"}])
        assert diff.get_new_items_from_rss("not xml", old) == "not xml"

    def test_result_is_valid_rss(self, diff, make_rss):
        old = make_rss([{"title": "a", "guid": "g1"}])
        new = make_rss([{"title": "b & c", "guid": "g2"}]).replace("b & c", "b &amp; c")
        result = diff.get_new_items_from_rss(new, old)
        assert result.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert parse_rss_to_dict(result)["items"][0]["title"] == "b & c"

    def test_module_level_helper(self, make_rss):
        xml = make_rss([{"title": "a", "guid": "g1"}])
        assert get_new_items_from_rss(xml, xml) is None

    def test_unencodable_rendering_treated_as_all_new(self, diff, make_rss):
        old = make_rss([{"title": "a", "guid": "g1"}])
        new = make_rss([{"title": "emoji \ud83d", "guid": "g2"}])
        assert diff.get_new_items_from_rss(new, old) == new
        assert diff.get_new_items_from_rss(old, new) == old
