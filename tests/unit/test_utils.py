import pytest
from datetime import datetime, timedelta, timezone

from core.utils import UTC, get_path, is_absolute_url, looks_like_url, safe_filename, to_utc, truncate_text


class TestGetPath:
    DATA = {"data": {"items": [{"title": "a"}, {"title": "b"}]}, "n": None}

    def test_nested_dicts_and_lists(self):
        assert get_path(self.DATA, "data.items.1.title") == "b"
        assert get_path(self.DATA, "data.items.-1.title") == "b"

    def test_missing_returns_default(self):
        assert get_path(self.DATA, "data.nope", "d") == "d"
        assert get_path(self.DATA, "data.items.5.title", "d") == "d"
        assert get_path(self.DATA, "data.items.x") is None
        assert get_path(self.DATA, "n.deeper", "d") == "d"

    def test_empty_path_is_whole_object(self):
        assert get_path(self.DATA, "") is self.DATA


class TestUrls:
    @pytest.mark.parametrize("value", ["https://e.com", "http://e.com/x", "//cdn.e.com/a", "/root/path"])
    def test_url_like(self, value):
        assert looks_like_url(value)

    @pytest.mark.parametrize("value", ["", None, "relative/path", "<a href='/x'>", "mailto:x@e.com"])
    def test_not_url_like(self, value):
        assert not looks_like_url(value)

    def test_absolute(self):
        assert is_absolute_url("ftp://e.com/file")
        assert not is_absolute_url("/path")
        assert not is_absolute_url("//cdn.e.com")


class TestMisc:
    def test_to_utc(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert to_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        kst = datetime(2024, 1, 1, 21, 0, tzinfo=timezone(timedelta(hours=9)))
        assert to_utc(kst) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_truncate(self):
        assert truncate_text("abcdef", 5) == "ab..."
        assert truncate_text("abc", 5) == "abc"

    def test_safe_filename(self):
        assert safe_filename("a/b:c") == "a_b_c"
        assert safe_filename("..") == "_"
