"""
Unit tests for settings parsing and validation.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestDefaultHeaders:
    def test_json_string(self):
        s = make_settings(DEFAULT_HEADERS='{"X-Api-Key": "abc", "X-Num": 1}')
        assert s.DEFAULT_HEADERS == {"X-Api-Key": "abc", "X-Num": "1"}

    def test_pasted_assignment_and_quotes(self):
        s = make_settings(DEFAULT_HEADERS="DEFAULT_HEADERS='{\"A\": \"b\"}'")
        assert s.DEFAULT_HEADERS == {"A": "b"}

    def test_blank_is_empty(self):
        assert make_settings(DEFAULT_HEADERS="  ").DEFAULT_HEADERS == {}

    def test_invalid_json_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(DEFAULT_HEADERS="not json")


class TestValidateAll:
    def test_defaults_are_valid(self):
        assert not [m for m in make_settings().validate_all() if "❌" in m]

    def test_proxy_enabled_without_url(self):
        errors = make_settings(FLARESOLVERR_ENABLED=True).validate_all()
        assert any("FLARESOLVERR_URL is missing" in e for e in errors)

    def test_proxy_url_scheme(self):
        errors = make_settings(FLARESOLVERR_URL="fs:8191").validate_all()
        assert any("must start with http" in e for e in errors)

    def test_blank_proxy_url_is_none(self):
        assert make_settings(FLARESOLVERR_URL="").FLARESOLVERR_URL is None

    def test_non_positive_limits(self):
        errors = make_settings(MAX_RESPONSE_BYTES=0, UPDATE_INTERVAL=-1).validate_all()
        assert sum("❌" in e for e in errors) == 2

    def test_unknown_log_format_is_warning(self):
        errors = make_settings(LOG_FORMAT="xml").validate_all()
        assert errors and all("⚠️" in e for e in errors)
