"""Tests for response extraction strategies and URL normalization."""

import pytest

from loopreel.api.extraction import (
    deep_scan,
    extract_first,
    field_path,
    first_value,
    looks_like_video_url,
    normalize_video_url,
)


class TestFieldPath:
    def test_nested_dict_and_list(self):
        data = {"data": {"videos": [{"url": " https://cdn/a.mp4 "}]}}
        assert field_path("data", "videos", 0, "url")(data) == "https://cdn/a.mp4"

    def test_missing_or_wrong_shape(self):
        strategy = field_path("data", "videos", 0)
        assert strategy({}) is None
        assert strategy({"data": {"videos": []}}) is None
        assert strategy({"data": "not a dict"}) is None
        assert strategy(None) is None

    def test_numbers_become_strings_but_not_booleans(self):
        assert field_path("id")({"id": 42}) == "42"
        assert field_path("id")({"id": True}) is None
        assert field_path("id")({"id": "   "}) is None

    def test_name_is_the_dotted_path(self):
        assert field_path("data", "videos", 0).name == "data.videos.0"


class TestDeepScan:
    @pytest.mark.parametrize("value, expected", [
        ("https://cdn/a.mp4", True),
        ("http://cdn/A.MP4?sig=1", True),
        ("https://cdn/video/123", True),
        ("https://cdn/poster.jpg", False),
        ("/relative/a.mp4", False),
        ("ftp://cdn/a.mp4", False),
    ])
    def test_looks_like_video_url(self, value, expected):
        assert looks_like_video_url(value) is expected

    def test_finds_first_match_depth_first(self):
        data = {
            "meta": {"thumb": "https://cdn/t.png"},
            "items": [{"src": "https://cdn/first.mp4"}, {"src": "https://cdn/second.mp4"}],
        }
        assert deep_scan(data) == "https://cdn/first.mp4"

    def test_nothing_found(self):
        assert deep_scan({"a": [1, 2, {"b": None}]}) is None


class TestStrategyOrder:
    def test_first_hit_wins_and_reports_its_name(self):
        data = {"url": "https://cdn/plain.mp4", "output": {"url": "https://cdn/output.mp4"}}
        strategies = [field_path("output", "url"), field_path("url"), deep_scan]

        assert extract_first(data, strategies) == ("output.url", "https://cdn/output.mp4")
        assert first_value(data, strategies[1:]) == "https://cdn/plain.mp4"

    def test_deep_scan_as_last_resort(self):
        data = {"unexpected": {"shape": ["https://cdn/found.mp4"]}}
        assert extract_first(data, [field_path("url"), deep_scan]) == ("deep_scan", "https://cdn/found.mp4")

    def test_no_strategy_matches(self):
        assert extract_first({}, [field_path("url"), deep_scan]) is None
        assert first_value({}, []) is None


class TestNormalizeVideoUrl:
    BASE = "https://api-beijing.klingai.com/"

    def test_absolute_urls_unchanged(self):
        assert normalize_video_url(self.BASE, "https://cdn/a.mp4") == "https://cdn/a.mp4"

    def test_rooted_path(self):
        assert normalize_video_url(self.BASE, "/files/a.mp4") == "https://api-beijing.klingai.com/files/a.mp4"

    def test_bare_file_id(self):
        assert normalize_video_url(self.BASE, "abc123") == "https://api-beijing.klingai.com/v1/files/abc123"
