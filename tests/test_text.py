"""Tests for text cleaning, hashing, language detection, URL and time helpers."""
from datetime import datetime, timedelta

import pytz

from innofeed.pipeline.normalize import (
    Candidate,
    dedup_key,
    extract_company_names,
    normalize_candidate,
)
from innofeed.utils.text import clean_content, clean_html, content_hash, detect_language
from innofeed.utils.time_utils import is_due, local_day_start_utc, parse_interval
from innofeed.utils.urlnorm import extract_domain, is_valid_url, make_absolute, normalize_url


class TestCleanContent:
    """Markup and whitespace normalization."""

    def test_strips_tags_and_collapses_whitespace(self):
        """Tags become spaces and runs of whitespace collapse to one."""
        assert clean_content("<p>Hello</p>\n\n<b>world</b>  ") == "Hello world"

    def test_control_characters_removed(self):
        assert clean_content("a\x00b\x07c") == "a b c"

    def test_idempotent(self):
        """Cleaning twice is the same as cleaning once."""
        raw = "  <div>Parametric\tcover <i>pays</i>\r\nautomatically</div> "
        once = clean_content(raw)
        assert clean_content(once) == once

    def test_empty_input(self):
        assert clean_content("") == ""
        assert clean_content(None) == ""

    def test_clean_html_drops_scripts(self):
        html = "<html><script>var x = 1;</script><p>Body text</p></html>"
        assert clean_html(html) == "Body text"


class TestContentHash:
    """Dedup key stability."""

    def test_case_and_whitespace_insensitive(self):
        assert content_hash("Hello   World") == content_hash("hello world")

    def test_fixed_length(self):
        assert len(content_hash("anything")) == 32

    def test_different_content_differs(self):
        assert content_hash("one") != content_hash("two")

    def test_dedup_key_includes_url(self):
        """Same text under two URLs yields two keys."""
        assert dedup_key("same", "https://a.org/1") != dedup_key("same", "https://a.org/2")


class TestDetectLanguage:
    """Script and diacritic based detection."""

    def test_simplified_chinese(self):
        assert detect_language("平安保险推出新产品") == "zh-CN"

    def test_traditional_chinese_marker(self):
        assert detect_language("繁體中文保險") == "zh-TW"

    def test_japanese_with_kanji_and_kana(self):
        """Kana alongside Han characters is Japanese, not Chinese."""
        assert detect_language("保険会社がサービスを開始") == "ja"

    def test_korean(self):
        assert detect_language("보험 혁신") == "ko"

    def test_german_diacritics(self):
        assert detect_language("Versicherung für Häuser") == "de"

    def test_default_english(self):
        assert detect_language("Insurer launches embedded cover") == "en"
        assert detect_language("") == "en"


class TestUrlHelpers:
    """URL normalization and resolution."""

    def test_tracking_params_removed(self):
        url = "https://News.Example.org/story/?utm_source=x&id=7&fbclid=abc#top"
        assert normalize_url(url) == "https://news.example.org/story?id=7"

    def test_query_params_sorted(self):
        assert normalize_url("https://a.org/p?b=2&a=1") == "https://a.org/p?a=1&b=2"

    def test_extract_domain(self):
        assert extract_domain("https://WWW.PingAn.com/news") == "www.pingan.com"
        assert extract_domain("not a url") == ""

    def test_is_valid_url(self):
        assert is_valid_url("https://a.org/x")
        assert not is_valid_url("ftp://a.org/x")
        assert not is_valid_url("/relative/path")

    def test_make_absolute(self):
        assert make_absolute("https://a.org/news/", "item/1") == "https://a.org/news/item/1"
        assert make_absolute("https://a.org/news/", "/item/1") == "https://a.org/item/1"
        assert make_absolute("https://a.org/", "javascript:void(0)") is None
        assert make_absolute("https://a.org/", None) is None


class TestTimeUtils:
    """Interval parsing, due checks and the local day boundary."""

    def test_parse_interval(self):
        assert parse_interval("4 hours") == timedelta(hours=4)
        assert parse_interval("30 minutes") == timedelta(minutes=30)
        assert parse_interval("1 day") == timedelta(days=1)
        assert parse_interval("whenever") is None

    def test_never_checked_is_due(self):
        assert is_due(None, "4 hours")

    def test_unparseable_interval_is_due(self):
        assert is_due(datetime(2026, 1, 1), "sometimes", now=datetime(2026, 1, 1, 0, 1))

    def test_interval_elapsed(self):
        last = datetime(2026, 1, 1, 0, 0)
        assert not is_due(last, "4 hours", now=datetime(2026, 1, 1, 3, 59))
        assert is_due(last, "4 hours", now=datetime(2026, 1, 1, 4, 1))

    def test_local_day_start_shanghai(self):
        """Midnight in Shanghai is 16:00 UTC of the previous day."""
        now = pytz.UTC.localize(datetime(2026, 3, 10, 2, 0))
        assert local_day_start_utc("Asia/Shanghai", now) == datetime(2026, 3, 9, 16, 0)

    def test_local_day_start_after_local_midnight(self):
        now = pytz.UTC.localize(datetime(2026, 3, 10, 17, 0))
        assert local_day_start_utc("Asia/Shanghai", now) == datetime(2026, 3, 10, 16, 0)


class TestNormalizeCandidate:
    """Candidate cleaning before dedup."""

    def test_html_content_cleaned(self):
        item = normalize_candidate(Candidate(
            title="  Insurer <b>launches</b> cover ",
            url="https://a.org/x?utm_source=rss",
            content="<p>Body</p>",
            is_html=True,
        ))
        assert item.title == "Insurer launches cover"
        assert item.content == "Body"
        assert item.source_url == "https://a.org/x"
        assert item.content_hash == dedup_key("Body", "https://a.org/x")

    def test_empty_content_falls_back_to_title(self):
        item = normalize_candidate(Candidate(title="A long enough title", url="https://a.org/y"))
        assert item.content == "A long enough title"

    def test_missing_title_or_url_dropped(self):
        assert normalize_candidate(Candidate(title="", url="https://a.org/z")) is None
        assert normalize_candidate(Candidate(title="Title", url="")) is None

    def test_tracking_params_do_not_change_key(self):
        a = normalize_candidate(Candidate(title="T", url="https://a.org/x?utm_medium=1", content="c"))
        b = normalize_candidate(Candidate(title="T", url="https://a.org/x", content="c"))
        assert a.content_hash == b.content_hash


class TestExtractCompanyNames:
    def test_suffix_pattern_and_known_names(self):
        text = "Ping An Insurance partners with Lemonade and 众安 on embedded cover."
        names = extract_company_names(text)
        assert "Ping An" in names
        assert "Lemonade" in names
        assert "众安" in names

    def test_deduplicated(self):
        names = extract_company_names("Lemonade said Lemonade will expand.")
        assert names.count("Lemonade") == 1

    def test_empty(self):
        assert extract_company_names("") == []
