"""
Tests for dictionary entry extraction: the pure HTML parser, the
Playwright-driven extractor (with a stand-in page) and the registry.
"""

from pathlib import Path

import pytest
from hypothesis import given, strategies as st
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from lexicon_harvester.crawlers import (
    HANZII_SCHEMA,
    BaseExtractor,
    ExtractorRegistry,
    HanziiExtractor,
    default_registry,
    parse_entry
)
from lexicon_harvester.crawlers.hanzii_extractor import NOT_FOUND, clean_value
from lexicon_harvester.utils.errors import ConfigurationError, ExtractionError


FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="module")
def ni_hao_html() -> str:
    return (FIXTURES / "hanzii_ni_hao.html").read_text(encoding="utf-8")


class TestParseEntry:

    def test_full_entry(self, ni_hao_html):
        entry = parse_entry(ni_hao_html, "你好")

        assert entry == {
            "simplified_chinese": "你好",
            "traditional_chinese": "妳好",
            "pinyin_latin": "nǐ hǎo",
            "pinyin_zhuyin": "ㄋㄧˇ ㄏㄠˇ",
            "pinyin_vietnamese": "nhĩ hảo",
            "level": "1",
            "vietnamese_meaning": "xin chào; chào bạn",
            "chinese_explanation": "用于打招呼的敬语",
            "example_sentence_chinese": "你好，很高兴认识你。",
            "example_sentence_pinyin": "Nǐ hǎo, hěn gāoxìng rènshi nǐ.",
            "grammar_pattern": "你好 + 称呼",
            "related_compounds": "你好吗; 您好",
            "radical_info": "亻 - nhân",
            "stroke_count": "7",
            "stroke_order": "ノ丨ノフ丨ノ丶",
            "popularity": "Độ phổ biến: cao",
        }

    def test_columns_follow_schema(self, ni_hao_html):
        assert tuple(parse_entry(ni_hao_html, "你好")) == HANZII_SCHEMA.fields

    def test_empty_page_yields_sentinel_meaning(self):
        entry = parse_entry("<html><body></body></html>", "空")

        assert entry["simplified_chinese"] == "空"
        assert entry["vietnamese_meaning"] == NOT_FOUND
        assert all(value == "" for name, value in entry.items()
                   if name not in ("simplified_chinese", "vietnamese_meaning"))

    def test_meaning_falls_back_to_numbered_box(self):
        html = '<div class="box-mean"><div class="txt-mean">1. chào hỏi</div></div>'

        assert parse_entry(html, "你好")["vietnamese_meaning"] == "chào hỏi"

    def test_meaning_falls_back_to_vietnamese_text(self):
        html = (
            '<span class="simple-tradition-wrap">你好</span>'
            '<span class="simple-tradition-wrap">lời chào</span>'
        )
        entry = parse_entry(html, "你好")

        assert entry["vietnamese_meaning"] == "lời chào"
        assert entry["traditional_chinese"] == ""

    def test_traditional_form_must_be_short(self):
        html = (
            '<span class="simple-tradition-wrap">这是一个很长的句子</span>'
            '<span class="simple-tradition-wrap">們</span>'
        )

        assert parse_entry(html, "们")["traditional_chinese"] == "們"

    def test_compounds_are_limited(self):
        items = "".join(f'<li class="txt-compound">{i}. 好{i}</li>' for i in range(1, 8))
        entry = parse_entry(f"<ul>{items}</ul>", "好", max_compounds=5)

        assert entry["related_compounds"] == "好1; 好2; 好3; 好4; 好5"

    def test_clean_value(self):
        assert clean_value("1.  nghĩa\n   thứ nhất") == "nghĩa thứ nhất"
        assert clean_value("• chào") == "chào"
        assert clean_value("- chào") == "chào"

    @given(word=st.text(alphabet=st.characters(min_codepoint=0x4E00, max_codepoint=0x4FFF), min_size=1, max_size=4))
    def test_any_word_yields_complete_record_property(self, word):
        """Whatever the word, the record has every column and carries the word as key."""
        entry = parse_entry("<html><body><p>nothing here</p></body></html>", word)

        assert tuple(entry) == HANZII_SCHEMA.fields
        assert entry["simplified_chinese"] == word
        assert entry["vietnamese_meaning"] == NOT_FOUND


class FakePage:
    """Stand-in for a Playwright page."""

    def __init__(self, html="", goto_error=None, selector_timeout=False):
        self.html = html
        self.goto_error = goto_error
        self.selector_timeout = selector_timeout
        self.visited = []
        self.waited = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append((url, wait_until, timeout))
        if self.goto_error:
            raise self.goto_error

    async def wait_for_selector(self, selector, timeout=None):
        if self.selector_timeout:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")

    async def wait_for_timeout(self, ms):
        self.waited.append(ms)

    async def content(self):
        return self.html


class PageStub:
    def __init__(self, page):
        self.page = page

    async def release(self):
        pass


class TestHanziiExtractor:

    def test_build_url_quotes_the_word(self):
        extractor = HanziiExtractor()

        assert extractor.build_url("你好") == "https://hanzii.net/search/word/%E4%BD%A0%E5%A5%BD?hl=vi"

    @pytest.mark.asyncio
    async def test_extract_renders_and_parses(self, ni_hao_html):
        page = FakePage(html=ni_hao_html)
        extractor = HanziiExtractor(config={"settle_ms": 5})

        record = await extractor.extract("你好", PageStub(page))

        assert record.succeeded
        assert record.values["vietnamese_meaning"] == "xin chào; chào bạn"
        assert page.visited == [(extractor.build_url("你好"), "networkidle", 30000)]
        assert page.waited == [5]

    @pytest.mark.asyncio
    async def test_selector_timeout_is_not_fatal(self):
        page = FakePage(html="<html></html>", selector_timeout=True)
        extractor = HanziiExtractor(config={"settle_ms": 0})

        record = await extractor.extract("你好", PageStub(page))

        assert record.values["vietnamese_meaning"] == NOT_FOUND
        assert page.waited == []

    @pytest.mark.asyncio
    async def test_navigation_error_becomes_extraction_error(self):
        page = FakePage(goto_error=PlaywrightError("net::ERR_CONNECTION_RESET"))
        extractor = HanziiExtractor()

        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("你好", PageStub(page))

        assert "ERR_CONNECTION_RESET" in exc_info.value.details["error"]


class TestExtractorRegistry:

    def test_default_registry_has_hanzii(self):
        extractor = default_registry.create("hanzii")

        assert isinstance(extractor, HanziiExtractor)
        assert extractor.schema is HANZII_SCHEMA
        assert default_registry.list_extractors() == ["hanzii"]

    def test_overrides_are_merged(self):
        extractor = default_registry.create("hanzii", {"language": "en"})

        assert extractor.language == "en"
        assert extractor.max_compounds == 5

    def test_unknown_extractor(self):
        with pytest.raises(ConfigurationError) as exc_info:
            default_registry.create("missing")

        assert exc_info.value.details["available_extractors"] == ["hanzii"]

    def test_invalid_config_is_rejected(self):
        with pytest.raises(ConfigurationError):
            default_registry.create("hanzii", {"base_url": "ftp://hanzii.net"})

    def test_only_extractors_can_be_registered(self):
        registry = ExtractorRegistry()

        with pytest.raises(ConfigurationError):
            registry.register("bogus", dict)

        registry.register("hanzii", HanziiExtractor)
        assert registry.is_registered("hanzii")
        assert issubclass(HanziiExtractor, BaseExtractor)
