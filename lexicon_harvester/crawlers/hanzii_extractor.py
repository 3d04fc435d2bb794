"""
Dictionary entry extractor for hanzii.net.

Rendering happens in a borrowed Playwright page; field extraction is a pure
function over the rendered HTML so it can be tested without a browser.
"""

import re
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from lexicon_harvester.pipeline.interfaces import Handle
from lexicon_harvester.pipeline.models import RecordSchema, ResultRecord, WorkKey
from lexicon_harvester.utils.errors import ExtractionError
from lexicon_harvester.utils.logging import get_business_logger
from .base import BaseExtractor


logger = get_business_logger('crawler_hanzii')

NOT_FOUND = 'Không tìm thấy'

HANZII_FIELDS = (
    'simplified_chinese',
    'traditional_chinese',
    'pinyin_latin',
    'pinyin_zhuyin',
    'pinyin_vietnamese',
    'level',
    'vietnamese_meaning',
    'chinese_explanation',
    'example_sentence_chinese',
    'example_sentence_pinyin',
    'grammar_pattern',
    'related_compounds',
    'radical_info',
    'stroke_count',
    'stroke_order',
    'popularity',
)

HANZII_SCHEMA = RecordSchema(
    key_field='simplified_chinese',
    primary_field='vietnamese_meaning',
    fields=HANZII_FIELDS,
    not_found=NOT_FOUND
)

CONTENT_SELECTOR = '.txt-mean, .box-mean, .simple-tradition-wrap'

CJK_RE = re.compile(r'[\u4e00-\u9fff]')
LATIN_RE = re.compile(r'[a-zA-Z]')
ZHUYIN_RE = re.compile(r'[ㄅ-ㄩ]')
DIGITS_RE = re.compile(r'^\d+$')
VIETNAMESE_RE = re.compile(r'[àáạảãâầấậẩẫăằắặẳẵèéẹẻẽêềếệểễìíịỉĩòóọỏõôồốộổỗơờớợởỡùúụủũưừứựửữỳýỵỷỹđ]')
STROKE_COUNT_RE = re.compile(r'Số nét:\s*(\d+)')
NUMBERED_PREFIX_RE = re.compile(r'^\d+\.\s*')
BULLET_PREFIX_RE = re.compile(r'^[•·-]\s*')
WHITESPACE_RE = re.compile(r'\s+')


def _texts(soup: BeautifulSoup, selector: str) -> List[str]:
    return [node.get_text().strip() for node in soup.select(selector)]


def _first(texts: List[str], predicate: Callable[[str], bool]) -> str:
    return next((text for text in texts if text and predicate(text)), '')


def _last(texts: List[str], predicate: Callable[[str], bool]) -> str:
    return _first(list(reversed(texts)), predicate)


def _strip_brackets(text: str) -> str:
    return re.sub(r'[\[\]]', '', text).strip()


def clean_value(text: str) -> str:
    """Collapse whitespace and drop list numbering or bullet prefixes."""
    text = WHITESPACE_RE.sub(' ', text)
    text = NUMBERED_PREFIX_RE.sub('', text)
    text = BULLET_PREFIX_RE.sub('', text)
    return text.strip()


def parse_entry(html: str, word: str, max_compounds: int = 5) -> Dict[str, str]:
    """
    Extract a dictionary entry from a rendered result page.

    Args:
        html: Rendered page HTML
        word: Looked-up word (simplified Chinese)
        max_compounds: Maximum number of related compounds to keep

    Returns:
        Mapping with every HANZII_FIELDS column; absent values are empty
        strings and an absent meaning is NOT_FOUND
    """
    soup = BeautifulSoup(html, 'lxml')
    result = {name: '' for name in HANZII_FIELDS}
    result['simplified_chinese'] = word

    wraps = _texts(soup, '.simple-tradition-wrap')

    result['traditional_chinese'] = _first(
        wraps, lambda t: t != word and CJK_RE.search(t) is not None and len(t) <= len(word) + 2
    )

    pinyins = [_strip_brackets(t) for t in _texts(soup, '.txt-pinyin') if '[' in t and ']' in t]
    result['pinyin_latin'] = _first(pinyins, lambda t: LATIN_RE.search(t) is not None)
    result['pinyin_zhuyin'] = _last(pinyins, lambda t: ZHUYIN_RE.search(t) is not None)

    sino_vietnamese = [_strip_brackets(t) for t in _texts(soup, '.txt-cn_vi') if '[' in t and ']' in t]
    result['pinyin_vietnamese'] = _last(sino_vietnamese, lambda t: True)

    result['level'] = _last(_texts(soup, '.txt-slot'), lambda t: DIGITS_RE.match(t) is not None)

    meaning = _first(_texts(soup, '.txt-mean .simple-tradition-wrap')[:1], lambda t: True)
    if not meaning:
        box = _texts(soup, '.box-mean .txt-mean')[:1]
        meaning = NUMBERED_PREFIX_RE.sub('', box[0]) if box else ''
    if not meaning:
        meaning = _first(wraps, lambda t: t != word and VIETNAMESE_RE.search(t) is not None)
    result['vietnamese_meaning'] = meaning or NOT_FOUND

    result['chinese_explanation'] = _first(
        _texts(soup, '.txt-mean-explain .simple-tradition-wrap'),
        lambda t: CJK_RE.search(t) is not None
    )
    result['example_sentence_chinese'] = _first(
        wraps, lambda t: '。' in t and CJK_RE.search(t) is not None
    )
    result['example_sentence_pinyin'] = _first(
        _texts(soup, '.ex-phonetic'), lambda t: LATIN_RE.search(t) is not None
    )
    result['grammar_pattern'] = _first(wraps, lambda t: '+' in t and word in t)

    compounds = []
    for text in _texts(soup, '.txt-compound'):
        if not CJK_RE.search(text):
            continue
        text = NUMBERED_PREFIX_RE.sub('', text)
        if text and text != word:
            compounds.append(text)
    result['related_compounds'] = '; '.join(compounds[:max_compounds])

    details = _texts(soup, '.txt-detail')
    radical = _last(details, lambda t: 'Bộ:' in t)
    result['radical_info'] = radical.replace('Bộ:', '').strip()
    strokes = _last(details, lambda t: STROKE_COUNT_RE.search(t) is not None)
    result['stroke_count'] = STROKE_COUNT_RE.search(strokes).group(1) if strokes else ''
    stroke_order = _last(details, lambda t: 'Nét bút:' in t)
    result['stroke_order'] = stroke_order.replace('Nét bút:', '').strip()

    result['popularity'] = _first(_texts(soup, '[class*="txt-detail"]'), lambda t: 'Độ phổ biến' in t)

    for name in HANZII_FIELDS:
        if name != 'simplified_chinese':
            result[name] = clean_value(result[name])

    return result


class HanziiExtractor(BaseExtractor):
    """Looks a word up on hanzii.net and parses the rendered entry."""

    def __init__(self, source_name: str = 'hanzii', config: Optional[Dict] = None):
        """
        Args:
            source_name: Source name (default: 'hanzii')
            config: Optional overrides: base_url, language, navigation_timeout_ms,
                content_timeout_ms, settle_ms, max_compounds
        """
        super().__init__(source_name, config)

        self.base_url = self.config.get('base_url', 'https://hanzii.net').rstrip('/')
        self.language = self.config.get('language', 'vi')
        self.navigation_timeout_ms = self.config.get('navigation_timeout_ms', 30000)
        self.content_timeout_ms = self.config.get('content_timeout_ms', 15000)
        self.settle_ms = self.config.get('settle_ms', 2000)
        self.max_compounds = self.config.get('max_compounds', 5)

    @property
    def schema(self) -> RecordSchema:
        return HANZII_SCHEMA

    def validate_config(self) -> bool:
        return (
            self.base_url.startswith(('http://', 'https://'))
            and self.navigation_timeout_ms > 0
            and self.content_timeout_ms >= 0
            and self.settle_ms >= 0
            and self.max_compounds >= 0
        )

    def build_url(self, word: WorkKey) -> str:
        return f"{self.base_url}/search/word/{quote(word)}?hl={self.language}"

    async def extract(self, key: WorkKey, handle: Handle) -> ResultRecord:
        """
        Render the entry page for ``key`` and parse it.

        Raises:
            ExtractionError: If navigation or rendering fails
        """
        page = handle.page
        url = self.build_url(key)
        logger.info(f"Fetching: {key} ({url})")

        try:
            await page.goto(url, wait_until='networkidle', timeout=self.navigation_timeout_ms)

            try:
                await page.wait_for_selector(CONTENT_SELECTOR, timeout=self.content_timeout_ms)
            except PlaywrightTimeoutError:
                logger.info(f"Timeout waiting for content to load for {key}")

            if self.settle_ms:
                await page.wait_for_timeout(self.settle_ms)

            html = await page.content()

        except PlaywrightError as e:
            raise ExtractionError(
                f"Failed to render entry for '{key}'",
                {"url": url, "error": str(e)}
            ) from e

        values = parse_entry(html, key, self.max_compounds)
        logger.info(
            f"Extracted {key}: meaning={values['vietnamese_meaning'][:50]!r} "
            f"pinyin={values['pinyin_latin']!r} level={values['level']!r}"
        )
        return ResultRecord.from_values(self.schema, key, values)
