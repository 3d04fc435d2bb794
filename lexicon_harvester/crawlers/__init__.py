"""
Extraction adapters and the browser session they render in.
"""

from .base import BaseExtractor, ExtractorRegistry
from .hanzii_extractor import HANZII_SCHEMA, HanziiExtractor, parse_entry
from .playwright_session import PageHandle, PlaywrightSession, PlaywrightSessionProvider

# Create default extractor registry and register available extractors
default_registry = ExtractorRegistry()

hanzii_default_config = {
    'base_url': 'https://hanzii.net',
    'language': 'vi',
    'navigation_timeout_ms': 30000,
    'content_timeout_ms': 15000,
    'settle_ms': 2000,
    'max_compounds': 5
}

default_registry.register('hanzii', HanziiExtractor, hanzii_default_config)

__all__ = [
    'BaseExtractor',
    'ExtractorRegistry',
    'HANZII_SCHEMA',
    'HanziiExtractor',
    'parse_entry',
    'PageHandle',
    'PlaywrightSession',
    'PlaywrightSessionProvider',
    'default_registry'
]
