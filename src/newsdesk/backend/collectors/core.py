#!/usr/bin/env python3
"""
News Collection Core - Configuration, statistics and text/date helpers
"""

import calendar
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Any, Tuple
from dataclasses import dataclass, field

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

GOOGLE_NEWS_URL = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"
EDGAR_FILINGS_URL = ("https://www.sec.gov/cgi-bin/browse-edgar?action=getcompany&CIK={cik}"
                     "&type=8-K&dateb=&owner=include&count=10&output=atom")


@dataclass
class CollectionConfig:
    """Settings for Layer 1 feed collection."""
    batch_size: int = 10
    pause_between_batches_seconds: float = 0.0
    timeout_seconds: float = 20
    search_max_items: int = 15
    curated_max_items: int = 20
    description_max_length: int = 500
    max_redirect_hops: int = 3
    resolve_redirects: bool = True
    user_agent: str = "newsdesk/1.0 (+feed reader)"
    news_search_url: str = GOOGLE_NEWS_URL
    filings_url: str = EDGAR_FILINGS_URL

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CollectionConfig':
        data = data or {}
        defaults = cls()
        return cls(**{
            name: data.get(name, getattr(defaults, name))
            for name in cls.__dataclass_fields__
        })


@dataclass
class CollectionStats:
    """Collection operation statistics."""
    successful: int = 0
    empty: int = 0
    failed: int = 0
    total_articles: int = 0
    processing_time: float = 0.0
    failure_reasons: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'successful_sources': self.successful,
            'empty_sources': self.empty,
            'failed_sources': self.failed,
            'total_articles': self.total_articles,
            'processing_time': round(self.processing_time, 3),
            'failure_reasons': dict(self.failure_reasons)
        }


class DateUtils:
    """Date handling utilities. All returned datetimes are timezone-aware UTC."""

    @staticmethod
    def to_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @staticmethod
    def parse_date(date_value: Any) -> Optional[datetime]:
        """Parse a feed or service date value; None when it cannot be read."""
        if not date_value:
            return None

        try:
            if isinstance(date_value, datetime):
                return DateUtils.to_utc(date_value)
            if isinstance(date_value, (tuple, list)) or hasattr(date_value, 'tm_year'):
                # feedparser *_parsed values are UTC struct_time tuples
                return datetime.fromtimestamp(calendar.timegm(tuple(date_value)[:9]), timezone.utc)
            if isinstance(date_value, (int, float)):
                return datetime.fromtimestamp(date_value, timezone.utc)
            if isinstance(date_value, str):
                return DateUtils.to_utc(date_parser.parse(date_value.strip()))
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug(f"Unparseable date {date_value!r}: {e}")
        return None

    @staticmethod
    def parse_date_or_now(date_value: Any, now: Optional[datetime] = None) -> datetime:
        return DateUtils.parse_date(date_value) or now or datetime.now(timezone.utc)


class TextUtils:
    """Text processing utilities."""

    @staticmethod
    def clean_html(content: Any, max_length: int = 500) -> str:
        """Strip HTML, collapse whitespace and truncate on a word boundary."""
        if not content:
            return ''

        if isinstance(content, dict):
            content = content.get('rendered', str(content))

        cleaned = BeautifulSoup(str(content), 'html.parser').get_text(' ')
        cleaned = re.sub(r'\s+', ' ', cleaned).strip()

        if len(cleaned) > max_length:
            truncated = cleaned[:max_length].rsplit(' ', 1)[0]
            return truncated + '...' if truncated else cleaned[:max_length]

        return cleaned

    @staticmethod
    def extract_field(source: Any, fields: List[str], default: str = '') -> str:
        """Extract the first non-empty value among several possible field names."""
        for name in fields:
            value = None
            if isinstance(source, dict):
                value = source.get(name)
            elif hasattr(source, name):
                value = getattr(source, name, None)

            if value:
                if isinstance(value, list) and value:
                    value = value[0].get('value', str(value[0])) if isinstance(value[0], dict) else str(value[0])
                return str(value).strip()

        return default

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """Basic URL validation."""
        return bool(url and
                    len(url) >= 10 and
                    (url.startswith('http://') or url.startswith('https://')))

    @staticmethod
    def split_source_suffix(title: str) -> Tuple[str, Optional[str]]:
        """Split a news-search title of the form ``Headline - Outlet``."""
        if ' - ' not in title:
            return title.strip(), None
        headline, outlet = title.rsplit(' - ', 1)
        outlet = outlet.strip()
        if not headline.strip() or not outlet or len(outlet) > 60:
            return title.strip(), None
        return headline.strip(), outlet

    @staticmethod
    def name_pattern(name: str) -> 're.Pattern':
        """Case-insensitive whole-phrase pattern for a tracked name."""
        words = [re.escape(word) for word in name.split()]
        return re.compile(r'(?<!\w)' + r'\s+'.join(words) + r'(?!\w)', re.IGNORECASE)

    @staticmethod
    def mentions(text: str, names: Iterable[str]) -> List[str]:
        """Names (as given) that appear as whole phrases in ``text``."""
        if not text:
            return []
        return [name for name in names if name.strip() and TextUtils.name_pattern(name).search(text)]
