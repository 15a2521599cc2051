#!/usr/bin/env python3
"""
Pydantic models for content-generation responses.

Every row is validated on its own so one malformed element never discards
its siblings. Fields are optional with defaults; callers fill gaps from the
raw articles they sent.
"""

from typing import Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _text(value: Any) -> Any:
    if value is None:
        return ''
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class ResponseRow(BaseModel):
    """Base for response rows: camelCase aliases, unknown keys ignored."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class SearchResultRow(ResponseRow):
    """One contextual-search result."""
    headline: str = Field(min_length=1, description="Article headline")
    description: str = ''
    source_url: str = Field('', alias='sourceUrl')
    source_name: str = Field('', alias='sourceName')
    published_at: str = Field('', alias='publishedAt')
    related_entity: str = Field('', alias='relatedEntity')

    @field_validator('headline', 'description', 'source_url', 'source_name',
                     'published_at', 'related_entity', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text(value)


class DedupGroupRow(ResponseRow):
    """One story group from semantic deduplication."""
    keep_id: int = Field(alias='keepId')
    duplicate_ids: List[int] = Field(default_factory=list, alias='duplicateIds')
    story: str = ''
    reason: str = ''

    @field_validator('duplicate_ids', mode='before')
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (int, str)):
            return [value]
        return value

    @field_validator('story', 'reason', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text(value)


class SourceRow(ResponseRow):
    source_url: str = Field('', alias='sourceUrl')
    source_name: str = Field('', alias='sourceName')
    fetch_layer: str = Field('', alias='fetchLayer')

    @field_validator('source_url', 'source_name', 'fetch_layer', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text(value)


class EnrichedRow(ResponseRow):
    """One enriched article as returned by the service."""
    id: Optional[Union[int, str]] = None
    merged_ids: List[Union[int, str]] = Field(default_factory=list, alias='mergedIds')
    headline: str = ''
    short_summary: str = Field('', alias='shortSummary')
    long_summary: str = Field('', alias='longSummary')
    why_it_matters: str = Field('', alias='whyItMatters')
    source_url: str = Field('', alias='sourceUrl')
    source_name: str = Field('', alias='sourceName')
    sources: List[Union[SourceRow, str]] = Field(default_factory=list)
    published_at: str = Field('', alias='publishedAt')
    company: str = ''
    person: str = ''
    category: str = ''
    priority_score: Optional[Any] = Field(None, alias='priorityScore')
    priority_level: Optional[str] = Field(None, alias='priority')
    match_type: str = Field('', alias='matchType')
    fetch_layer: str = Field('', alias='fetchLayer')
    owners: List[str] = Field(default_factory=list, alias='revenueOwners')

    @field_validator('headline', 'short_summary', 'long_summary', 'why_it_matters',
                     'source_url', 'source_name', 'published_at', 'company', 'person',
                     'category', 'match_type', 'fetch_layer', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _text(value)

    @field_validator('priority_level', mode='before')
    @classmethod
    def _coerce_level(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator('merged_ids', 'sources', mode='before')
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, int, dict)):
            return [value]
        return value

    @field_validator('owners', mode='before')
    @classmethod
    def _clean_owners(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [owner.strip() for owner in value if isinstance(owner, str) and owner.strip()]
