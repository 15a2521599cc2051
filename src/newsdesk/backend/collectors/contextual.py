#!/usr/bin/env python3
"""
Layer 2 Collection - one batched web-search instruction for all tracked entities.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .core import DateUtils, TextUtils
from .entities import EntitySet
from ..generation.base import ContentGenerator, GenerationError
from ..processors.json_recovery import parse_json_object
from ...shared.types.parsing import Ok, ParseFailure, ParseResult
from ...shared.types.responses import SearchResultRow
from ...shared.types.results import FetchLayer, RawArticle

logger = logging.getLogger(__name__)

DEFAULT_OUTLETS = ["Reuters", "Wall Street Journal", "Bloomberg", "Financial Times", "CNBC",
                   "PR Newswire", "Business Wire"]


class ContextualSearcher:
    """Asks the content-generation service to search the web for every tracked entity at once."""

    def __init__(self, generator: ContentGenerator, config: Optional[Dict[str, Any]] = None):
        self.generator = generator
        self.config = config or {}
        self.enabled = self.config.get('enabled', True)
        self.max_people = self.config.get('max_people', 10)
        self.window_hours = self.config.get('window_hours', 72)
        self.max_results = self.config.get('max_results', 25)
        self.max_tokens = self.config.get('max_tokens', 8000)
        self.outlets = self.config.get('outlet_preference') or DEFAULT_OUTLETS

    def _window_description(self) -> str:
        if self.window_hours <= 24:
            return "last 24 hours"
        if self.window_hours % 24 == 0:
            return f"last {self.window_hours // 24} days"
        return f"last {self.window_hours} hours"

    def build_prompt(self, entities: EntitySet) -> str:
        window = self._window_description()
        sections = []
        if entities.companies:
            sections.append("## Companies to Search\n" + "\n".join(f"- {c.name}" for c in entities.companies))
        people = entities.people[:self.max_people]
        if people:
            sections.append("## Key People to Search\n" + "\n".join(
                f"- {p.name}" + (f" ({p.title})" if p.title else "") for p in people
            ))

        entity_sections = "\n\n".join(sections)

        return f"""You are a news intelligence analyst. Search the web for recent news ({window} only) about these companies and people. This search complements RSS feeds, so search comprehensively.

{entity_sections}

## What to look for
- M&A activity, deals, investments and fund raises
- Leadership changes and executive appointments
- Earnings and operational performance
- Strategic initiatives, partnerships, plant and footprint changes
- Executive interviews, quotes and speaking engagements

## Rules
- Only include articles published within the {window}
- Prefer these outlets, in order: {', '.join(self.outlets)}
- Return at most {self.max_results} results, most actionable first
- Never invent articles or URLs

Return ONLY JSON in this format:
{{
  "results": [
    {{
      "headline": "Article headline",
      "description": "Brief description (2-3 sentences)",
      "sourceUrl": "https://...",
      "sourceName": "Source name",
      "publishedAt": "YYYY-MM-DD",
      "relatedEntity": "Company or person this relates to"
    }}
  ]
}}"""

    def parse_response(self, text: str, now: Optional[datetime] = None) -> ParseResult:
        """Parse service text into raw articles; rows that fail validation are skipped."""
        parsed = parse_json_object(text, 'results')
        if isinstance(parsed, ParseFailure):
            return parsed

        rows = parsed.value.get('results')
        if not isinstance(rows, list):
            return ParseFailure("'results' is not a list")

        now = now or datetime.now(timezone.utc)
        articles = []
        for position, row in enumerate(rows[:self.max_results]):
            if not isinstance(row, dict):
                continue
            try:
                result = SearchResultRow.model_validate(row)
            except ValidationError as e:
                logger.debug(f"Skipping contextual result {position}: {e.error_count()} validation errors")
                continue

            articles.append(RawArticle(
                headline=result.headline,
                description=result.description,
                source_url=result.source_url if TextUtils.is_valid_url(result.source_url) else '',
                source_name=result.source_name or 'Web Search',
                published_at=DateUtils.parse_date_or_now(result.published_at, now),
                fetch_layer=FetchLayer.LAYER2_LLM,
                query_used=result.related_entity or None
            ))
        return Ok(articles)

    async def search(self, entities: EntitySet) -> List[RawArticle]:
        """Run the batched search. Never raises: any failure yields an empty list."""
        if not self.enabled or entities.is_empty:
            return []

        try:
            text = await self.generator.generate(
                self.build_prompt(entities),
                web_search=True,
                max_tokens=self.max_tokens,
                purpose="contextual_search"
            )
        except GenerationError as e:
            logger.warning(f"Layer 2 search failed: {e}")
            return []
        except Exception as e:
            logger.warning(f"Layer 2 search raised unexpectedly: {type(e).__name__}: {e}")
            return []

        result = self.parse_response(text)
        if isinstance(result, ParseFailure):
            logger.warning(f"Layer 2 response unusable: {result.reason}")
            return []

        logger.info(f"Layer 2: {len(result.value)} results from contextual search")
        return result.value
