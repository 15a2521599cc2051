#!/usr/bin/env python3
"""
Semantic Deduplication

Second, best-effort pass: the content-generation service groups articles that
describe the same story and names the best-sourced one per group. The plan it
returns is normalized locally so that every input index lands in exactly one
group or is standalone. Any failure leaves the input untouched.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import ValidationError

from ..generation.base import ContentGenerator, GenerationError
from .json_recovery import parse_json_object
from ...shared.types.parsing import Ok, ParseFailure, ParseResult
from ...shared.types.responses import DedupGroupRow
from ...shared.types.results import RawArticle
from ...shared.types.scoring import format_source_tiers, source_tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupGroup:
    """Articles describing one story and the index chosen to represent it."""
    keep_index: int
    member_indices: FrozenSet[int]
    rationale: str = ''


@dataclass
class DedupPlan:
    groups: List[DedupGroup] = field(default_factory=list)
    standalone: List[int] = field(default_factory=list)

    @property
    def kept_indices(self) -> List[int]:
        return sorted({group.keep_index for group in self.groups} | set(self.standalone))


class SemanticDeduplicator:
    """Groups same-story articles via the content-generation service."""

    def __init__(self, generator: ContentGenerator, config: Optional[Dict[str, Any]] = None):
        self.generator = generator
        self.config = config or {}
        self.min_articles = self.config.get('semantic_min_articles', 6)
        self.description_chars = self.config.get('semantic_description_chars', 200)
        self.max_tokens = self.config.get('semantic_max_tokens', 4000)

    def build_prompt(self, articles: List[RawArticle]) -> str:
        summaries = [
            {
                'id': index,
                'headline': article.headline,
                'description': article.description[:self.description_chars],
                'source': article.source_name,
                'date': article.published_at.date().isoformat()
            }
            for index, article in enumerate(articles)
        ]
        return f"""You are deduplicating news articles. Multiple sources often report the same story with different headlines.

## Articles to Analyze
{json.dumps(summaries, indent=2, ensure_ascii=False)}

## Instructions
1. Identify groups of articles that cover the SAME story or event
2. For each group, keep the BEST article, judged by source authority first, then headline completeness, then recency
3. List every other article id as standalone

## Source Authority Ranking (high to low)
{format_source_tiers()}

## Output Format
Return ONLY valid JSON:
{{
  "uniqueArticles": [
    {{"keepId": 0, "story": "What the story is about", "duplicateIds": [1, 5], "reason": "Reuters is most authoritative"}}
  ],
  "standalone": [2, 3, 4]
}}"""

    def parse_plan(self, text: str, articles: List[RawArticle]) -> ParseResult:
        """Parse and normalize the service's grouping into a ``DedupPlan``."""
        parsed = parse_json_object(text, 'uniqueArticles')
        if isinstance(parsed, ParseFailure):
            standalone_only = parse_json_object(text, 'standalone')
            if isinstance(standalone_only, ParseFailure):
                return parsed
            parsed = standalone_only

        data = parsed.value
        raw_groups = data.get('uniqueArticles') or []
        if not isinstance(raw_groups, list):
            return ParseFailure("'uniqueArticles' is not a list")

        rows = []
        for position, row in enumerate(raw_groups):
            if not isinstance(row, dict):
                continue
            try:
                rows.append(DedupGroupRow.model_validate(row))
            except ValidationError as e:
                logger.debug(f"Skipping dedup group {position}: {e.error_count()} validation errors")

        return Ok(self.build_plan(rows, articles))

    def build_plan(self, rows: List[DedupGroupRow], articles: List[RawArticle]) -> DedupPlan:
        """
        Apply the grouping invariants to service rows.

        Out-of-range ids are ignored, a group whose keep id is already claimed
        is ignored, members already claimed stay with their first group, and
        every unclaimed index becomes standalone.
        """
        total = len(articles)
        claimed: set = set()
        groups = []

        for row in rows:
            keep = row.keep_id
            if not 0 <= keep < total or keep in claimed:
                continue
            members = {keep} | {
                index for index in row.duplicate_ids
                if 0 <= index < total and index not in claimed
            }
            keep = self._best_representative(keep, members, articles)
            claimed |= members
            groups.append(DedupGroup(keep_index=keep, member_indices=frozenset(members),
                                     rationale=row.reason or row.story))

        standalone = [index for index in range(total) if index not in claimed]
        return DedupPlan(groups=groups, standalone=standalone)

    @staticmethod
    def _best_representative(keep: int, members: set, articles: List[RawArticle]) -> int:
        """Service choice unless another member has a strictly better source tier."""
        best = min(sorted(members), key=lambda index: source_tier(articles[index].source_name))
        if source_tier(articles[best].source_name) < source_tier(articles[keep].source_name):
            return best
        return keep

    async def deduplicate(self, articles: List[RawArticle]) -> Tuple[List[RawArticle], bool]:
        """
        Returns (articles, applied). ``applied`` is False whenever the input is
        passed through unchanged: too few articles, service error or bad output.
        """
        if len(articles) < self.min_articles:
            logger.info(f"Semantic dedup skipped: {len(articles)} articles below threshold")
            return list(articles), False

        try:
            text = await self.generator.generate(
                self.build_prompt(articles),
                json_mode=True,
                max_tokens=self.max_tokens,
                purpose="semantic_dedup"
            )
        except GenerationError as e:
            logger.warning(f"Semantic dedup unavailable, passing articles through: {e}")
            return list(articles), False
        except Exception as e:
            logger.warning(f"Semantic dedup raised unexpectedly, passing articles through: {type(e).__name__}: {e}")
            return list(articles), False

        result = self.parse_plan(text, articles)
        if isinstance(result, ParseFailure):
            logger.warning(f"Semantic dedup response unusable ({result.reason}), passing articles through")
            return list(articles), False

        plan: DedupPlan = result.value
        kept = [articles[index] for index in plan.kept_indices]
        for group in plan.groups:
            if len(group.member_indices) > 1:
                logger.debug(f"Kept #{group.keep_index} for {sorted(group.member_indices)}: {group.rationale}")
        logger.info(f"Semantic deduplication: {len(articles)} -> {len(kept)} "
                    f"({len(plan.groups)} groups, {len(plan.standalone)} standalone)")
        return kept, True
