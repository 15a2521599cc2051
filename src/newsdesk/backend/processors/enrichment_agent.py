#!/usr/bin/env python3
"""
Enrichment Agent

Classifies, scores and summarizes deduplicated articles in one
content-generation call, merging stories that several inputs cover into a
single record carrying every source. Output handling degrades in steps:

    direct parse  ->  truncation repair  ->  raw pass-through

Whatever path is taken, each emitted ``ProcessedArticle`` has a clamped
priority score and at least one source. Fields the service left out are
filled from the raw article the row references by id.

Coverage gaps are computed locally from the final articles, never taken from
the service.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..collectors.core import DateUtils, TextUtils
from ..collectors.entities import EntitySet
from ..generation.base import ContentGenerator, GenerationError
from .deduplication_utils import normalize_url
from .json_recovery import MalformedOutputRecoverer, parse_json_object
from .prompts import classification_block
from ...shared.types.parsing import Ok, ParseFailure, ParseResult
from ...shared.types.responses import EnrichedRow, SourceRow
from ...shared.types.results import (
    ArticleCategory, ArticleSourceInfo, CoverageGap, EnrichmentMode, EntityKind,
    FetchLayer, MatchType, ProcessedArticle, RawArticle, TrackedEntity
)
from ...shared.types.scoring import DEFAULT_PRIORITY_SCORE, level_for_score, resolve_priority

logger = logging.getLogger(__name__)

NULL_TOKENS = {'', 'null', 'none', 'n/a', 'na', 'unknown'}


@dataclass
class EnrichmentOutcome:
    """Articles and gaps from one enrichment call, plus how they were produced."""
    articles: List[ProcessedArticle] = field(default_factory=list)
    coverage_gaps: List[CoverageGap] = field(default_factory=list)
    mode: EnrichmentMode = EnrichmentMode.SKIPPED


class Enricher:
    """Turns raw survivors into processed articles via the content-generation service."""

    def __init__(self, generator: ContentGenerator, config: Optional[Dict[str, Any]] = None):
        self.generator = generator
        self.config = config or {}
        self.max_articles = self.config.get('max_articles', 50)
        self.fallback_max_articles = self.config.get('fallback_max_articles', 30)
        self.description_chars = self.config.get('description_chars', 300)
        self.max_tokens = self.config.get('max_tokens', 16000)
        self.adhoc_max_results = self.config.get('adhoc_max_results', 10)
        self.adhoc_max_tokens = self.config.get('adhoc_max_tokens', 4000)
        self.recoverer = MalformedOutputRecoverer('articles', {'coverageGaps': []})

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def build_prompt(self, articles: List[RawArticle], entities: EntitySet) -> str:
        summaries = [
            {
                'id': index,
                'headline': article.headline,
                'description': article.description[:self.description_chars],
                'source': article.source_name,
                'url': article.source_url,
                'date': article.published_at.isoformat(),
                'layer': article.fetch_layer.value
            }
            for index, article in enumerate(articles)
        ]
        owner_lines = []
        for owner in entities.all_owners:
            tracked = [e.name for e in entities.entities if owner in entities.owners_for(e)]
            owner_lines.append(f"- {owner}: tracks {', '.join(tracked) if tracked else 'nothing'}")
        owner_mapping = "\n".join(owner_lines) or "- None"

        return f"""You are a news intelligence analyst helping consultants prepare for client engagements. Process these raw news articles for revenue owners tracking private equity and industrial companies.

## Raw Articles
{json.dumps(summaries, indent=2, ensure_ascii=False)}

## Companies Being Tracked
{', '.join(c.name for c in entities.companies) or 'None'}

## People Being Tracked
{', '.join(p.name for p in entities.people) or 'None'}

## Revenue Owner Mapping
{owner_mapping}

{classification_block()}
## For each relevant article
- Match it to a tracked company and/or person using the exact tracked name
- Write shortSummary (1-2 sentences), longSummary (3-5 sentences) and whyItMatters (1-2 sentences)
- matchType is "exact" only if the article text names the entity verbatim, otherwise "contextual"
- revenueOwners lists the owners above who track the matched entity
- Keep "id" as the input id. If several inputs cover the SAME story, output one article, use the best headline, put the other input ids in "mergedIds" and list every source

## Output Format
Return ONLY valid JSON:
{{
  "articles": [
    {{
      "id": 0,
      "mergedIds": [3],
      "headline": "Headline",
      "shortSummary": "1-2 sentence preview",
      "longSummary": "3-5 sentence summary",
      "whyItMatters": "Why this matters for client engagement",
      "sourceUrl": "primary url from input",
      "sourceName": "primary source from input",
      "sources": [{{"sourceUrl": "url", "sourceName": "Source", "fetchLayer": "layer1_rss"}}],
      "publishedAt": "date from input",
      "company": "matched company or null",
      "person": "matched person or null",
      "category": "one category from the list",
      "priorityScore": 7,
      "priority": "high|medium|low",
      "matchType": "exact|contextual",
      "fetchLayer": "layer from input",
      "revenueOwners": ["Owner Name"]
    }}
  ],
  "coverageGaps": []
}}

Return ALL relevant articles, most recent first."""

    def build_ad_hoc_prompt(self, company: Optional[str], person: Optional[str], days: int = 3) -> str:
        entity_name = " or ".join(name for name in (company, person) if name)
        window = "last 24 hours" if days <= 1 else f"last {days} days"
        subject_lines = []
        if company:
            subject_lines.append(f"Company: {company}")
        if person:
            subject_lines.append(f"Person: {person}")
        subjects = "\n".join(subject_lines)

        return f"""You are a news intelligence analyst helping consultants prepare for client engagements. Search the web for recent news ({window} only) about:

{subjects}

{classification_block(entity_name)}
## Instructions
1. Search comprehensively but filter strictly; when in doubt, EXCLUDE
2. The article must be primarily ABOUT {entity_name}, not just mention them
3. Return at most {self.adhoc_max_results} articles, each with a real source URL

## Output Format
Return ONLY valid JSON (no markdown):
{{
  "articles": [
    {{
      "headline": "Article headline",
      "shortSummary": "1-2 sentence preview",
      "longSummary": "3-5 sentence summary",
      "whyItMatters": "Why this matters for client engagement",
      "sourceUrl": "https://...",
      "sourceName": "Source name",
      "publishedAt": "YYYY-MM-DD",
      "company": "{company or 'null'}",
      "person": "{person or 'null'}",
      "category": "one category from the list",
      "priorityScore": 6,
      "priority": "high|medium|low",
      "matchType": "exact|contextual"
    }}
  ],
  "coverageGaps": []
}}"""

    # ------------------------------------------------------------------
    # Parsing chain
    # ------------------------------------------------------------------

    def parse_response(self, text: str) -> Tuple[ParseResult, EnrichmentMode]:
        """Direct parse, then truncation repair. Returns the result and the mode that produced it."""
        parsed = parse_json_object(text, 'articles')
        if isinstance(parsed, Ok) and isinstance(parsed.value.get('articles'), list):
            return parsed, EnrichmentMode.LLM

        reason = parsed.reason if isinstance(parsed, ParseFailure) else "'articles' is not a list"
        logger.warning(f"Enrichment response did not parse ({reason}), attempting repair")
        repaired = self.recoverer.recover(text)
        if isinstance(repaired, Ok):
            return repaired, EnrichmentMode.REPAIRED
        return repaired, EnrichmentMode.FALLBACK

    @staticmethod
    def _validate_rows(rows: List[Any]) -> List[EnrichedRow]:
        valid = []
        for position, row in enumerate(rows):
            if not isinstance(row, dict):
                continue
            try:
                valid.append(EnrichedRow.model_validate(row))
            except ValidationError as e:
                logger.debug(f"Skipping enriched row {position}: {e.error_count()} validation errors")
        return valid

    # ------------------------------------------------------------------
    # Row normalization
    # ------------------------------------------------------------------

    @staticmethod
    def _reference(value: Any, candidates: List[RawArticle]) -> Optional[RawArticle]:
        try:
            index = int(str(value).strip())
        except (TypeError, ValueError):
            return None
        return candidates[index] if 0 <= index < len(candidates) else None

    @staticmethod
    def _resolve_entity(name: str, kind: EntityKind, entities: EntitySet) -> Optional[str]:
        """Tracked display name for ``name``; untracked names are kept as given."""
        if not name or name.strip().lower() in NULL_TOKENS:
            return None
        tracked = entities.find(name, kind)
        return tracked.name if tracked else name.strip()

    @staticmethod
    def _detect_entity(text: str, candidates: List[TrackedEntity]) -> Optional[str]:
        found = TextUtils.mentions(text, [entity.name for entity in candidates])
        return found[0] if found else None

    @staticmethod
    def _collect_sources(row: EnrichedRow, references: List[RawArticle],
                         primary: ArticleSourceInfo) -> List[ArticleSourceInfo]:
        collected: List[ArticleSourceInfo] = [primary]
        for source in row.sources:
            if isinstance(source, SourceRow):
                url, name, layer = source.source_url, source.source_name, source.fetch_layer
            else:
                url, name, layer = str(source), '', ''
            if TextUtils.is_valid_url(url):
                collected.append(ArticleSourceInfo(
                    source_url=url,
                    source_name=name or primary.source_name,
                    fetch_layer=FetchLayer.coerce(layer, primary.fetch_layer)
                ))
        collected.extend(ArticleSourceInfo.from_raw(ref) for ref in references)

        unique: List[ArticleSourceInfo] = []
        seen = set()
        for source in collected:
            key = normalize_url(source.source_url) or f"name:{source.source_name.lower()}"
            if key in seen:
                continue
            seen.add(key)
            unique.append(source)
        return unique

    def _owners(self, matched: List[Optional[str]], service_owners: List[str],
                entities: EntitySet) -> List[str]:
        owners: List[str] = []
        for name, kind in zip(matched, (EntityKind.COMPANY, EntityKind.PERSON)):
            entity = entities.find(name, kind) if name else None
            if entity:
                owners.extend(o for o in entities.owners_for(entity) if o not in owners)
        known = set(entities.all_owners)
        owners.extend(o for o in service_owners if o in known and o not in owners)
        return owners or list(entities.all_owners)

    def normalize_row(self, row: EnrichedRow, candidates: List[RawArticle], entities: EntitySet,
                      default_layer: FetchLayer = FetchLayer.LAYER1_RSS,
                      now: Optional[datetime] = None) -> Optional[ProcessedArticle]:
        """Build one processed article, filling gaps from the referenced raw article."""
        ref = self._reference(row.id, candidates)
        references = [ref] if ref else []
        for merged_id in row.merged_ids:
            merged = self._reference(merged_id, candidates)
            if merged and merged not in references:
                references.append(merged)

        headline = row.headline or (ref.headline if ref else '')
        if not headline:
            return None

        primary_url = row.source_url if TextUtils.is_valid_url(row.source_url) else (ref.source_url if ref else '')
        if not primary_url and not references:
            return None
        fetch_layer = FetchLayer.coerce(row.fetch_layer, ref.fetch_layer if ref else default_layer)
        primary = ArticleSourceInfo(
            source_url=primary_url,
            source_name=row.source_name or (ref.source_name if ref else '') or 'Unknown',
            fetch_layer=fetch_layer
        )
        sources = self._collect_sources(row, references, primary)
        if not primary.source_url:
            with_url = next((s for s in sources if s.source_url), None)
            if with_url:
                primary = with_url
                sources = [s for s in sources if s.source_url]

        description = ref.description if ref else ''
        short_summary = row.short_summary or description[:150] or headline
        long_summary = row.long_summary or description or short_summary
        published_at = (DateUtils.parse_date(row.published_at)
                        or (ref.published_at if ref else None)
                        or now or datetime.now(timezone.utc))

        evidence = ' '.join([headline, description, short_summary, long_summary]
                            + [r.headline for r in references])
        company = (self._resolve_entity(row.company, EntityKind.COMPANY, entities)
                   or self._detect_entity(evidence, entities.companies))
        person = (self._resolve_entity(row.person, EntityKind.PERSON, entities)
                  or self._detect_entity(evidence, entities.people))

        # "exact" is best-effort: only honoured when a matched name is in the text
        names_in_text = TextUtils.mentions(evidence, [n for n in (company, person) if n])
        claimed = row.match_type.lower()
        if names_in_text and claimed in ('exact', ''):
            match_type = MatchType.EXACT
        else:
            match_type = MatchType.CONTEXTUAL

        score, level = resolve_priority(row.priority_score, row.priority_level)

        return ProcessedArticle(
            headline=headline,
            short_summary=short_summary,
            long_summary=long_summary,
            why_it_matters=row.why_it_matters,
            primary_source_url=primary.source_url,
            primary_source_name=primary.source_name,
            sources=sources,
            published_at=published_at,
            category=ArticleCategory.normalize(row.category),
            priority_level=level.value,
            priority_score=score,
            match_type=match_type,
            fetch_layer=fetch_layer,
            tracking_owners=self._owners([company, person], row.owners, entities),
            matched_company=company,
            matched_person=person
        )

    @staticmethod
    def _merge_same_url(articles: List[ProcessedArticle]) -> List[ProcessedArticle]:
        """Fold rows that share a primary URL into the first one."""
        merged: Dict[str, ProcessedArticle] = {}
        order: List[str] = []
        for position, article in enumerate(articles):
            key = normalize_url(article.primary_source_url) or f"row:{position}"
            existing = merged.get(key)
            if existing is None:
                merged[key] = article
                order.append(key)
                continue
            seen = {normalize_url(s.source_url) for s in existing.sources}
            existing.sources.extend(s for s in article.sources if normalize_url(s.source_url) not in seen)
            existing.tracking_owners.extend(o for o in article.tracking_owners if o not in existing.tracking_owners)
            if article.priority_score > existing.priority_score:
                existing.priority_score = article.priority_score
                existing.priority_level = level_for_score(article.priority_score).value
            existing.matched_company = existing.matched_company or article.matched_company
            existing.matched_person = existing.matched_person or article.matched_person
        return [merged[key] for key in order]

    @staticmethod
    def rank(articles: List[ProcessedArticle]) -> List[ProcessedArticle]:
        return sorted(articles, key=lambda a: (-a.priority_score, -a.published_at.timestamp()))

    def process_rows(self, rows: List[Any], candidates: List[RawArticle], entities: EntitySet,
                     limit: int, default_layer: FetchLayer = FetchLayer.LAYER1_RSS) -> List[ProcessedArticle]:
        now = datetime.now(timezone.utc)
        processed = []
        for row in self._validate_rows(rows):
            article = self.normalize_row(row, candidates, entities, default_layer, now)
            if article:
                processed.append(article)
        processed = self._merge_same_url(processed)
        return self.rank(processed)[:limit]

    # ------------------------------------------------------------------
    # Degradation and gaps
    # ------------------------------------------------------------------

    def fallback(self, candidates: List[RawArticle], entities: EntitySet) -> List[ProcessedArticle]:
        """Processed articles built from raw fields only, without classification."""
        articles = []
        for raw in candidates[:self.fallback_max_articles]:
            text = f"{raw.headline} {raw.description}"
            articles.append(ProcessedArticle(
                headline=raw.headline,
                short_summary=raw.description[:150] or raw.headline,
                long_summary=raw.description or raw.headline,
                why_it_matters='',
                primary_source_url=raw.source_url,
                primary_source_name=raw.source_name,
                sources=[ArticleSourceInfo.from_raw(raw)],
                published_at=raw.published_at,
                category=ArticleCategory.NEWS,
                priority_level=level_for_score(DEFAULT_PRIORITY_SCORE).value,
                priority_score=DEFAULT_PRIORITY_SCORE,
                match_type=MatchType.CONTEXTUAL,
                fetch_layer=raw.fetch_layer,
                tracking_owners=list(entities.all_owners),
                matched_company=self._detect_entity(text, entities.companies),
                matched_person=self._detect_entity(text, entities.people)
            ))
        return articles

    @staticmethod
    def coverage_gaps(articles: List[ProcessedArticle], entities: EntitySet) -> List[CoverageGap]:
        """One gap per (entity, owner) for tracked entities no article matched."""
        covered_companies = {TrackedEntity(a.matched_company, EntityKind.COMPANY).match_key
                             for a in articles if a.matched_company}
        covered_people = {TrackedEntity(a.matched_person, EntityKind.PERSON).match_key
                          for a in articles if a.matched_person}

        gaps = []
        for entity in entities.entities:
            covered = covered_companies if entity.kind == EntityKind.COMPANY else covered_people
            if entity.match_key in covered:
                continue
            for owner in entities.owners_for(entity) or [None]:
                gaps.append(CoverageGap(entity=entity.name, kind=entity.kind, tracking_owner=owner))
        return gaps

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def enrich(self, articles: List[RawArticle], entities: EntitySet) -> EnrichmentOutcome:
        """Enrich survivors. Never raises for service or parse failures."""
        if not articles:
            return EnrichmentOutcome([], self.coverage_gaps([], entities), EnrichmentMode.SKIPPED)

        candidates = list(articles[:self.max_articles])
        if len(articles) > self.max_articles:
            logger.info(f"Enrichment capped at {self.max_articles} of {len(articles)} articles")

        try:
            text = await self.generator.generate(
                self.build_prompt(candidates, entities),
                json_mode=True,
                max_tokens=self.max_tokens,
                purpose="enrichment"
            )
        except GenerationError as e:
            logger.warning(f"Enrichment service failed, using raw fallback: {e}")
            text = None
        except Exception as e:
            logger.warning(f"Enrichment raised unexpectedly, using raw fallback: {type(e).__name__}: {e}")
            text = None

        mode = EnrichmentMode.FALLBACK
        processed: List[ProcessedArticle] = []
        if text is not None:
            result, mode = self.parse_response(text)
            if isinstance(result, Ok):
                processed = self.process_rows(result.value['articles'], candidates, entities,
                                              limit=len(candidates))
            else:
                logger.warning(f"Enrichment repair failed ({result.reason}), using raw fallback")

        if mode == EnrichmentMode.FALLBACK:
            processed = self.fallback(candidates, entities)

        gaps = self.coverage_gaps(processed, entities)
        logger.info(f"Enrichment ({mode.value}): {len(candidates)} -> {len(processed)} articles, "
                    f"{len(gaps)} coverage gaps")
        return EnrichmentOutcome(processed, gaps, mode)

    async def search_entity(self, entities: EntitySet, days: int = 3) -> EnrichmentOutcome:
        """Single web-search call for one company and/or person; no raw fallback exists."""
        company = entities.companies[0].name if entities.companies else None
        person = entities.people[0].name if entities.people else None

        try:
            text = await self.generator.generate(
                self.build_ad_hoc_prompt(company, person, days),
                web_search=True,
                max_tokens=self.adhoc_max_tokens,
                purpose="ad_hoc_search"
            )
        except GenerationError as e:
            logger.warning(f"Ad-hoc search failed: {e}")
            return EnrichmentOutcome([], self.coverage_gaps([], entities), EnrichmentMode.FALLBACK)
        except Exception as e:
            logger.warning(f"Ad-hoc search raised unexpectedly: {type(e).__name__}: {e}")
            return EnrichmentOutcome([], self.coverage_gaps([], entities), EnrichmentMode.FALLBACK)

        result, mode = self.parse_response(text)
        if isinstance(result, ParseFailure):
            logger.warning(f"Ad-hoc search response unusable: {result.reason}")
            return EnrichmentOutcome([], self.coverage_gaps([], entities), EnrichmentMode.FALLBACK)

        processed = self.process_rows(result.value['articles'], [], entities,
                                      limit=self.adhoc_max_results,
                                      default_layer=FetchLayer.LAYER2_LLM)
        return EnrichmentOutcome(processed, self.coverage_gaps(processed, entities), mode)
