#!/usr/bin/env python3
"""
News Pipeline Orchestrator for newsdesk
Orchestrates: Entities → (Layer 1 ∥ Layer 2) → Heuristic Dedup → Semantic Dedup → Enrichment
"""

import argparse
import asyncio
import inspect
import logging
import sys
import time
import traceback
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import yaml

from .collectors.collectors import Layer1Fetcher
from .collectors.contextual import ContextualSearcher
from .collectors.entities import EntitySet, collect_entities
from .generation.base import ContentGenerator
from .generation.groq_client import GroqContentGenerator
from .monitoring.usage_tracker import usage_tracker
from .processors.deduplication_utils import HeuristicDeduplicator
from .processors.enrichment_agent import Enricher
from .processors.semantic_dedup import SemanticDeduplicator
from ..shared.config.config_loader import get_pipeline_config
from ..shared.types.results import (
    EntityKind, FetchResult, PipelineStats, RawArticle, StepStatus, StepUpdate,
    TrackedEntity, TrackingRequest
)
from ..shared.utils.logging_config import (
    console, create_progress_bar, log_error, log_result, log_step, log_warning, setup_logging
)

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, str, Optional[StepUpdate]], Union[None, Awaitable[None]]]

DEFAULT_CHECKPOINTS = {
    'start': 10,
    'layer1_done': 30,
    'layer2_done': 40,
    'heuristic_done': 55,
    'semantic_done': 65,
    'enrichment_start': 70,
    'enrichment_done': 95,
    'finished': 100
}

# Numbered steps reported to progress sinks
STEP_LAYER1, STEP_LAYER2, STEP_DEDUP, STEP_ENRICH = 1, 2, 3, 4


class NewsPipeline:
    """Runs the hybrid fetch and ad-hoc search flows against one content generator."""

    def __init__(self,
                 generator: ContentGenerator,
                 layer1: Optional[Layer1Fetcher] = None,
                 searcher: Optional[ContextualSearcher] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else get_pipeline_config()
        self.generator = generator
        self.layer1 = layer1 or Layer1Fetcher(self.config.get('collection', {}))
        self.searcher = searcher or ContextualSearcher(generator, self.config.get('layer2', {}))
        self.heuristic = HeuristicDeduplicator(self.config.get('dedup', {}))
        self.semantic = SemanticDeduplicator(generator, self.config.get('dedup', {}))
        self.enricher = Enricher(generator, self.config.get('enrichment', {}))

        pipeline_config = self.config.get('pipeline', {})
        self.checkpoints = dict(DEFAULT_CHECKPOINTS)
        self.checkpoints.update(pipeline_config.get('progress') or {})

    async def _emit(self, on_progress: Optional[ProgressSink], checkpoint: str, message: str,
                    step: Optional[StepUpdate] = None) -> None:
        """Report progress; a failing sink never interrupts the pipeline."""
        if on_progress is None:
            return
        try:
            outcome = on_progress(self.checkpoints[checkpoint], message, step)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            log_warning(logger, f"Progress sink failed at '{checkpoint}': {e}")

    @staticmethod
    def _coerce_requests(requests: List[Any]) -> List[TrackingRequest]:
        return [TrackingRequest.from_dict(r) if isinstance(r, dict) else r for r in requests]

    async def _gather_layers(self, entities: EntitySet) -> Dict[str, List[RawArticle]]:
        """Layer 1 and Layer 2 run concurrently; a layer that raises contributes nothing."""
        layer1_result, layer2_result = await asyncio.gather(
            self.layer1.fetch(entities),
            self.searcher.search(entities),
            return_exceptions=True
        )
        layers = {}
        for name, result in (('layer1', layer1_result), ('layer2', layer2_result)):
            if isinstance(result, BaseException):
                log_warning(logger, f"{name} raised {type(result).__name__}: {result}")
                result = []
            layers[name] = list(result)
        return layers

    async def run_hybrid_fetch(self, requests: List[Any],
                               on_progress: Optional[ProgressSink] = None) -> FetchResult:
        """
        Fetch, deduplicate and enrich news for every tracking request.

        Service and source failures degrade the result; only malformed
        requests raise.
        """
        start_time = time.time()
        entities = collect_entities(self._coerce_requests(requests))
        if entities.is_empty:
            logger.info("No companies or people to track, nothing to fetch")
            return FetchResult.empty()

        stats = PipelineStats()

        # Steps 1-2: collection
        await self._emit(on_progress, 'start', "Fetching Layer 1 sources",
                         StepUpdate(STEP_LAYER1, StepStatus.IN_PROGRESS))
        await self._emit(on_progress, 'start', "Running contextual web search",
                         StepUpdate(STEP_LAYER2, StepStatus.IN_PROGRESS))
        layers = await self._gather_layers(entities)

        stats.layer1_articles = len(layers['layer1'])
        stats.layer2_articles = len(layers['layer2'])
        stats.layer1_failed_sources = self.layer1.stats.failed
        await self._emit(on_progress, 'layer1_done', f"Layer 1: {stats.layer1_articles} articles",
                         StepUpdate(STEP_LAYER1, StepStatus.COMPLETED))
        await self._emit(on_progress, 'layer2_done', f"Layer 2: {stats.layer2_articles} articles",
                         StepUpdate(STEP_LAYER2, StepStatus.COMPLETED))

        raw_articles = layers['layer1'] + layers['layer2']
        stats.total_raw = len(raw_articles)
        log_step(logger, "Collection", f"{stats.layer1_articles} Layer 1 + {stats.layer2_articles} Layer 2 articles")

        # Step 3: deduplication
        survivors = self.heuristic.run(raw_articles)
        stats.after_heuristic_dedup = len(survivors)
        log_result(logger, "Heuristic dedup", stats.total_raw, stats.after_heuristic_dedup)
        await self._emit(on_progress, 'heuristic_done', f"{len(survivors)} articles after heuristic dedup",
                         StepUpdate(STEP_DEDUP, StepStatus.IN_PROGRESS))

        survivors, stats.semantic_dedup_applied = await self.semantic.deduplicate(survivors)
        stats.after_semantic_dedup = len(survivors)
        log_result(logger, "Semantic dedup", stats.after_heuristic_dedup, stats.after_semantic_dedup)
        await self._emit(on_progress, 'semantic_done', f"{len(survivors)} unique articles",
                         StepUpdate(STEP_DEDUP, StepStatus.COMPLETED))

        # Step 4: enrichment
        await self._emit(on_progress, 'enrichment_start', f"Enriching {len(survivors)} articles",
                         StepUpdate(STEP_ENRICH, StepStatus.IN_PROGRESS))
        outcome = await self.enricher.enrich(survivors, entities)
        stats.after_enrichment = len(outcome.articles)
        stats.coverage_gaps = len(outcome.coverage_gaps)
        stats.enrichment_mode = outcome.mode
        await self._emit(on_progress, 'enrichment_done', f"{len(outcome.articles)} articles enriched",
                         StepUpdate(STEP_ENRICH, StepStatus.COMPLETED))

        stats.duration_seconds = time.time() - start_time
        result = FetchResult(articles=outcome.articles, coverage_gaps=outcome.coverage_gaps, stats=stats)
        await self._emit(on_progress, 'finished', "Done")
        logger.info(f"Pipeline complete: {len(result.articles)} articles, {len(result.coverage_gaps)} "
                    f"coverage gaps in {stats.duration_seconds:.1f}s")
        return result

    async def run_ad_hoc_search(self, company: Optional[str] = None,
                                person: Optional[str] = None) -> FetchResult:
        """Single web search for one company and/or person."""
        company = (company or '').strip()
        person = (person or '').strip()
        if not company and not person:
            raise ValueError("Ad-hoc search needs a company or a person")

        start_time = time.time()
        entities = collect_entities([TrackingRequest(
            owner='',
            companies=[TrackedEntity(company, EntityKind.COMPANY)] if company else [],
            people=[TrackedEntity(person, EntityKind.PERSON)] if person else []
        )])
        days = self.config.get('dedup', {}).get('recency_days', 3)
        outcome = await self.enricher.search_entity(entities, days=days)

        stats = PipelineStats(
            layer2_articles=len(outcome.articles),
            total_raw=len(outcome.articles),
            after_heuristic_dedup=len(outcome.articles),
            after_semantic_dedup=len(outcome.articles),
            after_enrichment=len(outcome.articles),
            coverage_gaps=len(outcome.coverage_gaps),
            enrichment_mode=outcome.mode,
            duration_seconds=time.time() - start_time
        )
        log_step(logger, "Ad-hoc search", f"{len(outcome.articles)} articles for {company or person}")
        return FetchResult(articles=outcome.articles, coverage_gaps=outcome.coverage_gaps, stats=stats)

    def get_pipeline_info(self) -> Dict[str, Any]:
        """Get essential pipeline information for monitoring."""
        return {
            'pipeline_version': self.config.get('pipeline', {}).get('version', '1.0.0'),
            'components': ['layer1', 'layer2' if self.searcher.enabled else None,
                           'heuristic_dedup', 'semantic_dedup', 'enrichment'],
            'configuration': {
                'recency_days': self.heuristic.recency_days,
                'semantic_min_articles': self.semantic.min_articles,
                'enrichment_max_articles': self.enricher.max_articles
            }
        }


def load_requests(path: Path) -> List[TrackingRequest]:
    """Read tracking requests from a JSON or YAML file."""
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get('requests', [data])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of tracking requests")
    return [TrackingRequest.from_dict(item) for item in data]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='newsdesk', description="Hybrid news tracking for companies and people")
    parser.add_argument('--log-level', default='INFO', help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument('--quiet', action='store_true', help="Silence third-party library logging")
    subparsers = parser.add_subparsers(dest='command', required=True)

    fetch = subparsers.add_parser('fetch', help="Run the hybrid fetch for tracking requests")
    fetch.add_argument('--requests', required=True, type=Path, help="JSON or YAML file of tracking requests")
    fetch.add_argument('--output', type=Path, help="Write the result JSON here instead of stdout")
    fetch.add_argument('--days', type=float, help="Recency window in days")

    search = subparsers.add_parser('search', help="Ad-hoc web search for one company and/or person")
    search.add_argument('--company')
    search.add_argument('--person')
    search.add_argument('--output', type=Path, help="Write the result JSON here instead of stdout")
    return parser


def _save_and_display_results(result: FetchResult, output: Optional[Path], duration: float) -> None:
    """Write the result and log a short summary."""
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.to_json(), encoding='utf-8')
        logger.info(f"✓ Results saved to: {output}")
    else:
        sys.stdout.write(result.to_json() + "\n")

    logger.info(f"✓ {len(result.articles)} articles, {len(result.coverage_gaps)} coverage gaps "
                f"({result.stats.enrichment_mode.value}) in {duration:.1f}s")
    for i, article in enumerate(result.articles[:3]):
        logger.info(f"    {i+1}. [{article.priority_score}] {article.headline}")
        logger.info(f"       Source: {article.primary_source_name} | Category: {article.category.value}")

    summary = usage_tracker.get_usage_summary()
    if summary.total_calls:
        logger.info(f"Generation usage: {summary.successful_calls}/{summary.total_calls} calls succeeded, "
                    f"{summary.total_tokens} tokens, {summary.rate_limit_hits} rate limit hits")


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run the pipeline from the command line."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, quiet_mode=args.quiet)

    try:
        config = get_pipeline_config()
        if getattr(args, 'days', None) is not None:
            config.setdefault('dedup', {})['recency_days'] = args.days

        async with GroqContentGenerator(config.get('generation', {})) as generator:
            pipeline = NewsPipeline(generator, config=config)
            start_time = time.time()

            if args.command == 'fetch':
                requests = load_requests(args.requests)
                log_step(logger, "Starting hybrid fetch", f"{len(requests)} tracking requests")
                with create_progress_bar() as progress:
                    task = progress.add_task("[green]Starting", total=100)

                    def update_progress(percent: int, message: str, step: Optional[StepUpdate] = None):
                        progress.update(task, completed=percent, description=f"[green]{message}")

                    result = await pipeline.run_hybrid_fetch(requests, on_progress=update_progress)
            else:
                log_step(logger, "Starting ad-hoc search", args.company or args.person or '')
                with console.status("Searching..."):
                    result = await pipeline.run_ad_hoc_search(company=args.company, person=args.person)

            _save_and_display_results(result, args.output, time.time() - start_time)
        return 0

    except KeyboardInterrupt:
        log_error(logger, "Pipeline interrupted by user")
        return 1
    except (ValueError, TypeError, OSError) as e:
        log_error(logger, f"Invalid input: {e}")
        return 2
    except Exception as e:
        log_error(logger, f"Pipeline failed: {e}")
        logger.debug(traceback.format_exc())
        return 1


def run():
    """Entry point for the newsdesk command."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        sys.exit(1)


if __name__ == "__main__":
    run()
