#!/usr/bin/env python3
"""
Priority Scoring for newsdesk

Defines the shared 1-10 priority rubric, the mapping from numeric score to
priority level, and the source-authority tiers used to pick a representative
among duplicate articles.
"""

from typing import Any, Dict, List, Optional, Tuple
from enum import Enum


class PriorityLevel(str, Enum):
    """Priority levels derived from the numeric score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


MIN_PRIORITY_SCORE = 1
MAX_PRIORITY_SCORE = 10
DEFAULT_PRIORITY_SCORE = 5

# Score bands shown to the content-generation service
PRIORITY_RUBRIC: List[Tuple[str, str]] = [
    ("9-10", "Transformational: acquisition or sale of the company, CEO change, bankruptcy, major fund close"),
    ("7-8", "Major: significant deal, senior leadership change, earnings surprise, large plant opening or closure"),
    ("5-6", "Notable: partnership, product or strategy announcement, mid-size investment, new operating partner"),
    ("3-4", "Routine: minor hires, conference appearances, incremental operational updates"),
    ("1-2", "Marginal: passing mention, commentary, tangential coverage"),
]

# Level used when the service gives a level but no usable score
LEVEL_DEFAULT_SCORES: Dict[PriorityLevel, int] = {
    PriorityLevel.HIGH: 8,
    PriorityLevel.MEDIUM: 5,
    PriorityLevel.LOW: 3,
}

SOURCE_TIERS: Dict[int, List[str]] = {
    1: ["Reuters", "Wall Street Journal", "WSJ", "Bloomberg", "Financial Times", "FT", "CNBC", "Associated Press", "AP"],
    2: ["Business Wire", "PR Newswire", "Yahoo Finance", "Seeking Alpha", "MarketWatch"],
    3: ["Industry and trade publications (PE Hub, PitchBook, Private Equity International, AltAssets)"],
    4: ["Regional outlets, aggregators and blogs"],
}


def clamp_priority_score(value: Any, default: int = DEFAULT_PRIORITY_SCORE) -> int:
    """Coerce any value to an integer priority score within 1..10."""
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(MIN_PRIORITY_SCORE, min(MAX_PRIORITY_SCORE, score))


def level_for_score(score: int) -> PriorityLevel:
    """Derive the priority level from a clamped score."""
    if score >= 7:
        return PriorityLevel.HIGH
    if score >= 5:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


def parse_priority_level(value: Any) -> Optional[PriorityLevel]:
    if value is None:
        return None
    text = str(value).strip().lower()
    aliases = {'med': PriorityLevel.MEDIUM, 'critical': PriorityLevel.HIGH}
    if text in aliases:
        return aliases[text]
    try:
        return PriorityLevel(text)
    except ValueError:
        return None


def resolve_priority(score: Any, level: Any = None) -> Tuple[int, PriorityLevel]:
    """
    Resolve a (score, level) pair from service output.

    A usable score always wins and determines the level. Without one, a known
    level maps to its default score; otherwise the medium default applies.
    """
    parsed_level = parse_priority_level(level)
    if score is None or isinstance(score, bool):
        usable = None
    else:
        usable = clamp_priority_score(score, default=-1)
        if usable == -1:
            usable = None

    if usable is None:
        fallback = LEVEL_DEFAULT_SCORES.get(parsed_level, DEFAULT_PRIORITY_SCORE)
        return fallback, level_for_score(fallback)
    return usable, level_for_score(usable)


def source_tier(source_name: str) -> int:
    """Authority tier (1 best) of an outlet name; unknown outlets rank as tier 4."""
    name = (source_name or '').lower()
    if not name:
        return 4
    for tier in (1, 2):
        for outlet in SOURCE_TIERS[tier]:
            outlet_lower = outlet.lower()
            # Short abbreviations must match as whole words
            if len(outlet_lower) <= 3:
                if outlet_lower in name.replace('.', ' ').split():
                    return tier
            elif outlet_lower in name:
                return tier
    for trade in ("pe hub", "pitchbook", "private equity international", "altassets", "buyouts"):
        if trade in name:
            return 3
    return 4


def format_rubric() -> str:
    """Rubric text block for prompts."""
    return "\n".join(f"- {band}: {meaning}" for band, meaning in PRIORITY_RUBRIC)


def format_source_tiers() -> str:
    """Source authority tiers text block for prompts."""
    return "\n".join(f"- Tier {tier}: {', '.join(outlets)}" for tier, outlets in SOURCE_TIERS.items())
