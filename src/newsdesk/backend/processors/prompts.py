#!/usr/bin/env python3
"""
Shared prompt fragments for the enrichment and ad-hoc search instructions.
"""

from typing import Optional

from ...shared.types.results import ArticleCategory
from ...shared.types.scoring import format_rubric

EXCLUDE_RULES = """- Articles where the tracked entity is mentioned only tangentially or for context
- Articles about a different entity with a similar name
- General industry news without specific entity focus
- Generic press releases with no substantive news
- Routine product updates without strategic significance
- Event sponsorship or award/recognition announcements
- Minor personnel changes (non-executive level)
- Rehashed information from prior announcements
- Promotional content and opinion pieces without new facts
- Analyst ratings or price targets where the tracked company is the ANALYST, not the subject
- Share purchases or buybacks unless they represent a controlling or >10% stake change"""

KEEP_RULES = """- Mergers, acquisitions, divestitures, strategic partnerships
- C-suite appointments/departures, board changes
- Earnings releases, significant revenue/profit changes
- Major contract wins/losses, facility changes
- PE/VC investments, fund closes, debt refinancing, IPOs
- Technology implementations, workforce restructuring"""


def category_list() -> str:
    return ", ".join(c.value for c in ArticleCategory if c is not ArticleCategory.NEWS)


def classification_block(entity: Optional[str] = None) -> str:
    """Filtering rules, taxonomy and priority rubric shared by every enrichment instruction."""
    subject = entity or "a tracked company or person"
    return f"""## STRICT filtering (when in doubt, EXCLUDE)
{EXCLUDE_RULES}

## KEEP only articles definitively ABOUT {subject} that cover:
{KEEP_RULES}

## Categories (use exactly one)
{category_list()}

## Priority score (integer 1-10)
{format_rubric()}
"""
