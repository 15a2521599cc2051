#!/usr/bin/env python3
"""
Content-generation clients used by the search, dedup and enrichment stages.
"""

from .base import ContentGenerator, GenerationError
from .groq_client import GroqContentGenerator

__all__ = [
    'ContentGenerator',
    'GenerationError',
    'GroqContentGenerator'
]
