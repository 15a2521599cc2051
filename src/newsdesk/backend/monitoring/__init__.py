#!/usr/bin/env python3
"""Usage monitoring for content-generation calls."""

from .usage_tracker import GenerationUsageTracker, usage_tracker

__all__ = ['GenerationUsageTracker', 'usage_tracker']
