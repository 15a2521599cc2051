#!/usr/bin/env python3
"""
Content-Generation Usage Tracker

Records every call the pipeline makes to the content-generation service so a
run's token spend, latency and failure count can be reported afterwards.
"""

import json
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class GenerationCall:
    """A single call to the content-generation service."""
    timestamp: str
    model: str
    purpose: str
    request_tokens: int
    response_tokens: int
    total_tokens: int
    processing_time: float
    success: bool
    attempts: int = 1
    status_code: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class UsageSummary:
    """Aggregate usage for one tracker session."""
    session_start: str
    session_end: str
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_tokens: int
    total_request_tokens: int
    total_response_tokens: int
    models_used: Dict[str, int]
    purposes: Dict[str, int]
    average_processing_time: float
    rate_limit_hits: int
    calls: List[GenerationCall] = field(default_factory=list)


class GenerationUsageTracker:
    """Tracks content-generation usage across a pipeline run."""

    def __init__(self):
        self.calls: List[GenerationCall] = []
        self.session_start = datetime.now(timezone.utc)
        self.rate_limit_hits = 0

    def record_call(self,
                    model: str,
                    purpose: str = "generate",
                    request_tokens: int = 0,
                    response_tokens: int = 0,
                    processing_time: float = 0.0,
                    success: bool = True,
                    attempts: int = 1,
                    status_code: Optional[int] = None,
                    error_message: Optional[str] = None) -> None:
        """Record one (possibly retried) call."""
        call = GenerationCall(
            timestamp=datetime.now(timezone.utc).isoformat(),
            model=model,
            purpose=purpose,
            request_tokens=request_tokens,
            response_tokens=response_tokens,
            total_tokens=request_tokens + response_tokens,
            processing_time=processing_time,
            success=success,
            attempts=attempts,
            status_code=status_code,
            error_message=error_message
        )
        self.calls.append(call)

        if status_code == 429:
            self.rate_limit_hits += 1

        logger.debug(f"Recorded generation call: {model} ({purpose}) - {call.total_tokens} tokens - {processing_time:.2f}s")

    def get_usage_summary(self) -> UsageSummary:
        """Summarize everything recorded since the tracker was created or reset."""
        session_end = datetime.now(timezone.utc)

        successful_calls = sum(1 for call in self.calls if call.success)
        models_used: Dict[str, int] = {}
        purposes: Dict[str, int] = {}
        for call in self.calls:
            models_used[call.model] = models_used.get(call.model, 0) + 1
            purposes[call.purpose] = purposes.get(call.purpose, 0) + 1

        successful_times = [call.processing_time for call in self.calls if call.success]
        average_processing_time = sum(successful_times) / len(successful_times) if successful_times else 0.0

        return UsageSummary(
            session_start=self.session_start.isoformat(),
            session_end=session_end.isoformat(),
            total_calls=len(self.calls),
            successful_calls=successful_calls,
            failed_calls=len(self.calls) - successful_calls,
            total_tokens=sum(call.total_tokens for call in self.calls),
            total_request_tokens=sum(call.request_tokens for call in self.calls),
            total_response_tokens=sum(call.response_tokens for call in self.calls),
            models_used=models_used,
            purposes=purposes,
            average_processing_time=average_processing_time,
            rate_limit_hits=self.rate_limit_hits,
            calls=list(self.calls)
        )

    def save_usage_report(self, output_path: Path) -> None:
        """Write the usage summary as JSON."""
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(self.get_usage_summary()), f, indent=2)
        logger.info(f"Usage report saved to {output_path}")

    def reset(self) -> None:
        self.calls.clear()
        self.rate_limit_hits = 0
        self.session_start = datetime.now(timezone.utc)


# Global instance for easy access
usage_tracker = GenerationUsageTracker()
