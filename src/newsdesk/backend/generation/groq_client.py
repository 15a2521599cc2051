#!/usr/bin/env python3
"""
Groq-backed content generator.

Wraps ``AsyncGroq`` chat completions with a bounded retry loop: rate limits,
server errors, connection failures and timeouts are retried up to
``max_attempts`` times with a fixed backoff, then surfaced as
``GenerationError``. Other status errors fail immediately, except a JSON-mode
validation failure, whose rejected generation is returned so downstream
repair can salvage it.

Web-search instructions are routed to a Groq compound model, which performs
the search server-side.
"""

import os
import re
import time
import asyncio
import logging
from typing import Any, Dict, Optional

import groq
from groq import AsyncGroq

from .base import ContentGenerator, GenerationError
from ..monitoring.usage_tracker import usage_tracker as default_tracker

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a financial news research analyst covering private equity portfolio "
    "companies and their executives. Be precise, cite real sources, and never invent articles."
)
JSON_SYSTEM_PROMPT = SYSTEM_PROMPT + " You must respond with valid JSON only."


class GroqContentGenerator(ContentGenerator):
    """Content generator using the official Groq Python library."""

    def __init__(self,
                 config: Optional[Dict[str, Any]] = None,
                 api_key: Optional[str] = None,
                 client: Optional[Any] = None,
                 tracker: Optional[Any] = None):
        self.config = config or {}
        self.api_key = api_key or os.getenv('GROQ_API_KEY')
        self.model = os.getenv('NEWSDESK_MODEL') or self.config.get('model', 'llama-3.3-70b-versatile')
        self.search_model = os.getenv('NEWSDESK_SEARCH_MODEL') or self.config.get('search_model', 'groq/compound')
        self.temperature = self.config.get('temperature', 0.0)
        self.max_tokens = self.config.get('max_tokens', 8000)
        self.timeout_seconds = self.config.get('timeout_seconds', 90)
        self.max_attempts = max(1, int(self.config.get('max_attempts', 3)))
        self.retry_backoff_seconds = self.config.get('retry_backoff_seconds', 2.0)
        self.tracker = tracker or default_tracker
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise GenerationError("GROQ_API_KEY is not set", attempts=0)
            self._client = AsyncGroq(api_key=self.api_key)
            logger.debug("AsyncGroq client created")
        return self._client

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, 'close'):
            await self._client.close()
        self._client = None

    def _build_request(self, prompt: str, web_search: bool, json_mode: bool,
                       max_tokens: Optional[int]) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            'model': self.search_model if web_search else self.model,
            'messages': [
                {'role': 'system', 'content': JSON_SYSTEM_PROMPT if json_mode else SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt},
            ],
            'temperature': self.temperature,
            'max_tokens': max_tokens or self.max_tokens,
        }
        # Compound models do not accept response_format
        if json_mode and not web_search:
            request['response_format'] = {'type': 'json_object'}
        return request

    async def generate(self,
                       prompt: str,
                       *,
                       web_search: bool = False,
                       json_mode: bool = False,
                       max_tokens: Optional[int] = None,
                       purpose: str = "generate") -> str:
        client = self._get_client()
        request = self._build_request(prompt, web_search, json_mode, max_tokens)
        model = request['model']
        started = time.time()
        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                completion = await asyncio.wait_for(
                    client.chat.completions.create(**request),
                    timeout=self.timeout_seconds
                )
            except groq.RateLimitError as e:
                last_error, last_status = e, 429
            except groq.InternalServerError as e:
                last_error, last_status = e, getattr(e, 'status_code', 500)
            except (groq.APIConnectionError, asyncio.TimeoutError) as e:
                last_error, last_status = e, None
            except groq.APIStatusError as e:
                failed_generation = self._extract_failed_generation(e)
                if failed_generation is not None:
                    logger.warning(f"{model} JSON validation failed, returning rejected generation for repair")
                    self._record(model, purpose, None, started, True, attempt, e.status_code)
                    return failed_generation
                self._record(model, purpose, None, started, False, attempt, e.status_code, str(e))
                raise GenerationError(f"{model} returned status {e.status_code}: {e}",
                                      attempts=attempt, status_code=e.status_code) from e
            else:
                self._record(model, purpose, completion, started, True, attempt, 200)
                return completion.choices[0].message.content or ''

            logger.warning(f"{model} attempt {attempt}/{self.max_attempts} failed "
                           f"({type(last_error).__name__}): {last_error}")
            if attempt < self.max_attempts and self.retry_backoff_seconds > 0:
                await asyncio.sleep(self.retry_backoff_seconds)

        self._record(model, purpose, None, started, False, self.max_attempts, last_status, str(last_error))
        raise GenerationError(f"{model} failed after {self.max_attempts} attempts: {last_error}",
                              attempts=self.max_attempts, status_code=last_status) from last_error

    @staticmethod
    def _extract_failed_generation(error: Exception) -> Optional[str]:
        """Rejected output from a ``json_validate_failed`` 400, if present."""
        if getattr(error, 'status_code', None) != 400:
            return None

        body = getattr(error, 'body', None)
        if isinstance(body, dict):
            details = body.get('error', body)
            if isinstance(details, dict) and details.get('code') == 'json_validate_failed':
                failed = details.get('failed_generation')
                if isinstance(failed, str) and failed.strip():
                    return failed

        error_details = str(error)
        if 'json_validate_failed' in error_details and 'failed_generation' in error_details:
            match = re.search(r"'failed_generation': '(.*)'", error_details, re.DOTALL)
            if match:
                return match.group(1).replace('\\n', '\n').replace('\\"', '"')
        return None

    def _record(self, model: str, purpose: str, completion: Any, started: float,
                success: bool, attempts: int, status_code: Optional[int],
                error_message: Optional[str] = None) -> None:
        usage = getattr(completion, 'usage', None) if completion is not None else None
        self.tracker.record_call(
            model=model,
            purpose=purpose,
            request_tokens=getattr(usage, 'prompt_tokens', 0) or 0,
            response_tokens=getattr(usage, 'completion_tokens', 0) or 0,
            processing_time=time.time() - started,
            success=success,
            attempts=attempts,
            status_code=status_code,
            error_message=error_message
        )
