#!/usr/bin/env python3
"""
Content-generation service interface.

The pipeline never talks to a vendor SDK directly; it is handed a
``ContentGenerator`` so tests can substitute a scripted double.
"""

from abc import ABC, abstractmethod
from typing import Optional


class GenerationError(Exception):
    """The content-generation service failed after all retry attempts."""

    def __init__(self, message: str, attempts: int = 0, status_code: Optional[int] = None):
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code


class ContentGenerator(ABC):
    """Natural-language instruction in, free-form text out."""

    @abstractmethod
    async def generate(self,
                       prompt: str,
                       *,
                       web_search: bool = False,
                       json_mode: bool = False,
                       max_tokens: Optional[int] = None,
                       purpose: str = "generate") -> str:
        """
        Run one instruction and return the raw response text.

        Raises:
            GenerationError: the service could not produce a response.
        """

    async def aclose(self) -> None:
        """Release any underlying client resources."""
        return None
