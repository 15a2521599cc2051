#!/usr/bin/env python3
"""
Parse Results - tagged outcome of parsing an external response.

Every parse of service output returns either ``Ok`` carrying the parsed value
or ``ParseFailure`` carrying a human-readable reason. Callers branch on the
variant instead of catching decoder exceptions.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar('T')


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful parse."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseFailure:
    """Failed parse with the reason it failed."""
    reason: str

    @property
    def ok(self) -> bool:
        return False


ParseResult = Union[Ok[Any], ParseFailure]
