#!/usr/bin/env python3
"""
JSON extraction and truncation repair for content-generation output.

Responses arrive as free text: sometimes fenced, sometimes wrapped in prose,
sometimes cut off mid-array when the model hits its token limit. The helpers
here locate the JSON object that carries a given key and, when it does not
parse, salvage every fully-formed element of its array.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from ...shared.types.parsing import Ok, ParseFailure, ParseResult

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r'```(?:json|JSON)?\s*')


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers."""
    return _FENCE_RE.sub('', text or '').strip()


def _string_end(text: str, start: int) -> Optional[int]:
    """Index of the closing quote of the string opened at ``start``."""
    j = start + 1
    n = len(text)
    while j < n:
        ch = text[j]
        if ch == '\\':
            j += 2
            continue
        if ch == '"':
            return j
        j += 1
    return None


def _next_significant(text: str, start: int) -> str:
    for ch in text[start:]:
        if not ch.isspace():
            return ch
    return ''


def _matching_close(text: str, start: int) -> Optional[int]:
    """Index of the bracket closing the one at ``start``, or None if truncated."""
    depth = 0
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            if end is None:
                return None
            i = end + 1
            continue
        if ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def find_json_object(text: str, key: str) -> Optional[str]:
    """
    First JSON-object substring that has ``key`` as one of its own fields.

    Returns the balanced object text, or everything from its opening brace to
    the end of input when the object is truncated.
    """
    stack = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        # quotes outside any object are plain prose
        if ch == '"' and stack:
            end = _string_end(text, i)
            if end is None:
                return None
            if text[i + 1:end] == key and _next_significant(text, end + 1) == ':':
                start = stack[-1]
                close = _matching_close(text, start)
                return text[start:close + 1] if close is not None else text[start:]
            i = end + 1
            continue
        if ch == '{':
            stack.append(i)
        elif ch == '}' and stack:
            stack.pop()
        i += 1
    return None


def parse_json_object(text: str, key: str) -> ParseResult:
    """Strip fences, locate the object carrying ``key`` and parse it."""
    cleaned = strip_code_fences(text)
    if not cleaned:
        return ParseFailure("empty response")

    candidate = find_json_object(cleaned, key)
    if candidate is None:
        return ParseFailure(f"no JSON object with '{key}' field")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        return ParseFailure(f"invalid JSON: {e}")

    if not isinstance(data, dict) or key not in data:
        return ParseFailure(f"parsed JSON lacks '{key}' field")
    return Ok(data)


class MalformedOutputRecoverer:
    """
    Truncates a broken response to its last complete array element.

    Scans from the array opening bracket with string-aware depth counters.
    Whenever a ``}`` brings brace depth back to 0 while bracket depth is 1,
    a whole element has just ended; the last such position is the cut point.
    The array and the enclosing object are then closed with the trailing
    fields appended, and the result is parsed once.
    """

    def __init__(self, array_key: str = 'articles', trailing_fields: Optional[Dict[str, Any]] = None):
        self.array_key = array_key
        self.trailing_fields = {'coverageGaps': []} if trailing_fields is None else trailing_fields

    def _trailer(self) -> str:
        return ''.join(f', {json.dumps(k)}: {json.dumps(v)}' for k, v in self.trailing_fields.items()) + '}'

    def _locate_array(self, text: str) -> Optional[int]:
        match = re.search(r'"' + re.escape(self.array_key) + r'"\s*:\s*\[', text)
        return match.end() - 1 if match else None

    def scan(self, text: str, array_start: int) -> Tuple[Optional[int], Optional[int]]:
        """
        Walk the array at ``array_start``.

        Returns (last_complete_element_end, array_close) where either may be None.
        """
        bracket_depth = 0
        brace_depth = 0
        in_string = False
        escaped = False
        last_complete = None

        for i in range(array_start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == '\\':
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
            elif ch == '[':
                bracket_depth += 1
            elif ch == ']':
                bracket_depth -= 1
                if bracket_depth == 0:
                    return last_complete, i
            elif ch == '{':
                brace_depth += 1
            elif ch == '}':
                brace_depth -= 1
                if bracket_depth == 1 and brace_depth == 0:
                    last_complete = i

        return last_complete, None

    def repair(self, text: str) -> Optional[str]:
        """Repaired JSON text, or None if no complete element exists."""
        body = strip_code_fences(text)
        located = find_json_object(body, self.array_key)
        if located is not None:
            body = located

        array_start = self._locate_array(body)
        if array_start is None:
            return None
        object_start = 0 if located is not None else body.rfind('{', 0, array_start)
        if object_start == -1:
            return None

        last_complete, array_close = self.scan(body, array_start)
        if array_close is not None:
            return body[object_start:array_close + 1] + self._trailer()
        if last_complete is None:
            return None
        return body[object_start:last_complete + 1] + ']' + self._trailer()

    def recover(self, text: str) -> ParseResult:
        """Repair then parse; a tagged result either way."""
        repaired = self.repair(text)
        if repaired is None:
            return ParseFailure(f"no complete '{self.array_key}' element to recover")

        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as e:
            return ParseFailure(f"repaired JSON still invalid: {e}")

        if not isinstance(data, dict) or not isinstance(data.get(self.array_key), list):
            return ParseFailure(f"repaired JSON lacks '{self.array_key}' array")

        logger.info(f"Recovered {len(data[self.array_key])} complete '{self.array_key}' elements from truncated output")
        return Ok(data)
