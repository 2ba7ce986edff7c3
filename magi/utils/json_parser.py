"""Unified JSON parsing from LLM output.

Handles common LLM response patterns: plain JSON, a fenced code block
wrapping the whole reply, JSON with surrounding text.
"""

import json
import re
from typing import Any, Dict

_LEADING_FENCE = re.compile(r'^```[a-zA-Z0-9_-]*\s*', re.IGNORECASE)
_TRAILING_FENCE = re.compile(r'\s*```$')


def strip_code_fence(raw: str) -> str:
    """Remove one leading and one trailing code-fence marker, if present.

    The leading marker may carry a language tag (```json, ```JSON, ...).
    """
    text = raw.strip()
    text = _LEADING_FENCE.sub('', text, count=1)
    text = _TRAILING_FENCE.sub('', text, count=1)
    return text.strip()


def parse_json_from_llm(raw: str) -> Dict[str, Any]:
    """Parse one JSON object from LLM output.

    Supports:
    - Plain JSON: '{"key": "value"}'
    - Fenced reply: '```json\\n{"key": "value"}\\n```'
    - JSON with surrounding text

    Args:
        raw: Raw LLM output string.

    Returns:
        Parsed JSON as dict.

    Raises:
        ValueError: If no valid JSON object found.
    """
    if not raw or not raw.strip():
        raise ValueError("Empty input")

    text = strip_code_fence(raw)

    # Try 1: parse after fence stripping
    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    # Try 2: extract from an inner markdown code block
    code_block_match = re.search(r'```(?:json)?\s*\n(.*?)\n\s*```', raw, re.DOTALL | re.IGNORECASE)
    if code_block_match:
        try:
            result = json.loads(code_block_match.group(1).strip())
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    # Try 3: find first { ... } block
    brace_match = re.search(r'\{.*\}', text, re.DOTALL)
    if brace_match:
        try:
            result = json.loads(brace_match.group(0))
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    raise ValueError(f"No valid JSON found in LLM output: {text[:200]}")
