"""
Shared JSON Repair Utility

Extracts, repairs, and parses JSON from model responses. Smaller models in
JSON mode still wrap output in code fences, emit Python literals or stop
mid-object; the repair pipeline below fixes those deterministically.

Used by: intent planner, title generator, generate_sql / generate_visualization tools
"""

import json
import logging
import re
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def extract_json_from_response(text: str) -> Optional[str]:
    """
    Extract a JSON object string from a model response.

    Tries (in order):
    1. Fenced code blocks (```json or bare ```)
    2. Raw JSON object (outermost { ... }, possibly unterminated)

    Returns:
        Extracted JSON string, or None if no JSON found
    """
    if not text:
        return None

    for block in _FENCE.findall(text):
        if block.lstrip().startswith("{"):
            return block.strip()

    start = text.find("{")
    if start < 0:
        return None
    end = text.rfind("}")
    if end > start:
        return text[start:end + 1].strip()
    # Truncated: keep everything from the first brace, repair closes it
    return text[start:].strip()


def _truncate_after_object(s: str) -> str:
    depth = 0
    in_string = False
    escaped = False
    for i, c in enumerate(s):
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return s[:i + 1]
    return s


def _python_literals(s: str) -> str:
    s = re.sub(r"\bNone\b", "null", s)
    s = re.sub(r"\bTrue\b", "true", s)
    return re.sub(r"\bFalse\b", "false", s)


def _single_quotes(s: str) -> str:
    # Only quotes that look like JSON delimiters; apostrophes in text stay
    s = re.sub(r"(?<=[{,:\[])\s*'([^']*?)'\s*(?=[},:\]])", r'"\1"', s)
    return re.sub(r"'(\w+)':", r'"\1":', s)


def _trailing_commas(s: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", s)


def _unquoted_values(s: str) -> str:
    return re.sub(
        r":\s*([a-zA-Z][a-zA-Z0-9_\-]*)\s*([,}])",
        lambda m: m.group(0) if m.group(1) in ("null", "true", "false") else f': "{m.group(1)}"{m.group(2)}',
        s,
    )


def _close_open(s: str) -> str:
    if s.count('"') % 2 == 1:
        s += '"'
    open_brackets = s.count("[") - s.count("]")
    open_braces = s.count("{") - s.count("}")
    if open_braces > 0 or open_brackets > 0:
        s += "]" * max(open_brackets, 0) + "}" * max(open_braces, 0)
        logger.debug(f"Closed {open_braces} braces and {open_brackets} brackets")
    return s


REPAIRS: List[Tuple[str, Callable[[str], str]]] = [
    ("truncate", _truncate_after_object),
    ("python_literals", _python_literals),
    ("single_quotes", _single_quotes),
    ("trailing_commas", _trailing_commas),
    ("unquoted_values", _unquoted_values),
    ("close_open", _close_open),
]


def repair_json(json_str: str) -> str:
    """
    Attempt to repair malformed JSON from model output.

    Returns:
        Repaired JSON string (may still be invalid in edge cases)
    """
    repaired = json_str
    applied = []
    for name, step in REPAIRS:
        updated = step(repaired)
        if updated != repaired:
            applied.append(name)
            repaired = updated
    if applied:
        logger.info(f"Applied JSON repairs: {', '.join(applied)}")
    return repaired


def parse_json_response(text: str) -> Optional[Any]:
    """
    Full pipeline: extract JSON from a model response, repair, and parse.

    Returns:
        Parsed Python object, or None if extraction/parsing fails
    """
    json_str = extract_json_from_response(text)
    if json_str is None:
        logger.warning("No JSON found in response")
        return None

    # Try parsing as-is first (fast path)
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(json_str)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse failed after all repairs: {e}")
        return None
