"""NDJSON encoding of stream envelopes."""

import json
from typing import Any, Dict

MEDIA_TYPE = "application/x-ndjson"


def encode_event(event: Dict[str, Any]) -> str:
    """One envelope as a compact JSON line."""
    return json.dumps(event, ensure_ascii=False, separators=(",", ":"), default=str) + "\n"
