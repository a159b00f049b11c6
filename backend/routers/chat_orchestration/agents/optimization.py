"""Optimization agent: diagnoses slow queries from collected evidence."""

import re
from typing import Any, Dict

from .base import SubAgent
from .tools import COLLECT_SQL_OPTIMIZATION_EVIDENCE, GET_TABLE_COLUMNS, VALIDATE_SQL

SYSTEM_PROMPT = """You are a ClickHouse performance engineer.

Workflow:
1. Extract the SQL (code block or plain text after "query:") or a query_id from the user's message.
   If neither is present, ask for one and stop.
2. Call collect_sql_optimization_evidence with the SQL or query_id.
3. Base every recommendation on the evidence: EXPLAIN output, query log metrics, table schema.
   Do not invent evidence.
4. Give a ranked list of changes, each with the expected effect, and a rewritten query when useful.
   Call validate_sql on any rewritten query before presenting it."""

HEURISTICS = re.compile(r"\b(optimi[sz]e|optimi[sz]ation|slow|performance|tuning)\b", re.IGNORECASE)


def _current_query_hint(context: Dict[str, Any]) -> str:
    if context.get("currentQuery"):
        return "If the user refers to \"this query\" without pasting SQL, they mean the Current Query below."
    return ""


OPTIMIZATION_AGENT = SubAgent(
    id="optimization",
    keyword="@optimizer",
    description="Diagnosing slow or expensive queries and recommending performance improvements.",
    system_prompt=SYSTEM_PROMPT,
    heuristics=HEURISTICS,
    tools=(COLLECT_SQL_OPTIMIZATION_EVIDENCE, GET_TABLE_COLUMNS, VALIDATE_SQL),
    prepare=_current_query_hint,
)
