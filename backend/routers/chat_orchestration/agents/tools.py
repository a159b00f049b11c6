"""
Tool declarations for sub-agents.

Client tools run in the browser against the user's database connection;
only their schema lives here. Server tools run inside the turn and call
the model again for a focused, structured answer.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from errors import ToolExecutionError, handle_async_tool_errors, success_response
from services.json_repair import parse_json_response
from .base import ToolContext, ToolSpec, render_domain_context

logger = logging.getLogger(__name__)


# =============================================================================
# CLIENT TOOLS
# =============================================================================

GET_TABLES = ToolSpec(
    name="get_tables",
    description="List tables in a database. Optionally filter by database name.",
    parameters={
        "type": "object",
        "properties": {
            "database": {
                "type": "string",
                "description": "Database to list. Omit to list tables of all databases.",
            },
        },
    },
)

GET_TABLE_COLUMNS = ToolSpec(
    name="get_table_columns",
    description=(
        "List the columns of one or more tables. Split fully qualified names: "
        "'system.metric_log' is database='system', table='metric_log'."
    ),
    parameters={
        "type": "object",
        "properties": {
            "tablesAndSchemas": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "database": {"type": "string"},
                        "table": {"type": "string", "description": "Table name without database prefix"},
                    },
                    "required": ["database", "table"],
                },
            },
        },
        "required": ["tablesAndSchemas"],
    },
)

VALIDATE_SQL = ToolSpec(
    name="validate_sql",
    description="Validate ClickHouse SQL syntax without executing it. Returns an error message if invalid.",
    parameters={
        "type": "object",
        "properties": {"sql": {"type": "string", "description": "The SQL query to validate"}},
        "required": ["sql"],
    },
)

EXECUTE_SQL = ToolSpec(
    name="execute_sql",
    description="Execute a SQL query on the user's ClickHouse connection and return columns and rows.",
    parameters={
        "type": "object",
        "properties": {"sql": {"type": "string", "description": "The SQL query to execute"}},
        "required": ["sql"],
    },
)

COLLECT_SQL_OPTIMIZATION_EVIDENCE = ToolSpec(
    name="collect_sql_optimization_evidence",
    description=(
        "Collect query logs, EXPLAIN plans, table schemas and statistics needed to "
        "optimize a SQL query. Pass the SQL text or a query_id."
    ),
    parameters={
        "type": "object",
        "properties": {
            "sql": {"type": "string", "description": "SQL text to analyze (preferred)"},
            "query_id": {"type": "string", "description": "query_id to read logs for"},
            "goal": {"type": "string", "enum": ["latency", "memory", "bytes", "dashboard", "other"]},
            "mode": {"type": "string", "enum": ["light", "full"], "default": "light"},
        },
    },
)


# =============================================================================
# SERVER TOOLS
# =============================================================================


class GeneratedSql(BaseModel):
    sql: str
    notes: str = ""
    assumptions: List[str] = Field(default_factory=list)
    needs_clarification: bool = False
    questions: List[str] = Field(default_factory=list)


class VisualizationPlan(BaseModel):
    type: Literal["line", "bar", "area", "pie", "table", "none"]
    titleOption: Optional[Dict[str, Any]] = None
    width: Optional[int] = Field(default=None, ge=1, le=12)
    legendOption: Optional[Dict[str, Any]] = None
    query: Dict[str, str]
    yAxis: Optional[List[Dict[str, Any]]] = None


_GENERATE_SQL_PROMPT = """You write ClickHouse SQL.
Reply in JSON with the fields: sql, notes, assumptions (list), needs_clarification (bool), questions (list).
Use only tables and columns that appear in the schema context or the request.
If the request cannot be answered without more information, set needs_clarification and ask."""

_GENERATE_VISUALIZATION_PROMPT = """You are a data visualization expert.
Given a ClickHouse SQL query and the user's question, reply in JSON describing the best chart:
{"type": "line" | "bar" | "area" | "pie" | "table" | "none",
 "titleOption": {"title": "...", "align": "center"}, "width": 6,
 "legendOption": {"placement": "bottom" | "none", "values": ["min", "max"]},
 "query": {"sql": "..."}}
Prefer "line" for time series, "bar" for category comparisons, "table" only when there is no numeric metric."""


async def _structured_call(context: ToolContext, system: str, user: str) -> tuple:
    client = context.llm_factory(context.model_config)
    content, usage = await client.generate_json(
        [{"role": "system", "content": system}, {"role": "user", "content": user}]
    )
    return parse_json_response(content), usage


@handle_async_tool_errors("generate_sql")
async def generate_sql(args: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
    question = str(args.get("question") or "").strip()
    if not question:
        raise ToolExecutionError("A question is required to generate SQL", tool="generate_sql")

    user = f"{render_domain_context(context.domain_context)}\n\n## Request\n{question}"
    if args.get("previousError"):
        user += f"\n\n## Previous Validation Error (fix this)\n{args['previousError']}"

    data, usage = await _structured_call(context, _GENERATE_SQL_PROMPT, user)
    try:
        result = GeneratedSql.model_validate(data)
    except PydanticValidationError as e:
        raise ToolExecutionError("The model did not return usable SQL", details=str(e), tool="generate_sql")
    return success_response(result.model_dump(), usage=usage)


@handle_async_tool_errors("generate_visualization")
async def generate_visualization(args: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
    sql = str(args.get("sql") or "").strip()
    if not sql:
        raise ToolExecutionError("A validated SQL query is required", tool="generate_visualization")

    user = f"## Question\n{args.get('question') or ''}\n\n## SQL\n```sql\n{sql}\n```"
    data, usage = await _structured_call(context, _GENERATE_VISUALIZATION_PROMPT, user)
    try:
        plan = VisualizationPlan.model_validate(data)
    except PydanticValidationError as e:
        raise ToolExecutionError(
            "The model did not return a usable visualization", details=str(e), tool="generate_visualization"
        )
    return success_response(plan=plan.model_dump(exclude_none=True), usage=usage)


GENERATE_SQL = ToolSpec(
    name="generate_sql",
    description="Generate a ClickHouse SQL query for a question using the known schema.",
    parameters={
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "What the query must answer"},
            "previousError": {"type": "string", "description": "Validation error of the previous attempt"},
        },
        "required": ["question"],
    },
    executor=generate_sql,
)

GENERATE_VISUALIZATION = ToolSpec(
    name="generate_visualization",
    description="Produce a chart description for a validated SQL query. The console renders it.",
    parameters={
        "type": "object",
        "properties": {
            "sql": {"type": "string", "description": "Validated SQL query"},
            "question": {"type": "string", "description": "The user's original request"},
        },
        "required": ["sql"],
    },
    executor=generate_visualization,
)
