"""
Sub-Agent descriptors.

A sub-agent is data: an intent id, how it is recognised (reserved keyword,
heuristic pattern), its system prompt and its tool set. Every descriptor
streams through the same runner (AgentStream); they differ only in what
they hand it.

Tools come in two kinds:
- client tools have no executor; the stream announces the call and the
  browser runs it, then resubmits the turn with the result
- server tools carry an async executor that runs inside the turn
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Tuple

from services.llm_config import ModelConfig


@dataclass(frozen=True)
class ToolContext:
    """What a server tool executor gets besides its arguments."""
    model_config: ModelConfig
    domain_context: Dict[str, Any]
    llm_factory: Callable[[ModelConfig], Any]


ToolExecutor = Callable[[Dict[str, Any], ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Dict[str, Any]
    executor: Optional[ToolExecutor] = None

    @property
    def server_side(self) -> bool:
        return self.executor is not None

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def render_domain_context(context: Optional[Dict[str, Any]]) -> str:
    """Prompt sections describing the console state the user is looking at."""
    context = context or {}
    sections: List[str] = []

    if context.get("currentQuery"):
        sections.append(f"## Current Query\n```sql\n{context['currentQuery']}\n```")

    if context.get("database"):
        sections.append(f"## Current Database\n{context['database']}")

    user = context.get("clickHouseUser") or context.get("user")
    if user:
        sections.append(
            "## Console User\n"
            f"Current authenticated user: **{user}**\n"
            f'When a query filters by user, use "{user}". Do not ask the user for their name '
            "and do not use placeholders such as current_user()."
        )

    tables = context.get("tables")
    if isinstance(tables, list) and tables:
        lines = [
            "## Available Tables (AUTHORITATIVE)",
            "Use these schemas instead of calling tools when the table you need is listed.",
        ]
        for table in tables:
            if not isinstance(table, dict) or not isinstance(table.get("name"), str):
                continue
            columns = table.get("columns") if isinstance(table.get("columns"), list) else []
            lines.append(f"\n### {table['name']}")
            lines.append(f"Columns: {', '.join(str(c) for c in columns)}")
            total = table.get("totalColumns")
            if isinstance(total, int) and total > len(columns):
                lines.append(
                    f'*(This table has {total - len(columns)} more columns. '
                    f'Call "get_table_columns" if you need one that is not listed.)*'
                )
        sections.append("\n".join(lines))

    sections.append(f"## Current Date/Time\n{datetime.now(timezone.utc).isoformat()}")
    return "\n\n".join(sections)


@dataclass(frozen=True)
class SubAgent:
    """An expert bound to one intent."""

    id: str
    description: str
    system_prompt: str
    keyword: Optional[str] = None
    heuristics: Optional[Pattern[str]] = None
    tools: Tuple[ToolSpec, ...] = ()
    # Extra prompt text derived from the domain context
    prepare: Optional[Callable[[Dict[str, Any]], str]] = field(default=None, compare=False)

    def matches_keyword(self, text: str) -> bool:
        if not self.keyword:
            return False
        return text == self.keyword or text.startswith(f"{self.keyword} ")

    def matches_heuristics(self, text: str) -> bool:
        return bool(self.heuristics and self.heuristics.search(text))

    def tool(self, name: str) -> Optional[ToolSpec]:
        for spec in self.tools:
            if spec.name == name:
                return spec
        return None

    def build_system_prompt(self, context: Optional[Dict[str, Any]] = None) -> str:
        sections = [self.system_prompt.strip()]
        if self.prepare is not None:
            extra = self.prepare(context or {})
            if extra:
                sections.append(extra.strip())
        sections.append(render_domain_context(context))
        return "\n\n".join(sections)

    def stream(self, history, model_config: ModelConfig, context: Optional[Dict[str, Any]] = None, **options):
        """Start this agent on the given history.

        Returns an AgentStream: iterate it for wire events, then read
        ``usage`` once it is exhausted.
        """
        from ..agent_stream import AgentStream

        return AgentStream(self, history, model_config, context or {}, **options)
