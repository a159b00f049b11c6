"""
Sub-agents: one expert per intent.

- general: greetings, how-to, simple lookups (default)
- sql-generation: new queries (@sql)
- optimization: slow query diagnosis (@optimizer)
- visualization: charts (@visualizer)
"""

from .base import SubAgent, ToolSpec, ToolContext, render_domain_context
from .registry import SubAgentRegistry, build_default_registry, DEFAULT_INTENT

__all__ = [
    "SubAgent",
    "ToolSpec",
    "ToolContext",
    "render_domain_context",
    "SubAgentRegistry",
    "build_default_registry",
    "DEFAULT_INTENT",
]
