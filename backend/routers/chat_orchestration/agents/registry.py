"""
Sub-Agent Registry - immutable intent -> descriptor lookup.

Built once at startup and shared read-only by every turn.

Usage:
    registry = build_default_registry()
    agent = registry.resolve(plan.intent)   # never None
"""

import logging
from types import MappingProxyType
from typing import Iterable, Iterator, List, Mapping, Optional

from errors import QuerypilotError, ErrorCode
from .base import SubAgent

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "general"


class SubAgentRegistry:
    """Read-only mapping from intent id to SubAgent.

    Iteration follows registration order; the classifier tries keywords
    and heuristics in that order.
    """

    def __init__(self, agents: Iterable[SubAgent], default_intent: str = DEFAULT_INTENT):
        by_id = {}
        for agent in agents:
            if agent.id in by_id:
                raise QuerypilotError(f"Duplicate sub-agent id: {agent.id}", code=ErrorCode.INTERNAL_CONFIG_ERROR)
            by_id[agent.id] = agent
        if default_intent not in by_id:
            raise QuerypilotError(
                f"Registry needs a '{default_intent}' agent", code=ErrorCode.INTERNAL_CONFIG_ERROR
            )
        self._agents: Mapping[str, SubAgent] = MappingProxyType(by_id)
        self.default_intent = default_intent

    def __iter__(self) -> Iterator[SubAgent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, intent: object) -> bool:
        return intent in self._agents

    def ids(self) -> List[str]:
        return list(self._agents)

    def get(self, intent: Optional[str]) -> Optional[SubAgent]:
        if intent is None:
            return None
        return self._agents.get(intent)

    @property
    def default(self) -> SubAgent:
        return self._agents[self.default_intent]

    def resolve(self, intent: Optional[str]) -> SubAgent:
        """Descriptor for intent; unknown or missing intents get the default agent."""
        agent = self.get(intent)
        if agent is None:
            if intent is not None:
                logger.warning(f"Unknown intent '{intent}', using {self.default_intent}")
            return self.default
        return agent

    def describe(self) -> List[dict]:
        return [
            {
                "id": agent.id,
                "keyword": agent.keyword,
                "description": agent.description,
                "tools": [t.name for t in agent.tools],
            }
            for agent in self
        ]


def build_default_registry() -> SubAgentRegistry:
    """Registry with the built-in experts.

    Optimization is registered before visualization so "slow" wins over
    chart words such as "line" when both appear.
    """
    from .general import GENERAL_AGENT
    from .sql_generation import SQL_GENERATION_AGENT
    from .optimization import OPTIMIZATION_AGENT
    from .visualization import VISUALIZATION_AGENT

    registry = SubAgentRegistry([GENERAL_AGENT, SQL_GENERATION_AGENT, OPTIMIZATION_AGENT, VISUALIZATION_AGENT])
    logger.info(f"SubAgentRegistry initialized with {len(registry)} agents: {', '.join(registry.ids())}")
    return registry
