"""LLM-backed generative client."""

from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic_ai import Agent

logger = logging.getLogger(__name__)


class AgentGenerativeClient:
    """Generate JSON objects with a pydantic-ai agent.

    The agent is built on first use so that constructing the client does not
    require provider credentials.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        self._agents: Dict[str, Agent] = {}

    def _agent_for(self, system_prompt: str) -> Agent:
        agent = self._agents.get(system_prompt)
        if agent is None:
            agent = Agent(
                self.model,
                output_type=Dict[str, Any],
                system_prompt=system_prompt,
            )
            self._agents[system_prompt] = agent
        return agent

    async def generate(self, system_prompt: str, user_prompt: str) -> Any:
        agent = self._agent_for(system_prompt)
        result = await agent.run(user_prompt)
        logger.debug(f"Generated output with {self.model}")
        return result.output
