"""Agent profiles: persona, enabled tools and retrieval options."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, Field

from agent_pipeline.config import RetrievalConfig
from agent_pipeline.errors import NotFoundError


class AgentProfile(BaseModel):
    agent_id: str
    company_id: str
    name: str
    description: str = ""
    instructions: str | None = None
    enabled_tool_ids: list[str] = Field(default_factory=list)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)

    def system_preamble(self) -> str:
        if self.instructions:
            return self.instructions
        return f"You are {self.name}. {self.description}".strip()


class AgentStore(Protocol):
    def get(self, agent_id: str) -> AgentProfile:
        """Return the agent or raise `NotFoundError`."""


class InMemoryAgentStore:
    def __init__(self) -> None:
        self._agents: dict[str, AgentProfile] = {}

    def save(self, agent: AgentProfile) -> None:
        self._agents[agent.agent_id] = agent

    def get(self, agent_id: str) -> AgentProfile:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id)
        return agent
