"""Conversation history persistence."""

from __future__ import annotations

import uuid
from typing import Protocol

from agent_pipeline.types import ChatMessage


class ConversationStore(Protocol):
    def create(self, agent_id: str, user_id: str) -> str:
        """Open a conversation and return its identifier."""

    def history(self, conversation_id: str, limit: int) -> list[ChatMessage]:
        """Return the most recent `limit` messages in chronological order."""

    def append(self, conversation_id: str, messages: list[ChatMessage]) -> None:
        """Persist messages in the given order."""


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._messages: dict[str, list[ChatMessage]] = {}
        self._owners: dict[str, tuple[str, str]] = {}

    def create(self, agent_id: str, user_id: str) -> str:
        conversation_id = str(uuid.uuid4())
        self._messages[conversation_id] = []
        self._owners[conversation_id] = (agent_id, user_id)
        return conversation_id

    def history(self, conversation_id: str, limit: int) -> list[ChatMessage]:
        if limit <= 0:
            return []
        return list(self._messages.get(conversation_id, [])[-limit:])

    def append(self, conversation_id: str, messages: list[ChatMessage]) -> None:
        self._messages.setdefault(conversation_id, []).extend(messages)
