"""LLM intent classifier with deterministic override rules."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from agent_pipeline.agent.llm import ChatModel, content_text
from agent_pipeline.agent.overrides import (
    DEFAULT_RULES,
    OverrideContext,
    OverrideRule,
    apply_overrides,
)
from agent_pipeline.agent.prompts import CLASSIFIER_PROMPT, classifier_variables
from agent_pipeline.agent.registry import ToolCatalog
from agent_pipeline.config import ClassifierConfig
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.types import ActionType, Attachment, ChatMessage, IntentPlan, ToolInvocation

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_ACTION_ALIASES = {"long_rich_text": ActionType.LONG_FORM}


class _PlanPayload(BaseModel):
    """Lenient shape of the classifier's JSON answer."""

    model_config = ConfigDict(extra="ignore")

    action_type: str = "assistant_only"
    tools_required: list[Any] = Field(default_factory=list)
    document_search_query: str | None = None
    confidence: float = 0.5
    reasoning: str = ""


class IntentClassifier:
    """Produces an `IntentPlan` for one message.

    The model proposes a plan; the plan is then sanitized against the caller's
    tool catalog and passed through the override rules. A provider failure
    propagates as `ModelProviderError`; unparseable output degrades to
    `assistant_only`.
    """

    def __init__(
        self,
        model: ChatModel,
        config: ClassifierConfig | None = None,
        rules: Sequence[OverrideRule] = DEFAULT_RULES,
    ) -> None:
        self.model = model
        self.config = config or ClassifierConfig()
        self.rules = tuple(rules)

    def classify(
        self,
        message: str,
        history: Sequence[ChatMessage],
        catalog: ToolCatalog,
        attachments: Sequence[Attachment] = (),
        today: date | None = None,
    ) -> IntentPlan:
        today = today or datetime.now(timezone.utc).date()
        messages = CLASSIFIER_PROMPT.format_messages(
            **classifier_variables(
                message, history, catalog, today, history_window=self.config.history_window
            )
        )
        response = self.model.invoke(messages)
        plan = parse_plan(content_text(response), catalog, message=message)

        context = OverrideContext(
            message=message,
            has_attachments=bool(attachments),
            catalog=catalog,
            config=self.config,
        )
        plan = enforce_plan_invariants(apply_overrides(plan, context, self.rules))
        logger.info(
            "intent_classified",
            action_type=plan.action_type.value,
            confidence=plan.confidence,
            tool_count=len(plan.tools_required),
            attachments=len(attachments),
        )
        return plan


def parse_plan(raw: str, catalog: ToolCatalog, *, message: str = "") -> IntentPlan:
    """Parse model output into a plan restricted to tools in `catalog`."""
    payload = _load_payload(raw)
    if payload is None:
        logger.warning("intent_parse_failed", preview=raw[:200])
        return IntentPlan(
            action_type=ActionType.ASSISTANT_ONLY,
            confidence=0.5,
            rationale="Failed to parse intent, defaulting to assistant-only response",
        )

    action_type = _action_type(payload.action_type)
    tools: list[ToolInvocation] = []
    for index, item in enumerate(payload.tools_required, start=1):
        invocation = _tool_invocation(item, catalog, default_priority=index)
        if invocation is not None:
            tools.append(invocation)

    search_query = payload.document_search_query or None
    if action_type.uses_retrieval and not search_query:
        search_query = message or None

    plan = IntentPlan(
        action_type=action_type,
        tools_required=tools,
        document_search_query=search_query,
        confidence=min(1.0, max(0.0, payload.confidence)),
        rationale=payload.reasoning,
    )
    return enforce_plan_invariants(plan)


def enforce_plan_invariants(plan: IntentPlan) -> IntentPlan:
    """Tool-bearing action types must name at least one tool."""
    if plan.tools_required or not plan.action_type.uses_tools:
        return plan
    fallback = (
        ActionType.DOCUMENT_SEARCH if plan.action_type is ActionType.BOTH else ActionType.ASSISTANT_ONLY
    )
    return IntentPlan(
        action_type=fallback,
        tools_required=[],
        document_search_query=plan.document_search_query,
        confidence=plan.confidence,
        rationale=plan.rationale,
    )


def _load_payload(raw: str) -> _PlanPayload | None:
    text = _CODE_FENCE.sub("", raw.strip())
    candidates = [text]
    match = _JSON_OBJECT.search(text)
    if match and match.group(0) != text:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            return _PlanPayload.model_validate_json(candidate)
        except PydanticValidationError:
            continue
    return None


def _action_type(value: str) -> ActionType:
    normalized = value.strip().lower()
    if normalized in _ACTION_ALIASES:
        return _ACTION_ALIASES[normalized]
    try:
        return ActionType(normalized)
    except ValueError:
        return ActionType.ASSISTANT_ONLY


def _tool_invocation(
    item: Any, catalog: ToolCatalog, *, default_priority: int
) -> ToolInvocation | None:
    if not isinstance(item, dict):
        return None
    reference = str(item.get("tool_id") or item.get("tool_name") or item.get("name") or "")
    tool_id = catalog.resolve(reference) if reference else None
    if tool_id is None:
        logger.warning("intent_unknown_tool_dropped", reference=reference)
        return None

    parameters = item.get("parameters")
    priority = item.get("priority")
    return ToolInvocation(
        tool_id=tool_id,
        action=str(item.get("action") or ""),
        parameters=parameters if isinstance(parameters, dict) else {},
        priority=priority if isinstance(priority, int) else default_priority,
    )
