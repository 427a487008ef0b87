"""Prompt templates for intent classification and answer generation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta

from langchain_core.prompts import ChatPromptTemplate

from agent_pipeline.agent.registry import ToolCatalog
from agent_pipeline.types import ChatMessage, ContextSource, IntentPlan

_CLASSIFIER_SYSTEM = """
You analyze user messages for an AI assistant and decide which actions are needed,
taking the conversation so far into account.

Current date: {current_date}
Yesterday's date: {yesterday}
{conversation_context}
Available tools for this agent:
{tool_list}

Tool ID mapping (name -> ID):
{tool_mapping}

Respond with one JSON object and nothing else, using this schema:
{{
  "action_type": "tool" | "document_search" | "both" | "assistant_only" | "long_form",
  "tools_required": [
    {{
      "tool_id": "TOOL_ID_FROM_MAPPING",
      "action": "search|read|create|research",
      "parameters": {{}},
      "priority": 1
    }}
  ],
  "document_search_query": "search terms when document search is needed",
  "confidence": 0.0,
  "reasoning": "one-sentence explanation"
}}

Rules:
- tool_id MUST be copied verbatim from the tool ID mapping above. Never use a tool name.
- Only include tools listed above. If none apply, leave tools_required empty.
- "yesterday" means {yesterday_start} to {yesterday_end}.
- "today" means {today_start} to {today_end}.
- "this week" means {today_start} to {week_end}.
- Date parameters (timeMin, timeMax and similar) use RFC 3339 with a timezone.
- Resolve references such as "that meeting" or "it" from the conversation context.

Choosing action_type:
- "tool": the user needs external data (email, calendar, files) or explicitly asks for research or analysis.
- "document_search": the user asks about company knowledge or uploaded documents.
- "both": both of the above.
- "assistant_only": general questions, explanations, simple current events, and content writing.
- "long_form": detailed analysis, reports or long content based on an attached document.
- News-style queries ("today's news", "latest headlines") use the research tool when it is available.
- Do not use research for simple questions ("what is", "explain", "tell me about") or writing tasks.
""".strip()

CLASSIFIER_PROMPT = ChatPromptTemplate.from_messages(
    [("system", _CLASSIFIER_SYSTEM), ("human", "{message}")]
)


def classifier_variables(
    message: str,
    history: Sequence[ChatMessage],
    catalog: ToolCatalog,
    today: date,
    history_window: int = 8,
) -> dict[str, str]:
    yesterday = today - timedelta(days=1)
    week_end = today + timedelta(days=7)
    recent = list(history)[-history_window:] if history_window else []
    conversation_context = ""
    if recent:
        lines = "\n".join(f"{item.role}: {item.content}" for item in recent)
        conversation_context = f"\nRecent conversation context:\n{lines}\n"

    tool_list = "\n".join(
        f"- {descriptor.name} (ID: {descriptor.id}): {descriptor.description}"
        for descriptor in catalog
    )
    tool_mapping = "\n".join(f"{name} -> {tool_id}" for name, tool_id in catalog.name_to_id.items())
    return {
        "message": message,
        "current_date": today.isoformat(),
        "yesterday": yesterday.isoformat(),
        "conversation_context": conversation_context,
        "tool_list": tool_list or "(no tools enabled)",
        "tool_mapping": tool_mapping or "(none)",
        "today_start": f"{today.isoformat()}T00:00:00Z",
        "today_end": f"{today.isoformat()}T23:59:59Z",
        "yesterday_start": f"{yesterday.isoformat()}T00:00:00Z",
        "yesterday_end": f"{yesterday.isoformat()}T23:59:59Z",
        "week_end": f"{week_end.isoformat()}T23:59:59Z",
    }


def format_context(sources: Sequence[ContextSource]) -> str:
    return "\n\n".join(
        f"[{index}] {source.tier.value}: {source.content}"
        for index, source in enumerate(sources, start=1)
    )


def build_system_prompt(
    preamble: str,
    *,
    sources: Sequence[ContextSource] = (),
    plan: IntentPlan | None = None,
    catalog: ToolCatalog | None = None,
    attachment_text: str | None = None,
    attachment_name: str | None = None,
) -> str:
    sections = [preamble.strip()]

    if sources:
        sections.append(
            "=== CONTEXT ===\n"
            "Use the numbered context below when it is relevant and cite entries as [n].\n\n"
            + format_context(sources)
        )

    if attachment_text is not None:
        sections.append(
            f"=== ATTACHED DOCUMENT: {attachment_name or 'attachment'} ===\n{attachment_text}\n\n"
            "Provide a thorough, well-structured analysis of the attached document."
        )

    if plan is not None and plan.tools_required and catalog is not None:
        hints = []
        for invocation in sorted(plan.tools_required, key=lambda item: item.priority):
            descriptor = catalog.get(invocation.tool_id)
            if descriptor is None:
                continue
            hints.append(
                f"- {descriptor.name}: action={invocation.action} parameters={invocation.parameters}"
            )
        if hints:
            sections.append("Planned tool calls for this request:\n" + "\n".join(hints))

    return "\n\n".join(section for section in sections if section)
