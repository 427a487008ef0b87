"""Deterministic post-classification override rules.

Each rule is a pure function `(plan, context) -> IntentPlan | None`. Rules run
in list order; a rule returning a plan replaces the current plan for every
rule after it, and returning None leaves it as is.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from agent_pipeline.agent.registry import ToolCatalog
from agent_pipeline.config import ClassifierConfig
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.types import ActionType, IntentPlan, ToolInvocation

logger = get_logger(__name__)

GENERAL_QUESTION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"what'?s going on",
        r"what'?s happening",
        r"what'?s new",
        r"tell me about",
        r"explain",
        r"describe",
        r"how does",
        r"what is",
    )
)

CONTENT_GENERATION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"write a post",
        r"create a post",
        r"(write|create) a linkedin post",
        r"generate content",
        r"write an article",
        r"create a blog post",
        r"(draft|write) a message",
        r"(create|write) content",
        r"generate a post",
    )
)

DOCUMENT_ANALYSIS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(analyze|review|summarize|read|examine|look at|tell me about|what do you think"
        r"|what'?s in this|what does this say|go through|break down)\b",
        r"\b(this\s+(document|file|paper|report|contract|letter|email|attachment|doc)"
        r"|the\s+(document|file|attachment|attached))\b",
        r"\b(document|file|attachment|attached|uploaded)\b",
    )
)

RESEARCH_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(\bnews\b|headlines|breaking|top stories|today'?s\s+news"
        r"|latest\s+(news|headlines)|current\s+news)",
        r"(\bresearch\b|\banalyz(e|es|ing)\b|\bmarket\s+analysis\b|\btrends?\b"
        r"|\bindustry\s+data\b|\bcompetitors?\b|\bcurrent\s+state\b|\blatest\s+developments?\b)",
        r"(\bmarket\s+(research|data|insights|intelligence)\b"
        r"|\bindustry\s+(trends|analysis|insights|landscape)\b"
        r"|\bcompetitive\s+(analysis|landscape|intelligence)\b)",
        r"(\bfind\s+information\s+about\b|\blook\s+up\b|\bsearch\s+for\s+information\b"
        r"|\bwhat'?s\s+happening\s+in\b|\brecent\s+developments\s+in\b)",
        r"(\bcurrent\s+(information|data|state|situation)\b"
        r"|\blatest\s+(information|data|updates)\b|\bup-to-date\s+(information|data)\b)",
    )
)

_QUICK_DEPTH = re.compile(r"\b(quick|brief|summary|overview)\b", re.IGNORECASE)
_DEEP_DEPTH = re.compile(r"\b(comprehensive|thorough|detailed|in-depth|extensive)\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class OverrideContext:
    message: str
    has_attachments: bool
    catalog: ToolCatalog
    config: ClassifierConfig

    @property
    def mentions_document(self) -> bool:
        return _matches_any(DOCUMENT_ANALYSIS_PATTERNS, self.message)

    @property
    def is_document_analysis(self) -> bool:
        return self.has_attachments and self.mentions_document


OverrideRule = Callable[[IntentPlan, OverrideContext], IntentPlan | None]


def low_confidence_general_question(
    plan: IntentPlan, context: OverrideContext
) -> IntentPlan | None:
    """Low-confidence research on plain questions or writing tasks is answered directly."""
    if plan.confidence >= context.config.confidence_threshold:
        return None
    if plan.action_type is not ActionType.TOOL:
        return None
    if not any(tool.action == "research" for tool in plan.tools_required):
        return None

    if _matches_any(GENERAL_QUESTION_PATTERNS, context.message):
        rationale = "General question detected; answering from model knowledge"
    elif _matches_any(CONTENT_GENERATION_PATTERNS, context.message):
        rationale = "Content generation request; answering from model knowledge"
    else:
        return None
    return IntentPlan(action_type=ActionType.ASSISTANT_ONLY, confidence=0.8, rationale=rationale)


def attachment_document_analysis(
    plan: IntentPlan, context: OverrideContext
) -> IntentPlan | None:
    """Attachment analysis wins over any other routing."""
    if not context.is_document_analysis or plan.action_type is ActionType.LONG_FORM:
        return None
    return IntentPlan(
        action_type=ActionType.LONG_FORM,
        confidence=max(plan.confidence, 0.9),
        rationale="Document analysis request with attachments; routing to attachment analysis",
    )


def research_request(plan: IntentPlan, context: OverrideContext) -> IntentPlan | None:
    """Research-style messages go to the research tool, or answer directly if it is off."""
    if not _matches_any(RESEARCH_PATTERNS, context.message):
        return None
    if context.is_document_analysis:
        return None

    tool_id = context.catalog.id_for_name(context.config.research_tool_name)
    if tool_id is None:
        return IntentPlan(
            action_type=ActionType.ASSISTANT_ONLY,
            confidence=0.8,
            rationale=(
                "Research request detected but web research is disabled for this agent; "
                "answering from model knowledge"
            ),
        )

    depth = research_depth(context.message)
    return IntentPlan(
        action_type=ActionType.TOOL,
        tools_required=[
            ToolInvocation(
                tool_id=tool_id,
                action="research",
                parameters={"query": context.message, "depth": depth, "include_sources": True},
                priority=1,
            )
        ],
        confidence=max(plan.confidence, 0.85),
        rationale=f"Research request detected; routing to web research (depth: {depth})",
    )


def research_depth(message: str) -> str:
    if _QUICK_DEPTH.search(message):
        return "quick"
    if _DEEP_DEPTH.search(message):
        return "comprehensive"
    return "detailed"


DEFAULT_RULES: tuple[OverrideRule, ...] = (
    low_confidence_general_question,
    attachment_document_analysis,
    research_request,
)


def apply_overrides(
    plan: IntentPlan,
    context: OverrideContext,
    rules: Sequence[OverrideRule] = DEFAULT_RULES,
) -> IntentPlan:
    for rule in rules:
        replacement = rule(plan, context)
        if replacement is None:
            continue
        logger.info(
            "intent_override_applied",
            rule=getattr(rule, "__name__", repr(rule)),
            from_action=plan.action_type.value,
            to_action=replacement.action_type.value,
        )
        plan = replacement
    return plan


def _matches_any(patterns: Sequence[re.Pattern[str]], message: str) -> bool:
    return any(pattern.search(message) for pattern in patterns)
