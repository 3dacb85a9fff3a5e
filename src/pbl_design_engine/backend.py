"""Generative backend adapters.

The backend only produces wording: display text, suggestions and hints. It
never decides what gets captured; the engine re-validates everything it
returns before anything reaches the educator.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

import autogen

from .agents.design_coach import make_design_coach
from .errors import BackendUnavailable
from .models import BackendReply, EngineConfig, PromptContext, Strategy
from .prompts import coaching_prompts, fallback_message

logger = logging.getLogger(__name__)


class GenerativeBackend(Protocol):
    """Anything that can turn a prompt context into a reply."""

    async def generate(self, context: PromptContext) -> BackendReply: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reply_text(response: Any) -> str:
    """Extract the reply string from an AG2 chat result."""
    if hasattr(response, "summary") and response.summary:
        text = str(response.summary)
    elif hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        text = last.get("content", "") if isinstance(last, dict) else str(last)
    else:
        text = str(response)

    # Strip markdown fences if present
    text = re.sub(r"```(?:json)?\n?", "", text)
    text = re.sub(r"```\s*$", "", text)
    return text.strip()


def _extract_json(response: Any, model_cls: type) -> Any:
    """Extract and validate a Pydantic model from an AG2 response."""
    text = _reply_text(response)
    if "{" in text:
        json_str = text[text.find("{"):text.rfind("}") + 1]
        try:
            return model_cls.model_validate_json(json_str)
        except ValueError:
            pass
    try:
        return model_cls.model_validate_json(text)
    except ValueError as e:
        logger.warning("Failed to parse %s from response: %s", model_cls.__name__, e)
        return None


def compose_message(context: PromptContext) -> str:
    """The per-turn user message sent to the coach."""
    parts = [
        f"Current stage: {context.stage.value}",
        f"Current step: {context.step.value if context.step else 'none'}",
    ]
    if context.next_step is not None and context.next_step != context.step:
        parts.append(f"Next step after this turn: {context.next_step.value}")
    parts.append(f"\nInstruction for this turn:\n{context.instruction}")
    parts.append(f"\nCaptured so far:\n{context.data.model_dump_json(indent=2)}")
    if context.history:
        lines = [f"{t.role.value}: {t.text}" for t in context.history]
        parts.append("\nRecent conversation:\n" + "\n".join(lines))
    parts.append(f"\nEducator's latest message:\n{context.utterance}")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class CoachBackend:
    """AG2 backend: a per-stage DesignCoach driven for a single turn."""

    def __init__(self, config: EngineConfig) -> None:
        self.config = config

    async def generate(self, context: PromptContext) -> BackendReply:
        coach = make_design_coach(self.config, context.stage, context.profile)
        orchestrator = autogen.UserProxyAgent(
            name="Orchestrator",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        try:
            response = await orchestrator.a_initiate_chat(
                coach,
                message=compose_message(context),
                max_turns=1,
                silent=True,
            )
        except Exception as e:
            # Any AG2/transport failure counts as the backend being down.
            raise BackendUnavailable(f"DesignCoach call failed: {e}") from e

        reply = _extract_json(response, BackendReply)
        if reply is None:
            raise BackendUnavailable("DesignCoach returned an unparseable reply")
        return reply


class OfflineBackend:
    """Deterministic backend that answers from the local fallback table."""

    def __init__(self, coaching_prompt_count: int = 3) -> None:
        self.coaching_prompt_count = coaching_prompt_count

    async def generate(self, context: PromptContext) -> BackendReply:
        outcome = context.outcome
        if outcome is None:
            raise BackendUnavailable("Offline backend needs the turn's outcome")

        text = fallback_message(
            outcome,
            context.data,
            next_stage=context.next_stage,
            next_step=context.next_step,
        )
        suggestions = None
        if outcome.request_prompts:
            suggestions = coaching_prompts(outcome.step, min(outcome.request_prompts, self.coaching_prompt_count))
        return BackendReply(
            displayText=text,
            suggestions=suggestions or None,
            proposedNextStep=context.next_step.value if context.next_step else None,
            stageComplete=outcome.strategy in (Strategy.ACCEPT_AND_ADVANCE, Strategy.COMPLETE_STAGE)
            and context.next_stage != context.stage,
        )


def make_backend(config: EngineConfig) -> GenerativeBackend:
    """Build the backend named by ``config.backend``."""
    kind = config.backend.lower()
    if kind == "offline":
        return OfflineBackend(config.coaching_prompt_count)
    if kind in ("autogen", "ag2"):
        return CoachBackend(config)
    raise ValueError(f"Unknown backend {config.backend!r}; choose 'autogen' or 'offline'")


def describe_reply(reply: BackendReply) -> str:
    """Compact one-line rendering of a reply for debug logs."""
    return json.dumps(reply.model_dump(exclude_none=True))[:300]
