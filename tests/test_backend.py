"""Tests for backend.py and the DesignCoach agent (AG2 calls are mocked)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pbl_design_engine.agents.design_coach import make_design_coach
from pbl_design_engine.backend import (
    CoachBackend,
    OfflineBackend,
    _extract_json,
    _reply_text,
    compose_message,
    make_backend,
)
from pbl_design_engine.config import build_role_llm_config
from pbl_design_engine.errors import BackendUnavailable
from pbl_design_engine.models import (
    BackendReply,
    ClarifyReason,
    ConversationTurn,
    EngineConfig,
    PromptContext,
    Role,
    Stage,
    StepId,
    Strategy,
    StrategyOutcome,
)


def _context(strategy=Strategy.STAY_AND_CLARIFY, **outcome_kwargs) -> PromptContext:
    outcome = StrategyOutcome(base_revision=0, strategy=strategy, stage=Stage.IDEATION,
                              step=StepId.BIG_IDEA, **outcome_kwargs)
    return PromptContext(
        stage=Stage.IDEATION,
        step=StepId.BIG_IDEA,
        strategy=strategy,
        instruction="Provide 3 coaching suggestions.",
        utterance="I'm not sure",
        history=[ConversationTurn(role=Role.ASSISTANT, text="What Big Idea should anchor this project?")],
        request_prompts=outcome.request_prompts,
        outcome=outcome,
        next_stage=Stage.IDEATION,
        next_step=StepId.BIG_IDEA,
    )


class TestReplyParsing:
    def test_summary_with_fences(self):
        response = MagicMock(summary='```json\n{"displayText": "Hello", "suggestions": ["a"]}\n```')
        reply = _extract_json(response, BackendReply)
        assert reply.displayText == "Hello"
        assert reply.suggestions == ["a"]

    def test_chat_history_fallback(self):
        response = MagicMock(summary="", chat_history=[{"content": 'Sure! {"displayText": "Hi"} done'}])
        assert _reply_text(response).startswith("Sure!")
        assert _extract_json(response, BackendReply).displayText == "Hi"

    def test_garbage_returns_none(self):
        response = MagicMock(summary="no json here")
        assert _extract_json(response, BackendReply) is None


class TestComposeMessage:
    def test_includes_instruction_history_and_utterance(self):
        message = compose_message(_context())
        assert "Provide 3 coaching suggestions." in message
        assert "assistant: What Big Idea" in message
        assert message.rstrip().endswith("I'm not sure")


class TestCoachBackend:
    def test_generate_parses_reply(self):
        chat = MagicMock(summary='{"displayText": "Let us refine it", "stageComplete": false}')
        proxy = MagicMock()
        proxy.a_initiate_chat = AsyncMock(return_value=chat)
        with patch("pbl_design_engine.backend.autogen.UserProxyAgent", return_value=proxy), \
                patch("pbl_design_engine.backend.make_design_coach", return_value=MagicMock()) as make:
            reply = asyncio.run(CoachBackend(EngineConfig()).generate(_context()))
        assert reply.displayText == "Let us refine it"
        assert reply.stageComplete is False
        make.assert_called_once()
        assert proxy.a_initiate_chat.call_args.kwargs["max_turns"] == 1

    def test_transport_error_is_unavailable(self):
        proxy = MagicMock()
        proxy.a_initiate_chat = AsyncMock(side_effect=RuntimeError("connection refused"))
        with patch("pbl_design_engine.backend.autogen.UserProxyAgent", return_value=proxy), \
                patch("pbl_design_engine.backend.make_design_coach", return_value=MagicMock()):
            with pytest.raises(BackendUnavailable):
                asyncio.run(CoachBackend(EngineConfig()).generate(_context()))

    def test_unparseable_reply_is_unavailable(self):
        proxy = MagicMock()
        proxy.a_initiate_chat = AsyncMock(return_value=MagicMock(summary="I cannot answer that"))
        with patch("pbl_design_engine.backend.autogen.UserProxyAgent", return_value=proxy), \
                patch("pbl_design_engine.backend.make_design_coach", return_value=MagicMock()):
            with pytest.raises(BackendUnavailable):
                asyncio.run(CoachBackend(EngineConfig()).generate(_context()))


class TestOfflineBackend:
    def test_help_reply_has_prompts(self):
        ctx = _context(clarify_reason=ClarifyReason.HELP, request_prompts=3)
        reply = asyncio.run(OfflineBackend().generate(ctx))
        assert len(reply.suggestions) == 3
        assert all(s.startswith("What if") for s in reply.suggestions)
        assert reply.stageComplete is False

    def test_requires_outcome(self):
        ctx = _context().model_copy(update={"outcome": None})
        with pytest.raises(BackendUnavailable):
            asyncio.run(OfflineBackend().generate(ctx))

    def test_make_backend(self):
        assert isinstance(make_backend(EngineConfig(backend="offline")), OfflineBackend)
        assert isinstance(make_backend(EngineConfig(backend="autogen")), CoachBackend)
        with pytest.raises(ValueError):
            make_backend(EngineConfig(backend="carrier-pigeon"))


class TestDesignCoachAgent:
    def test_make_design_coach_returns_agent(self):
        agent = make_design_coach(EngineConfig(), Stage.IDEATION)
        assert agent.name == "DesignCoach"

    def test_stage_prompt_used(self):
        agent = make_design_coach(EngineConfig(), Stage.DELIVERABLES)
        assert "Research Report" in agent.system_message
        assert "PRODUCTS" in agent.system_message

    def test_prompt_count_in_prompt(self):
        agent = make_design_coach(EngineConfig(coaching_prompt_count=5), Stage.JOURNEY)
        assert "at most 5" in agent.system_message

    def test_response_format_set(self):
        agent = make_design_coach(EngineConfig(), Stage.IDEATION)
        assert agent.llm_config["response_format"] is BackendReply

    def test_role_maps_to_coach_model(self):
        config = EngineConfig(models={"default": "gpt-4", "coach": "gpt-4o-mini"})
        llm_config = build_role_llm_config("coach", config)
        assert llm_config["config_list"][0]["model"] == "gpt-4o-mini"
