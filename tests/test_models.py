"""Tests for models.py — Pydantic model validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pbl_design_engine.models import (
    BackendReply,
    EngineConfig,
    EngineResponse,
    Project,
    Stage,
    StepId,
    Strategy,
    StrategyOutcome,
)


class TestProject:
    def test_defaults(self):
        p = Project(project_id="p")
        assert p.stage == Stage.IDEATION
        assert p.step == StepId.BIG_IDEA
        assert p.revision == 0
        assert p.flow.open_offer is None
        assert p.data.journey.phases == []

    def test_enum_values_match_wire_names(self):
        assert StepId.ESSENTIAL_QUESTION.value == "essentialQuestion"
        assert Stage("deliverables") == Stage.DELIVERABLES

    def test_unknown_step_rejected(self):
        with pytest.raises(ValidationError):
            Project(project_id="p", step="brainstorm")


class TestStrategyOutcome:
    def test_ids_are_unique(self):
        a = StrategyOutcome(base_revision=0, strategy=Strategy.OFFER_REFINEMENT, stage=Stage.IDEATION)
        b = StrategyOutcome(base_revision=0, strategy=Strategy.OFFER_REFINEMENT, stage=Stage.IDEATION)
        assert a.outcome_id != b.outcome_id


class TestBackendReply:
    def test_only_display_text_required(self):
        reply = BackendReply.model_validate_json('{"displayText": "Hi"}')
        assert reply.suggestions is None
        assert reply.proposedDataPatch is None
        assert reply.stageComplete is None

    def test_display_text_required(self):
        with pytest.raises(ValidationError):
            BackendReply.model_validate({"suggestions": ["a"]})


class TestEngineResponse:
    def test_defaults(self):
        r = EngineResponse(displayText="x", currentStage=Stage.JOURNEY, currentStep=StepId.PHASES)
        assert r.superseded is False
        assert r.isStageComplete is False
        assert r.warnings == []


class TestEngineConfig:
    def test_defaults(self):
        c = EngineConfig()
        assert c.backend == "autogen"
        assert c.history_window == 6
        assert c.help_nudge_threshold == 2
        assert c.coaching_prompt_count == 3
        assert c.min_journey_phases == 2
        assert c.models.default == "gpt-5.2"
        assert c.models.coach is None

    def test_override_fields(self):
        c = EngineConfig(backend="offline", backend_timeout=5, save_retries=0)
        assert c.backend_timeout == 5.0
        assert c.save_retries == 0

    @pytest.mark.parametrize("timeout", [None, 0, -1])
    def test_backend_timeout_must_be_positive(self, timeout):
        with pytest.raises(ValidationError):
            EngineConfig(backend_timeout=timeout)
