"""Tests for validator.py — per-step rules and backend patch re-validation."""

from __future__ import annotations

import pytest

from pbl_design_engine.errors import ValidationRejection
from pbl_design_engine.models import StepId
from pbl_design_engine.validator import ensure_valid, validate, validate_patch

from conftest import (
    ACTIVITY,
    ASSESSMENT,
    BIG_IDEA,
    CHALLENGE,
    DESCRIPTION,
    ESSENTIAL_QUESTION,
    MILESTONE,
    PHASE_1,
    RESOURCE,
)


class TestAcceptedAnswers:
    @pytest.mark.parametrize("step,text", [
        (StepId.BIG_IDEA, BIG_IDEA),
        (StepId.ESSENTIAL_QUESTION, ESSENTIAL_QUESTION),
        (StepId.CHALLENGE, CHALLENGE),
        (StepId.PHASES, PHASE_1),
        (StepId.ACTIVITIES, ACTIVITY),
        (StepId.RESOURCES, RESOURCE),
        (StepId.MILESTONES, MILESTONE),
        (StepId.DESCRIPTIONS, DESCRIPTION),
        (StepId.ASSESSMENT, ASSESSMENT),
    ])
    def test_accepts_quality_answer(self, step, text):
        result = validate(text, step)
        assert result.accepted is True, result.reason


class TestRejectedAnswers:
    def test_big_idea_rejects_questions(self):
        result = validate("How does water shape communities?", StepId.BIG_IDEA)
        assert result.accepted is False
        assert result.rule == "question"

    def test_essential_question_must_be_a_question(self):
        result = validate("Floods are a growing problem for our town", StepId.ESSENTIAL_QUESTION)
        assert result.rule == "inquiry"

    def test_challenge_needs_action_verb(self):
        result = validate("Students will learn about floods and their causes", StepId.CHALLENGE)
        assert result.rule == "action_verb"

    def test_phase_rejects_personal_interest(self):
        result = validate("I want students to learn about the civil war", StepId.PHASES)
        assert result.rule == "personal_interest"

    def test_phase_rejects_content_topic(self):
        result = validate("The Civil War", StepId.PHASES)
        assert result.rule == "content_topic"

    def test_activities_reject_passive_learning(self):
        result = validate("Students learn about the water cycle in class today", StepId.ACTIVITIES)
        assert result.rule == "passive_learning"

    def test_milestone_rejects_learning_activity(self):
        result = validate("Students research the history of the town", StepId.MILESTONES)
        assert result.accepted is False
        assert result.rule == "learning_activity"
        assert "activity students do" in result.reason

    def test_disallow_wins_over_vocabulary(self):
        # mentions a deliverable noun but still describes an activity
        result = validate("Students study flooding and write a report", StepId.MILESTONES)
        assert result.rule == "learning_activity"

    def test_description_floor(self):
        result = validate("A nice report", StepId.DESCRIPTIONS)
        assert result.rule == "length_floor"

    def test_assessment_rejects_traditional_testing(self):
        result = validate("Quizzes on flood vocabulary every week", StepId.ASSESSMENT)
        assert result.rule == "traditional_testing"

    def test_ensure_valid_raises(self):
        with pytest.raises(ValidationRejection) as exc:
            ensure_valid("The Civil War", StepId.PHASES)
        assert exc.value.step == "phases"


class TestValidatePatch:
    def test_empty_patch(self):
        assert validate_patch(None) == {}

    def test_valid_scalar(self):
        results = validate_patch({"bigIdea": BIG_IDEA})
        assert results["bigIdea"].accepted is True

    def test_nested_section_is_flattened(self):
        results = validate_patch({"ideation": {"bigIdea": "How?"}})
        assert results["bigIdea"].accepted is False

    def test_unknown_slot_rejected(self):
        results = validate_patch({"mystery": "anything at all"})
        assert results["mystery"].rule == "unknown_slot"

    def test_phase_activities_checked(self):
        patch = {"phases": [{"name": PHASE_1, "activities": "Students learn about rivers and know facts about them"}]}
        assert validate_patch(patch)["phases"].rule == "passive_learning"

    def test_milestone_list(self):
        assert validate_patch({"milestones": [MILESTONE]})["milestones"].accepted is True
        assert validate_patch({"milestones": ["Students research the topic"]})["milestones"].accepted is False

    def test_non_text_value(self):
        assert validate_patch({"milestones": [{"title": 42}]})["milestones"].rule == "type"
