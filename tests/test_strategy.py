"""Tests for strategy.py — the per-turn decision table."""

from __future__ import annotations

from pbl_design_engine.classifier import classify
from pbl_design_engine.models import (
    ClarifyReason,
    FlowState,
    Project,
    RefinementOffer,
    Stage,
    StepId,
    Strategy,
)
from pbl_design_engine.strategy import select_strategy
from pbl_design_engine.validator import validate

from conftest import BIG_IDEA, MILESTONE, ideation_done


def _select(project: Project, utterance: str, suggestions=None, **kwargs):
    classification = classify(utterance, prior_suggestions=suggestions)
    validation = None
    if not classification.skip_validation and project.step is not None:
        validation = validate(classification.proposed_value or utterance, project.step)
    return select_strategy(project, utterance, classification, validation, **kwargs)


class TestCaptureFlow:
    def test_activity_as_milestone_is_rejected(self, milestones_project):
        outcome = _select(milestones_project, "Students research the history of the town")
        assert outcome.strategy == Strategy.REJECT_AND_COACH
        assert "activity students do" in outcome.reason
        assert outcome.request_prompts == 3
        assert outcome.commit_value is None

    def test_quality_answer_is_offered_not_committed(self, milestones_project):
        outcome = _select(milestones_project, MILESTONE)
        assert outcome.strategy == Strategy.OFFER_REFINEMENT
        assert outcome.proposed_value == MILESTONE
        assert outcome.commit_value is None

    def test_confirmation_accepts_open_offer(self, milestones_project):
        milestones_project.flow.open_offer = RefinementOffer(step=StepId.MILESTONES, proposed_value=MILESTONE)
        outcome = _select(milestones_project, "Sounds good")
        assert outcome.strategy == Strategy.ACCEPT_AND_ADVANCE
        assert outcome.commit_value == MILESTONE

    def test_new_content_replaces_open_offer(self, milestones_project):
        milestones_project.flow.open_offer = RefinementOffer(step=StepId.MILESTONES, proposed_value=MILESTONE)
        outcome = _select(milestones_project, "Community Presentation")
        assert outcome.strategy == Strategy.OFFER_REFINEMENT
        assert outcome.proposed_value == "Community Presentation"

    def test_offer_for_another_step_is_ignored(self, milestones_project):
        milestones_project.flow.open_offer = RefinementOffer(step=StepId.BIG_IDEA, proposed_value=BIG_IDEA)
        outcome = _select(milestones_project, "yes")
        assert outcome.strategy == Strategy.STAY_AND_CLARIFY

    def test_confirmation_without_offer_asks_to_elaborate(self, fresh_project):
        fresh_project.flow.consecutive_help_count = 1
        outcome = _select(fresh_project, "yes")
        assert outcome.strategy == Strategy.STAY_AND_CLARIFY
        assert outcome.clarify_reason == ClarifyReason.ELABORATE
        assert outcome.help_count == 0

    def test_long_confirmation_without_offer_is_not_offered(self, fresh_project):
        for text in ("okay, sounds good", "keep and continue", "Sounds good, and continue"):
            outcome = _select(fresh_project, text)
            assert outcome.strategy == Strategy.STAY_AND_CLARIFY, text
            assert outcome.clarify_reason == ClarifyReason.ELABORATE
            assert outcome.proposed_value is None

    def test_suggested_milestone_is_offered(self, milestones_project):
        suggestions = ["Research Report", "what if you called it a Policy Brief?"]
        outcome = _select(milestones_project, "Research Report", suggestions)
        assert outcome.strategy == Strategy.OFFER_REFINEMENT
        assert outcome.proposed_value == "Research Report"

    def test_research_activity_is_rejected_as_milestone(self, milestones_project):
        outcome = _select(milestones_project, "students will research the topic")
        assert outcome.strategy == Strategy.REJECT_AND_COACH
        assert "activity students do" in outcome.reason

    def test_suggestion_with_help_word_is_content(self, milestones_project):
        outcome = _select(milestones_project, "Community Ideas Exhibition",
                          ["Community Ideas Exhibition", "Design Proposal"])
        assert outcome.strategy == Strategy.OFFER_REFINEMENT
        assert outcome.proposed_value == "Community Ideas Exhibition"

    def test_short_ambiguous_input_is_not_rejected(self, fresh_project):
        outcome = _select(fresh_project, "floods")
        assert outcome.strategy == Strategy.STAY_AND_CLARIFY
        assert outcome.clarify_reason == ClarifyReason.ELABORATE


class TestWhatIfAndHelp:
    def test_what_if_stays_with_concept(self, milestones_project):
        outcome = _select(milestones_project, "What if the first milestone was a Research Report?")
        assert outcome.strategy == Strategy.STAY_AND_CLARIFY
        assert outcome.clarify_reason == ClarifyReason.WHAT_IF
        assert outcome.concept == "Research Report"
        assert outcome.proposed_value is None

    def test_first_help_request_gets_prompts(self, fresh_project):
        outcome = _select(fresh_project, "I'm not sure, any suggestions?")
        assert outcome.clarify_reason == ClarifyReason.HELP
        assert outcome.request_prompts == 3
        assert outcome.help_count == 1

    def test_second_help_request_gets_nudge(self, fresh_project):
        fresh_project.flow = FlowState(consecutive_help_count=1)
        outcome = _select(fresh_project, "I'm not sure, any suggestions?")
        assert outcome.clarify_reason == ClarifyReason.HELP_NUDGE
        assert outcome.request_prompts == 0
        assert outcome.help_count == 2

    def test_nudge_threshold_is_configurable(self, fresh_project):
        fresh_project.flow = FlowState(consecutive_help_count=1)
        outcome = _select(fresh_project, "no idea", help_nudge_threshold=3)
        assert outcome.clarify_reason == ClarifyReason.HELP

    def test_content_resets_help_count(self, fresh_project):
        fresh_project.flow = FlowState(consecutive_help_count=2)
        assert _select(fresh_project, BIG_IDEA).help_count == 0


class TestStageCompletion:
    def test_complete_stage_when_slots_filled(self):
        project = Project(project_id="p", stage=Stage.IDEATION, step=StepId.CHALLENGE, data=ideation_done())
        outcome = _select(project, "anything at all here")
        assert outcome.strategy == Strategy.COMPLETE_STAGE

    def test_outcome_records_base_revision(self, fresh_project):
        fresh_project.revision = 7
        assert _select(fresh_project, BIG_IDEA).base_revision == 7

    def test_selection_does_not_mutate_project(self, fresh_project):
        before = fresh_project.model_dump()
        _select(fresh_project, BIG_IDEA)
        assert fresh_project.model_dump() == before
