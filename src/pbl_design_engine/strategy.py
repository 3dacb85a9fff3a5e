"""Response strategy selection.

A first-match decision table over classifier signals, the validator verdict
and the flow state carried on the project (open refinement offer, consecutive
help count, edit target).

  1. stage already complete             -> complete-stage
  2. valid content, no open offer       -> offer-refinement
  3. confirmation with an open offer    -> accept-and-advance (offer value)
  4. valid content, open offer          -> offer-refinement (replace offer)
  5. invalid content, non-trivial       -> reject-and-coach
  6. what-if selection                  -> stay-and-clarify (restate)
  7. help request                       -> stay-and-clarify (prompts or nudge)
  8. anything else                      -> stay-and-clarify (elaborate)
"""

from __future__ import annotations

from .classifier import extract_concept
from .models import (
    ClarifyReason,
    ClassificationResult,
    Project,
    Strategy,
    StrategyOutcome,
    ValidationResult,
)
from .stages import stage_complete

# Rejections only fire on answers longer than this; shorter input is treated
# as ambiguous and met with a request to elaborate.
NON_TRIVIAL_LENGTH = 10


def select_strategy(
    project: Project,
    utterance: str,
    classification: ClassificationResult,
    validation: ValidationResult | None,
    *,
    help_nudge_threshold: int = 2,
    coaching_prompt_count: int = 3,
    min_phases: int = 2,
) -> StrategyOutcome:
    """Pick exactly one strategy for this turn. Pure; never mutates *project*."""
    flow = project.flow
    step = project.step
    offer = flow.open_offer
    if offer is not None and offer.step != step:
        offer = None

    def outcome(strategy: Strategy, **kwargs) -> StrategyOutcome:
        kwargs.setdefault("help_count", flow.consecutive_help_count)
        return StrategyOutcome(
            base_revision=project.revision,
            strategy=strategy,
            stage=project.stage,
            step=step,
            **kwargs,
        )

    accepted = validation is not None and validation.accepted
    content_turn = accepted or classification.is_suggestion_selection

    # 1
    if flow.edit_target is None and stage_complete(project.stage, project.data, min_phases=min_phases):
        return outcome(Strategy.COMPLETE_STAGE, help_count=0)

    # 2
    if accepted and offer is None and not classification.is_confirmation:
        return outcome(
            Strategy.OFFER_REFINEMENT,
            proposed_value=classification.proposed_value,
            help_count=0,
        )

    # 3
    if classification.is_confirmation and offer is not None:
        return outcome(
            Strategy.ACCEPT_AND_ADVANCE,
            commit_value=offer.proposed_value,
            help_count=0,
        )

    # 4
    if accepted and offer is not None and not classification.is_confirmation:
        return outcome(
            Strategy.OFFER_REFINEMENT,
            proposed_value=classification.proposed_value,
            help_count=0,
        )

    # 5
    if (
        validation is not None
        and not validation.accepted
        and not classification.is_confirmation
        and len(utterance.strip()) > NON_TRIVIAL_LENGTH
    ):
        return outcome(
            Strategy.REJECT_AND_COACH,
            reason=validation.reason,
            request_prompts=coaching_prompt_count,
            help_count=0 if content_turn else flow.consecutive_help_count,
        )

    # 6
    if classification.is_what_if_selection:
        return outcome(
            Strategy.STAY_AND_CLARIFY,
            clarify_reason=ClarifyReason.WHAT_IF,
            concept=extract_concept(utterance, step),
        )

    # 7
    if classification.is_help_request and utterance.strip():
        count = flow.consecutive_help_count + 1
        if count >= help_nudge_threshold:
            return outcome(Strategy.STAY_AND_CLARIFY, clarify_reason=ClarifyReason.HELP_NUDGE, help_count=count)
        return outcome(
            Strategy.STAY_AND_CLARIFY,
            clarify_reason=ClarifyReason.HELP,
            request_prompts=coaching_prompt_count,
            help_count=count,
        )

    # 8
    if not utterance.strip():
        return outcome(Strategy.STAY_AND_CLARIFY, clarify_reason=ClarifyReason.EMPTY)
    return outcome(
        Strategy.STAY_AND_CLARIFY,
        clarify_reason=ClarifyReason.ELABORATE,
        request_prompts=coaching_prompt_count,
        help_count=0 if classification.is_confirmation else flow.consecutive_help_count,
    )
