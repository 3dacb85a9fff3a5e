"""Stage/step state machine.

Owns one ``Project`` and is the only thing that mutates it. Every change is
built on a deep copy and swapped in once all checks pass, so a failed
transition leaves the project exactly as it was.
"""

from __future__ import annotations

import logging

from .errors import InvalidTransitionRequest, ValidationRejection
from .models import (
    DesignContext,
    EditTarget,
    Project,
    RefinementOffer,
    Stage,
    StepId,
    Strategy,
    StrategyOutcome,
)
from .stages import (
    SLOTS,
    STAGE_ORDER,
    STAGE_STEPS,
    completed_stages,
    first_step,
    frontier,
    write_slot,
)
from .validator import ensure_valid

logger = logging.getLogger(__name__)


def new_project(project_id: str, **kwargs) -> Project:
    """A fresh project at the first Ideation step with empty data."""
    return Project(project_id=project_id, stage=Stage.IDEATION, step=first_step(Stage.IDEATION), **kwargs)


class DesignStateMachine:
    """Holds a project's stage, step, structured data and flow state."""

    def __init__(self, project: Project, *, min_phases: int = 2) -> None:
        self._project = project
        self.min_phases = min_phases

    @property
    def project(self) -> Project:
        """A deep copy; callers can never mutate the live project."""
        return self._project.model_copy(deep=True)

    @property
    def stage(self) -> Stage:
        return self._project.stage

    @property
    def step(self) -> StepId | None:
        return self._project.step

    @property
    def revision(self) -> int:
        return self._project.revision

    # -----------------------------------------------------------------------
    # Mutators
    # -----------------------------------------------------------------------

    def apply(self, outcome: StrategyOutcome) -> Project:
        """Apply a strategy outcome and return the resulting project.

        Re-applying the most recently applied outcome is a no-op.
        Raises ``InvalidTransitionRequest`` (state unchanged) when the project
        is complete, the outcome is stale, or the commit is not allowed.
        """
        current = self._project
        if outcome.outcome_id == current.flow.last_outcome_id:
            logger.debug("Outcome %s already applied, ignoring", outcome.outcome_id)
            return self.project

        if current.stage == Stage.COMPLETE:
            raise InvalidTransitionRequest("Project is complete; request an edit to change it")
        if outcome.base_revision != current.revision:
            raise InvalidTransitionRequest(
                f"Outcome built against revision {outcome.base_revision}, project is at {current.revision}"
            )
        if outcome.stage != current.stage or outcome.step != current.step:
            raise InvalidTransitionRequest(
                f"Outcome targets {outcome.stage.value}/{outcome.step}, "
                f"project is at {current.stage.value}/{current.step}"
            )

        nxt = current.model_copy(deep=True)
        strategy = outcome.strategy

        if strategy == Strategy.OFFER_REFINEMENT:
            if not outcome.proposed_value:
                raise InvalidTransitionRequest("Refinement offer without a proposed value")
            nxt.flow.open_offer = RefinementOffer(step=current.step, proposed_value=outcome.proposed_value)

        elif strategy == Strategy.ACCEPT_AND_ADVANCE:
            self._commit(nxt, outcome)

        elif strategy == Strategy.COMPLETE_STAGE:
            nxt.flow.open_offer = None
            self._advance(nxt)
            if nxt.stage == current.stage:
                raise InvalidTransitionRequest(f"Stage {current.stage.value} is not complete")

        nxt.flow.consecutive_help_count = outcome.help_count
        nxt.flow.last_outcome_id = outcome.outcome_id
        nxt.revision = current.revision + 1

        self._project = nxt
        if nxt.stage != current.stage:
            logger.info("Stage %s complete, now at %s", current.stage.value, nxt.stage.value)
        elif nxt.step != current.step:
            logger.info("Step %s -> %s", current.step, nxt.step)
        return self.project

    def _commit(self, nxt: Project, outcome: StrategyOutcome) -> None:
        step = nxt.step
        if step is None or not outcome.commit_value:
            raise InvalidTransitionRequest("Nothing to commit")
        offer = nxt.flow.open_offer
        if offer is None or offer.step != step or offer.proposed_value != outcome.commit_value:
            raise InvalidTransitionRequest("Only the open refinement offer can be committed")
        try:
            ensure_valid(outcome.commit_value, step)
        except ValidationRejection as e:
            raise InvalidTransitionRequest(f"Refusing to commit invalid value: {e.reason}") from e

        edit = nxt.flow.edit_target
        editing = edit is not None and edit.step == step
        try:
            write_slot(
                nxt.data,
                step,
                outcome.commit_value,
                index=edit.index if editing else None,
                replace=editing,
            )
        except ValueError as e:
            raise InvalidTransitionRequest(str(e)) from e

        nxt.flow.open_offer = None
        nxt.flow.edit_target = None
        self._advance(nxt)

    def _advance(self, nxt: Project) -> None:
        stage, step = frontier(nxt.data, min_phases=self.min_phases)
        nxt.stage = stage
        nxt.step = step

    def request_edit(
        self,
        stage: Stage,
        step: StepId,
        index: int | None = None,
    ) -> Project:
        """Explicitly re-open a slot so the next confirmed value replaces it.

        This is the only way back into a stage that is already complete.
        """
        current = self._project
        if stage == Stage.COMPLETE or step not in STAGE_STEPS.get(stage, ()):
            raise InvalidTransitionRequest(f"{step} is not a step of {stage.value}")

        binding = SLOTS[step]
        items = getattr(getattr(current.data, stage.value), binding.slot)
        if index is not None and (binding.kind == "set" or not 0 <= index < len(items)):
            raise InvalidTransitionRequest(f"No {binding.slot} item at index {index}")
        if binding.kind == "fill" and index is None and not items:
            raise InvalidTransitionRequest(f"No {binding.slot} to edit yet")

        nxt = current.model_copy(deep=True)
        nxt.stage = stage
        nxt.step = step
        nxt.flow.open_offer = None
        nxt.flow.consecutive_help_count = 0
        nxt.flow.edit_target = EditTarget(stage=stage, step=step, index=index)
        if binding.kind == "fill" and index is None:
            # fill edits without an index replace the first item
            nxt.flow.edit_target.index = 0
        nxt.revision = current.revision + 1
        self._project = nxt
        logger.info("Editing %s/%s (index=%s)", stage.value, step.value, index)
        return self.project

    # -----------------------------------------------------------------------
    # Projections
    # -----------------------------------------------------------------------

    def current_context(self) -> DesignContext:
        """Display-relevant view; flow internals are never exposed."""
        p = self._project
        done = completed_stages(p.data, min_phases=self.min_phases)
        return DesignContext(
            project_id=p.project_id,
            stage=p.stage,
            step=p.step,
            data=p.data.model_copy(deep=True),
            completed_stages=[s for s in STAGE_ORDER if s in done],
            revision=p.revision,
            profile=p.profile.model_copy() if p.profile else None,
        )
