"""Stage and step catalogue, slot bindings, and data-derived progress rules."""

from __future__ import annotations

from dataclasses import dataclass

from .models import Milestone, Phase, Stage, StepId, StructuredData

STAGE_ORDER: tuple[Stage, ...] = (Stage.IDEATION, Stage.JOURNEY, Stage.DELIVERABLES)

STAGE_STEPS: dict[Stage, tuple[StepId, ...]] = {
    Stage.IDEATION: (StepId.BIG_IDEA, StepId.ESSENTIAL_QUESTION, StepId.CHALLENGE),
    Stage.JOURNEY: (StepId.PHASES, StepId.ACTIVITIES, StepId.RESOURCES),
    Stage.DELIVERABLES: (StepId.MILESTONES, StepId.DESCRIPTIONS, StepId.ASSESSMENT),
}

STAGE_TITLES: dict[Stage, str] = {
    Stage.IDEATION: "Ideation",
    Stage.JOURNEY: "Learning Journey",
    Stage.DELIVERABLES: "Student Deliverables",
    Stage.COMPLETE: "Complete",
}

STEP_LABELS: dict[StepId, str] = {
    StepId.BIG_IDEA: "Big Idea",
    StepId.ESSENTIAL_QUESTION: "Essential Question",
    StepId.CHALLENGE: "Challenge",
    StepId.PHASES: "learning phase",
    StepId.ACTIVITIES: "phase activities",
    StepId.RESOURCES: "resource",
    StepId.MILESTONES: "milestone",
    StepId.DESCRIPTIONS: "milestone description",
    StepId.ASSESSMENT: "assessment method",
}


@dataclass(frozen=True)
class SlotBinding:
    """How a step writes into StructuredData.

    kind is one of:
      ``set``    -- assign a scalar slot
      ``append`` -- append an item to a list slot
      ``fill``   -- set ``detail`` on the first list item that lacks it
    """
    stage: Stage
    slot: str
    kind: str
    detail: str | None = None


SLOTS: dict[StepId, SlotBinding] = {
    StepId.BIG_IDEA: SlotBinding(Stage.IDEATION, "bigIdea", "set"),
    StepId.ESSENTIAL_QUESTION: SlotBinding(Stage.IDEATION, "essentialQuestion", "set"),
    StepId.CHALLENGE: SlotBinding(Stage.IDEATION, "challenge", "set"),
    StepId.PHASES: SlotBinding(Stage.JOURNEY, "phases", "append"),
    StepId.ACTIVITIES: SlotBinding(Stage.JOURNEY, "phases", "fill", detail="activities"),
    StepId.RESOURCES: SlotBinding(Stage.JOURNEY, "resources", "append"),
    StepId.MILESTONES: SlotBinding(Stage.DELIVERABLES, "milestones", "append"),
    StepId.DESCRIPTIONS: SlotBinding(Stage.DELIVERABLES, "milestones", "fill", detail="description"),
    StepId.ASSESSMENT: SlotBinding(Stage.DELIVERABLES, "assessmentMethods", "append"),
}

# Slot name (as the backend sees it) -> step that owns it.
SLOT_TO_STEP: dict[str, StepId] = {
    "bigIdea": StepId.BIG_IDEA,
    "essentialQuestion": StepId.ESSENTIAL_QUESTION,
    "challenge": StepId.CHALLENGE,
    "phases": StepId.PHASES,
    "activities": StepId.ACTIVITIES,
    "resources": StepId.RESOURCES,
    "milestones": StepId.MILESTONES,
    "descriptions": StepId.DESCRIPTIONS,
    "assessmentMethods": StepId.ASSESSMENT,
}


def stage_of(step: StepId) -> Stage:
    return SLOTS[step].stage


def first_step(stage: Stage) -> StepId | None:
    steps = STAGE_STEPS.get(stage)
    return steps[0] if steps else None


def next_stage(stage: Stage) -> Stage:
    """Return the stage after *stage*; Complete is terminal."""
    if stage == Stage.COMPLETE:
        return Stage.COMPLETE
    idx = STAGE_ORDER.index(stage)
    return STAGE_ORDER[idx + 1] if idx + 1 < len(STAGE_ORDER) else Stage.COMPLETE


def _stage_data(data: StructuredData, stage: Stage):
    return getattr(data, stage.value)


# ---------------------------------------------------------------------------
# Satisfaction
# ---------------------------------------------------------------------------


def step_satisfied(step: StepId, data: StructuredData, *, min_phases: int = 2) -> bool:
    """Whether the accumulated data already meets *step*'s requirement."""
    binding = SLOTS[step]
    section = _stage_data(data, binding.stage)
    value = getattr(section, binding.slot)

    if binding.kind == "set":
        return bool(value)
    if binding.kind == "fill":
        return bool(value) and all(getattr(item, binding.detail) for item in value)
    if step == StepId.PHASES:
        return len(value) >= max(1, min_phases)
    return len(value) > 0


def stage_complete(stage: Stage, data: StructuredData, *, min_phases: int = 2) -> bool:
    if stage == Stage.COMPLETE:
        return True
    return all(step_satisfied(s, data, min_phases=min_phases) for s in STAGE_STEPS[stage])


def frontier(data: StructuredData, *, min_phases: int = 2) -> tuple[Stage, StepId | None]:
    """First unsatisfied (stage, step) in global order, or ``(COMPLETE, None)``."""
    for stage in STAGE_ORDER:
        for step in STAGE_STEPS[stage]:
            if not step_satisfied(step, data, min_phases=min_phases):
                return stage, step
    return Stage.COMPLETE, None


def completed_stages(data: StructuredData, *, min_phases: int = 2) -> list[Stage]:
    return [s for s in STAGE_ORDER if stage_complete(s, data, min_phases=min_phases)]


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def write_slot(
    data: StructuredData,
    step: StepId,
    value: str,
    *,
    index: int | None = None,
    replace: bool = False,
) -> None:
    """Write *value* into *data* for *step*, mutating *data* in place.

    Callers pass a copy; the state machine swaps it in only on success.
    Raises ``ValueError`` when the write would overwrite a populated slot
    without ``replace`` or when *index* is out of range.
    """
    binding = SLOTS[step]
    section = _stage_data(data, binding.stage)
    current = getattr(section, binding.slot)

    if binding.kind == "set":
        if current and not replace:
            raise ValueError(f"{binding.slot} is already populated")
        setattr(section, binding.slot, value)
        return

    if binding.kind == "append":
        if replace and index is not None:
            if not 0 <= index < len(current):
                raise ValueError(f"{binding.slot}[{index}] does not exist")
            current[index] = _make_item(step, value, existing=current[index])
        else:
            current.append(_make_item(step, value))
        return

    # fill
    if index is None:
        targets = [i for i, item in enumerate(current) if not getattr(item, binding.detail)]
        if not targets:
            raise ValueError(f"every {binding.slot} item already has {binding.detail}")
        index = targets[0]
    elif not 0 <= index < len(current):
        raise ValueError(f"{binding.slot}[{index}] does not exist")
    elif getattr(current[index], binding.detail) and not replace:
        raise ValueError(f"{binding.slot}[{index}].{binding.detail} is already populated")
    setattr(current[index], binding.detail, value)


def _make_item(step: StepId, value: str, existing=None):
    if step == StepId.PHASES:
        return Phase(name=value, activities=existing.activities if existing else None)
    if step == StepId.MILESTONES:
        return Milestone(title=value, description=existing.description if existing else None)
    return value


def fill_target_label(step: StepId, data: StructuredData) -> str | None:
    """Name of the item a ``fill`` step is currently asking about."""
    binding = SLOTS[step]
    if binding.kind != "fill":
        return None
    items = getattr(_stage_data(data, binding.stage), binding.slot)
    for item in items:
        if not getattr(item, binding.detail):
            return getattr(item, "name", None) or getattr(item, "title", None)
    return None
