"""Prompt text for the design coach and deterministic local fallbacks.

The coach's system prompt is per stage; each turn adds a strategy
instruction built from the selected ``StrategyOutcome``. Fallback messages
are used whenever the backend is unavailable or returns something the engine
refuses to trust.
"""

from __future__ import annotations

from .models import (
    ClarifyReason,
    ProjectProfile,
    Stage,
    StepId,
    Strategy,
    StrategyOutcome,
    StructuredData,
)
from .stages import STAGE_TITLES, STEP_LABELS, fill_target_label

# ---------------------------------------------------------------------------
# Stage system prompts
# ---------------------------------------------------------------------------

_COMMON_RULES = """\
You are an expert education coach guiding an educator through designing a
project-based learning experience, one step at a time.

Rules:
- Focus only on the current step. Do not jump ahead.
- Keep replies short and warm: a light acknowledgement, step-specific guidance,
  then one clear ask.
- Never decide on your own that an answer is captured. The instruction for this
  turn tells you what happened; follow it exactly.
- "What if" suggestions are coaching prompts, not answers. Concrete suggestions
  must be complete, ready-to-use answers for the current step.

Return ONLY a JSON object matching the BackendReply schema:
{
  "displayText": "what the educator sees",
  "suggestions": ["...", "...", "..."] or null,
  "proposedDataPatch": {"<slot>": "<value>"} or null,
  "proposedNextStep": "<step id>" or null,
  "stageComplete": true | false | null
}
"""

STAGE_PROMPTS: dict[Stage, str] = {
    Stage.IDEATION: _COMMON_RULES + """
Stage: IDEATION. Steps: bigIdea -> essentialQuestion -> challenge.
- Big Idea: an overarching theme or concept, stated as a statement, not a question.
- Essential Question: an open, inquiry-based question that drives the project.
- Challenge: what students will create, design or build, for whom.
""",
    Stage.JOURNEY: _COMMON_RULES + """
Stage: LEARNING JOURNEY. Steps: phases -> activities -> resources.
- Phases: learning processes students move through (e.g. "Research & Investigation"),
  not content topics. At least two phases are needed.
- Activities: for each phase, what students actively DO (who does what, for what).
- Resources: concrete experts, tools, sites, archives or platforms.
""",
    Stage.DELIVERABLES: _COMMON_RULES + """
Stage: STUDENT DELIVERABLES. Steps: milestones -> descriptions -> assessment.
- Milestones are PRODUCTS students create (like "Research Report"), not ACTIVITIES
  they do (like "research the topic").
- Descriptions state audience, format and purpose of each milestone.
- Assessment is authentic: feedback, reflection, portfolios, real audiences; not
  tests, quizzes or exams.
""",
    Stage.COMPLETE: _COMMON_RULES + """
Stage: COMPLETE. The design is finished. Summarize it and congratulate the educator.
""",
}


def stage_prompt(stage: Stage, profile: ProjectProfile | None = None) -> str:
    prompt = STAGE_PROMPTS[stage]
    if profile is not None:
        prompt += (
            "\nProject context:\n"
            f"- Subject: {profile.subject or 'their subject area'}\n"
            f"- Age group: {profile.age_group or 'their students'}\n"
            f"- Scope: {profile.scope}\n"
        )
    return prompt


# ---------------------------------------------------------------------------
# Per-turn instructions
# ---------------------------------------------------------------------------


def _label(step: StepId | None) -> str:
    return STEP_LABELS.get(step, "answer") if step else "answer"


def build_instruction(outcome: StrategyOutcome, utterance: str, data: StructuredData) -> str:
    """Instruction telling the coach what the engine decided this turn."""
    label = _label(outcome.step)
    strategy = outcome.strategy
    target = fill_target_label(outcome.step, data) if outcome.step else None
    about = f" for '{target}'" if target else ""

    if strategy == Strategy.COMPLETE_STAGE:
        return (
            f"The {STAGE_TITLES[outcome.stage]} stage is complete. Summarize what was captured "
            "and introduce the next stage. Do not provide suggestions."
        )
    if strategy == Strategy.OFFER_REFINEMENT:
        return (
            f"The educator gave a quality {label}{about}: \"{outcome.proposed_value}\". Say it meets the "
            "criteria, then ask whether they want to refine it further or move forward with "
            f"\"{outcome.proposed_value}\". Do NOT treat it as captured yet."
        )
    if strategy == Strategy.ACCEPT_AND_ADVANCE:
        return (
            f"The educator confirmed the {label}: \"{outcome.commit_value}\". It is now captured. "
            "Acknowledge it briefly and introduce what comes next. No suggestions."
        )
    if strategy == Strategy.REJECT_AND_COACH:
        return (
            f"The educator's {label}{about} does not fit this step: \"{utterance}\". "
            f"Problem: {outcome.reason} Coach them toward the right kind of answer and offer "
            f"{outcome.request_prompts} \"What if\" suggestions to help them reframe. Stay on this step."
        )

    reason = outcome.clarify_reason
    if reason == ClarifyReason.WHAT_IF:
        if outcome.concept:
            return (
                f"The educator picked a \"What if\" prompt about \"{outcome.concept}\". Do not capture it. "
                f"Ask how THEY would phrase \"{outcome.concept}\" as their own {label}."
            )
        return (
            "The educator picked a \"What if\" prompt. Do not capture it. Ask them to restate the idea "
            f"in their own words as their {label}."
        )
    if reason == ClarifyReason.HELP:
        return (
            f"The educator asked for help with the {label}{about}. Provide {outcome.request_prompts} "
            "\"What if\" coaching suggestions to develop their thinking. Stay on this step."
        )
    if reason == ClarifyReason.HELP_NUDGE:
        return (
            f"The educator has asked for help {outcome.help_count} times in a row. Gently encourage them "
            f"to lock in one {label} now, from earlier suggestions or their own idea, noting it can be "
            "refined later. Do not add new suggestions."
        )
    if reason == ClarifyReason.EMPTY:
        return f"The educator sent nothing. Ask for their {label}."
    return (
        f"The educator started on the {label}{about} but it is incomplete: \"{utterance}\". Acknowledge "
        f"the start and ask them to develop it. Offer {outcome.request_prompts} \"What if\" suggestions."
    )


# ---------------------------------------------------------------------------
# Local fallbacks
# ---------------------------------------------------------------------------

_STEP_ASKS: dict[StepId, str] = {
    StepId.BIG_IDEA: "What Big Idea, an overarching theme, should anchor this project?",
    StepId.ESSENTIAL_QUESTION: "What open Essential Question will drive students' inquiry?",
    StepId.CHALLENGE: "What Challenge will students take on, and what will they create or design?",
    StepId.PHASES: "What learning phase will students move through (for example, Research & Investigation)?",
    StepId.ACTIVITIES: "What will students actively do during this phase?",
    StepId.RESOURCES: "Which experts, tools, sites or archives will support the work?",
    StepId.MILESTONES: "What product will students create, such as a report, proposal or presentation?",
    StepId.DESCRIPTIONS: "Who is the audience for this deliverable, and what format will it take?",
    StepId.ASSESSMENT: "How will you assess the work authentically (feedback, reflection, real audiences)?",
}


def step_ask(step: StepId | None, data: StructuredData | None = None) -> str:
    if step is None:
        return "Your design is complete."
    ask = _STEP_ASKS[step]
    target = fill_target_label(step, data) if data is not None else None
    if target:
        ask = f"For '{target}': {ask[0].lower()}{ask[1:]}"
    return ask


def opening_message(stage: Stage, step: StepId | None, data: StructuredData | None = None) -> str:
    if stage == Stage.COMPLETE:
        return "Your project design is complete. You can review it or request an edit."
    return f"Let's work on {STAGE_TITLES[stage]}. {step_ask(step, data)}"


def summarize(data: StructuredData, stage: Stage) -> str:
    """Plain-text summary of one stage's captured slots."""
    if stage == Stage.IDEATION:
        d = data.ideation
        lines = [f"Big Idea: {d.bigIdea}", f"Essential Question: {d.essentialQuestion}", f"Challenge: {d.challenge}"]
    elif stage == Stage.JOURNEY:
        d = data.journey
        lines = [f"Phase: {p.name} ({p.activities})" for p in d.phases]
        lines += [f"Resource: {r}" for r in d.resources]
    elif stage == Stage.DELIVERABLES:
        d = data.deliverables
        lines = [f"Milestone: {m.title} ({m.description})" for m in d.milestones]
        lines += [f"Assessment: {a}" for a in d.assessmentMethods]
    else:
        return ""
    return "\n".join(f"- {line}" for line in lines)


def fallback_message(
    outcome: StrategyOutcome,
    data: StructuredData,
    *,
    next_stage: Stage | None = None,
    next_step: StepId | None = None,
) -> str:
    """Deterministic text used when the backend cannot be trusted this turn."""
    label = _label(outcome.step)
    strategy = outcome.strategy

    if strategy in (Strategy.ACCEPT_AND_ADVANCE, Strategy.COMPLETE_STAGE):
        head = f"Captured: \"{outcome.commit_value}\". " if outcome.commit_value else ""
        if next_stage is not None and next_stage != outcome.stage:
            summary = summarize(data, outcome.stage)
            return (
                f"{head}{STAGE_TITLES[outcome.stage]} is complete:\n{summary}\n\n"
                f"{opening_message(next_stage, next_step, data)}"
            )
        return f"{head}{step_ask(next_step, data)}"
    if strategy == Strategy.OFFER_REFINEMENT:
        return (
            f"That's a solid {label}! Would you like to refine it further, or shall we move forward "
            f"with \"{outcome.proposed_value}\"?"
        )
    if strategy == Strategy.REJECT_AND_COACH:
        return f"{outcome.reason} {step_ask(outcome.step, data)}"

    reason = outcome.clarify_reason
    if reason == ClarifyReason.WHAT_IF:
        if outcome.concept:
            return f"\"{outcome.concept}\" is a promising direction. How would you phrase it as your own {label}?"
        return f"That's an interesting direction. Could you restate it in your own words as your {label}?"
    if reason == ClarifyReason.HELP_NUDGE:
        return (
            f"I can see you're looking for the perfect {label}! Let's lock in one option and move forward. "
            "You can always refine it later. Pick an earlier suggestion or share your own."
        )
    if reason == ClarifyReason.HELP:
        return f"Happy to help. {step_ask(outcome.step, data)} A rough first draft is fine."
    return f"Could you say a bit more? {step_ask(outcome.step, data)}"


_COACHING_PROMPTS: dict[StepId, tuple[str, ...]] = {
    StepId.BIG_IDEA: (
        "What if the Big Idea connected to a change students can see in their own community?",
        "What if it centred on a tension, like progress versus preservation?",
        "What if it named a system students are part of every day?",
    ),
    StepId.ESSENTIAL_QUESTION: (
        "What if the question started with 'How might we...'?",
        "What if it asked students to weigh competing interests?",
        "What if it had no single right answer?",
    ),
    StepId.CHALLENGE: (
        "What if students designed something for a real audience outside school?",
        "What if the challenge ended in a proposal to local decision makers?",
        "What if students built a prototype and tested it with users?",
    ),
    StepId.PHASES: (
        "What if the first phase was called 'Research & Investigation'?",
        "What if a phase focused on analysis and interpretation of evidence?",
        "What if the journey ended with a presentation and sharing phase?",
    ),
    StepId.ACTIVITIES: (
        "What if teams interviewed local experts and documented what they heard?",
        "What if students collected and analyzed their own data?",
        "What if individuals presented draft findings for peer critique?",
    ),
    StepId.RESOURCES: (
        "What if a local professional joined as an expert mentor?",
        "What if students used a public data platform?",
        "What if a site visit or archive anchored the research?",
    ),
    StepId.MILESTONES: (
        "What if the first milestone was a Research Report?",
        "What if students delivered a Community Presentation?",
        "What if the work ended with a Design Proposal?",
    ),
    StepId.DESCRIPTIONS: (
        "What if this deliverable was presented to community members?",
        "What if it took the form of a 5-minute digital presentation?",
        "What if experts reviewed a written version?",
    ),
    StepId.ASSESSMENT: (
        "What if experts gave feedback on final products?",
        "What if students kept a reflection portfolio?",
        "What if peers assessed each other using a shared rubric?",
    ),
}


def coaching_prompts(step: StepId | None, count: int = 3) -> list[str]:
    """Canned what-if prompts for *step*, used when no backend is available."""
    if step is None or count <= 0:
        return []
    return list(_COACHING_PROMPTS.get(step, ()))[:count]
