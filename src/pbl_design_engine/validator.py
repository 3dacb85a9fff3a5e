"""Per-step content rules.

Each step combines disallow patterns (wrong category of answer), a length
floor, and required domain vocabulary. Disallow rules are checked first and
win even when the required vocabulary is also present. Everything here is
pure so it can re-check data patches proposed by the backend.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from .errors import ValidationRejection
from .models import StepId, ValidationResult
from .stages import SLOT_TO_STEP

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pattern:
    """A named regex with the reason shown when it decides the verdict."""
    name: str
    regex: re.Pattern
    reason: str

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None


def _p(name: str, pattern: str, reason: str) -> Pattern:
    return Pattern(name, re.compile(pattern, re.IGNORECASE), reason)


@dataclass(frozen=True)
class StepRules:
    min_words: int = 3
    min_chars: int = 0
    floor_reason: str = "Please add a bit more detail."
    disallow: tuple[Pattern, ...] = ()
    require: tuple[Pattern, ...] = ()


# ---------------------------------------------------------------------------
# Shared patterns
# ---------------------------------------------------------------------------

_PERSONAL_INTEREST = _p(
    "personal_interest",
    r"^(i want|i would like|i'd like|looking at|i'm interested in|i am interested in|i think about"
    r"|my students|i teach|it's about|about\b)"
    r"|^(examine|study|research|explore)\s+(the|a|an|how|why|what|about|into|on|our|their)\b",
    "That reads like a personal interest or topic rather than an answer for this step.",
)

_CASUAL = _p(
    "casual",
    r"^(yeah|yea|well|so|um|uh|like|just|maybe|perhaps|kinda|sorta)\b",
    "That sounds tentative. Try stating it directly, as you would write it in the plan.",
)

_QUESTION_RE = re.compile(r"\?|^(how|what|why|when|where|which|who)\s", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

RULES: dict[StepId, StepRules] = {
    StepId.BIG_IDEA: StepRules(
        min_words=3,
        min_chars=15,
        floor_reason="Please give the Big Idea a little more detail.",
        disallow=(
            Pattern(
                "question",
                _QUESTION_RE,
                "Big Ideas should be themes, not questions. Save the question for the Essential Question step.",
            ),
        ),
    ),
    StepId.ESSENTIAL_QUESTION: StepRules(
        min_words=6,
        floor_reason="Please make your question more specific.",
        require=(
            Pattern(
                "inquiry",
                _QUESTION_RE,
                "Essential Questions should be open, inquiry-based questions.",
            ),
        ),
    ),
    StepId.CHALLENGE: StepRules(
        min_words=6,
        floor_reason="Please be more specific about what students will produce.",
        require=(
            _p(
                "action_verb",
                r"\b(create|design|develop|build|produce|analy[sz]e|evaluate|synthesi[sz]e)",
                "Challenges should describe what students will DO, such as design, build or produce.",
            ),
        ),
    ),
    StepId.PHASES: StepRules(
        min_words=3,
        min_chars=10,
        floor_reason="Name the phase and what it is about, in a few words.",
        disallow=(
            _PERSONAL_INTEREST,
            _p(
                "content_topic",
                r"^(the |a |an )(civil war|world war|renaissance|industrial revolution|photosynthesis"
                r"|ecosystems|algebra|geometry)\b",
                "That is a content topic. Phases describe the learning process students move through.",
            ),
            _CASUAL,
        ),
        require=(
            _p(
                "process_language",
                r"\b(research|investigat|analy[sz]|develop|creat|design|explor|build|present|communicat|reflect)",
                "Phases should describe a learning process, for example research, design, build or present.",
            ),
        ),
    ),
    StepId.ACTIVITIES: StepRules(
        min_words=8,
        min_chars=31,
        floor_reason="Describe what students actually do in this phase, in a full sentence.",
        disallow=(
            _p(
                "passive_learning",
                r"\b(learn about|study|read about|understand|know)\b",
                "That describes passive learning. Activities should show students actively doing something.",
            ),
        ),
        require=(
            _p(
                "active_engagement",
                r"\b(students|teams|individuals|learners)\b.*\b(conduct|analy[sz]e|create|design|develop|build"
                r"|investigate|explore|present|communicate|collaborate|document)",
                "Activities should say who does what, e.g. 'Teams interview local experts and document...'.",
            ),
        ),
    ),
    StepId.RESOURCES: StepRules(
        min_words=5,
        min_chars=21,
        floor_reason="Please describe the resource more specifically.",
        require=(
            _p(
                "specific_resource",
                r"\b(experts?|specialists?|professionals?|databases?|tools?|equipment|sites?|archives?"
                r"|collections?|platforms?)\b",
                "Resources should be concrete and actionable: an expert, tool, site, archive or platform.",
            ),
        ),
    ),
    StepId.MILESTONES: StepRules(
        min_words=2,
        min_chars=8,
        floor_reason="Name the deliverable in at least two words, e.g. 'Research Report'.",
        disallow=(
            _p(
                "learning_activity",
                r"^(students|they|learners)\b.*\b(learn|study|research|explore|understand|practice|work on|focus on)",
                "This describes an activity students do, not a deliverable they create. "
                "Milestones are products (like 'Research Report'), not activities (like 'research the topic').",
            ),
            _PERSONAL_INTEREST,
            _CASUAL,
        ),
        require=(
            _p(
                "deliverable_noun",
                r"\b(report|presentation|proposal|design|portfolio|product|document|plan|analysis"
                r"|recommendation|solution|prototype|model|showcase|exhibition|brief|campaign|podcast"
                r"|video|website|publication)",
                "Milestones should name a product students create, such as a report, proposal or presentation.",
            ),
        ),
    ),
    StepId.DESCRIPTIONS: StepRules(
        min_words=10,
        min_chars=41,
        floor_reason="Descriptions need more detail about audience, format and purpose.",
        require=(
            _p(
                "audience",
                r"\b(community|stakeholders?|experts?|officials?|members|peers?|professionals?|public|audience)\b",
                "Say who the audience is (community members, experts, officials, peers...).",
            ),
            _p(
                "format",
                r"\b(page|minute|section|visual|interactive|digital|physical|written|oral|presented|shared|displayed)",
                "Say what format it takes (written, oral, digital, a 5-minute presentation...).",
            ),
        ),
    ),
    StepId.ASSESSMENT: StepRules(
        min_words=6,
        min_chars=26,
        floor_reason="Please describe how the work will be assessed in a bit more detail.",
        disallow=(
            _p(
                "traditional_testing",
                r"^(tests?|quiz(zes)?|exams?|grades?|grading|scores?|traditional|multiple choice|true false)\b",
                "That is traditional testing. Authentic assessment uses feedback, reflection and real audiences.",
            ),
        ),
        require=(
            _p(
                "authentic_assessment",
                r"\b(feedback|reflection|portfolio|peer|community|expert|stakeholder|authentic|professional"
                r"|real|growth|development)",
                "Assessment should be authentic: peer or expert feedback, reflection, portfolios, real audiences.",
            ),
        ),
    ),
}


def word_count(text: str) -> int:
    return len(text.split())


def validate(utterance: str, step: StepId) -> ValidationResult:
    """Decide whether *utterance* is acceptable content for *step*."""
    text = utterance.strip()
    rules = RULES.get(step)
    if rules is None:
        ok = word_count(text) >= 3
        return ValidationResult(accepted=ok, reason=None if ok else "Please add more detail.", rule="default")

    for pattern in rules.disallow:
        if pattern.search(text):
            return ValidationResult(accepted=False, reason=pattern.reason, rule=pattern.name)

    if word_count(text) < rules.min_words or len(text) < rules.min_chars:
        return ValidationResult(accepted=False, reason=rules.floor_reason, rule="length_floor")

    for pattern in rules.require:
        if not pattern.search(text):
            return ValidationResult(accepted=False, reason=pattern.reason, rule=pattern.name)

    return ValidationResult(accepted=True, rule="accepted")


def ensure_valid(utterance: str, step: StepId) -> None:
    """Raise ``ValidationRejection`` unless *utterance* is acceptable for *step*."""
    verdict = validate(utterance, step)
    if not verdict.accepted:
        raise ValidationRejection(step.value, verdict.reason or "rejected")


# ---------------------------------------------------------------------------
# Backend patch re-validation
# ---------------------------------------------------------------------------


def _patch_values(value: Any) -> list[str]:
    """Flatten a patch value into the strings the step rules apply to."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        for key in ("title", "name", "description", "activities", "text", "value"):
            if isinstance(value.get(key), str):
                return [value[key]]
        return [str(value)]
    if isinstance(value, (list, tuple)):
        out: list[str] = []
        for item in value:
            out.extend(_patch_values(item))
        return out
    return [str(value)]


def validate_patch(patch: dict[str, Any] | None) -> dict[str, ValidationResult]:
    """Re-validate each slot of a backend-proposed data patch.

    Unknown slots are rejected outright. Nested stage sections
    (``{"ideation": {...}}``) are flattened first.
    """
    results: dict[str, ValidationResult] = {}
    if not patch:
        return results

    flat: dict[str, Any] = {}
    for key, value in patch.items():
        if key in ("ideation", "journey", "deliverables") and isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value

    for slot, value in flat.items():
        step = SLOT_TO_STEP.get(slot)
        if step is None:
            results[slot] = ValidationResult(accepted=False, reason=f"Unknown slot {slot!r}", rule="unknown_slot")
        elif slot == "phases" and isinstance(value, list):
            # phases may carry activities alongside names
            results[slot] = _first_rejection(
                _check_all([v.get("name") if isinstance(v, dict) else v for v in value], StepId.PHASES),
                _check_all([v["activities"] for v in value if isinstance(v, dict) and v.get("activities")],
                           StepId.ACTIVITIES),
            )
        elif slot == "milestones" and isinstance(value, list):
            results[slot] = _first_rejection(
                _check_all([v.get("title") if isinstance(v, dict) else v for v in value], StepId.MILESTONES),
                _check_all([v["description"] for v in value if isinstance(v, dict) and v.get("description")],
                           StepId.DESCRIPTIONS),
            )
        else:
            results[slot] = _check_all(_patch_values(value), step)

    for slot, verdict in results.items():
        if not verdict.accepted:
            logger.debug("Patch slot %s rejected: %s", slot, verdict.reason)
    return results


def _first_rejection(*verdicts: ValidationResult) -> ValidationResult:
    for verdict in verdicts:
        if not verdict.accepted:
            return verdict
    return ValidationResult(accepted=True, rule="accepted")


def _check_all(values: list[Any], step: StepId) -> ValidationResult:
    for value in values:
        if not isinstance(value, str):
            return ValidationResult(accepted=False, reason=f"Non-text value for {step.value}", rule="type")
        verdict = validate(value, step)
        if not verdict.accepted:
            return verdict
    return ValidationResult(accepted=True, rule="accepted")
