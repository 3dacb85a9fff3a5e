"""Utterance classification.

Pure functions that tag a user utterance using only its text and the prior
assistant turn. Quality is not judged here; see ``validator``.
"""

from __future__ import annotations

import re

from .models import ClassificationResult, ConversationTurn, Role, StepId

HELP_PHRASES: tuple[str, ...] = (
    "not sure",
    "no idea",
    "any suggestions",
    "help",
    "suggestions?",
    "give me some",
    "i need some",
    "ideas",
    "examples",
    "can you expand",
    "could you expand",
    "turn it into",
    "make it into",
    "could you help",
    "can you help",
)

SHORT_INPUT_MAX = 5

# Whole-phrase matches only, so "helps" or "helpful" do not count.
_HELP_RE = re.compile(
    "|".join(rf"(?<!\w){re.escape(p)}(?!\w)" for p in HELP_PHRASES),
    re.IGNORECASE,
)

# Suggestions that steer refinement rather than name an answer.
_REFINEMENT_PREFIXES = ("what if", "make it more", "connect it more", "focus it on")
_REFINEMENT_MARKERS = ("refine", "keep and continue")

_CONFIRMATION_RE = re.compile(
    r"^(okay|ok|yes|sure|good|that works?|sounds good|perfect|right|correct|move forward"
    r"|let's go|continue|keep and continue|keep)"
    r"(,?\s+(yes|sounds?\s+good|works?|with that|and continue))?$",
    re.IGNORECASE,
)

_TRAILING_PUNCT = re.compile(r"[\s.!,]+$")


def _norm(text: str) -> str:
    return text.strip().lower()


def is_help_request(utterance: str) -> bool:
    lower = _norm(utterance)
    return len(lower) <= SHORT_INPUT_MAX or bool(_HELP_RE.search(lower))


def is_what_if(utterance: str) -> bool:
    return _norm(utterance).startswith("what if")


def is_confirmation(utterance: str) -> bool:
    text = _TRAILING_PUNCT.sub("", utterance.strip())
    return bool(_CONFIRMATION_RE.match(text))


def is_concrete_suggestion(suggestion: str) -> bool:
    """False for coaching/refinement chips that must never be captured verbatim."""
    lower = _norm(suggestion)
    if not lower:
        return False
    if lower.startswith(_REFINEMENT_PREFIXES):
        return False
    return not any(m in lower for m in _REFINEMENT_MARKERS)


def match_suggestion(utterance: str, suggestions: list[str] | None) -> str | None:
    """Return the concrete suggestion the utterance selects, if any.

    Matches exactly or as a substring in either direction, case-insensitively.
    """
    lower = _norm(utterance)
    if not lower or not suggestions:
        return None
    for suggestion in suggestions:
        if not is_concrete_suggestion(suggestion):
            continue
        s = _norm(suggestion)
        if lower == s:
            return suggestion.strip()
        # partial matches need more than a word or two to be meaningful
        if len(lower) > SHORT_INPUT_MAX and (lower in s or s in lower):
            return suggestion.strip()
    return None


def classify(
    utterance: str,
    prior_assistant_turn: ConversationTurn | None = None,
    prior_suggestions: list[str] | None = None,
) -> ClassificationResult:
    """Tag *utterance* with help / what-if / suggestion / confirmation signals.

    ``prior_suggestions`` defaults to the suggestions attached to
    *prior_assistant_turn* when not given explicitly.
    """
    if prior_suggestions is None and prior_assistant_turn is not None:
        if prior_assistant_turn.role == Role.ASSISTANT:
            prior_suggestions = prior_assistant_turn.suggestions

    what_if = is_what_if(utterance)
    confirmation = is_confirmation(utterance)

    matched = None
    if not what_if and not confirmation:
        matched = match_suggestion(utterance, prior_suggestions)
    exact_pick = (
        matched is not None
        and _norm(matched) == _norm(utterance)
        and len(_norm(utterance)) > SHORT_INPUT_MAX
    )

    # "ok" is short enough to look like a help request; confirmation wins.
    # A clicked chip such as "Community Ideas Exhibition" is content, not help.
    help_request = is_help_request(utterance) and not confirmation and not exact_pick

    # confirmations only ever resolve an open offer; they are never content
    skip = help_request or what_if or confirmation
    if skip:
        proposed = None
    elif matched is not None:
        proposed = matched
    else:
        proposed = utterance.strip() or None

    return ClassificationResult(
        is_help_request=help_request,
        is_what_if_selection=what_if,
        is_suggestion_selection=matched is not None,
        is_confirmation=confirmation,
        skip_validation=skip,
        matched_suggestion=matched,
        proposed_value=proposed,
    )


# ---------------------------------------------------------------------------
# What-if concept extraction (best effort)
# ---------------------------------------------------------------------------

_QUOTED_RE = re.compile(r"[\"“‘']([^\"”’']{3,80})[\"”’']")
_NAMED_RE = re.compile(
    r"\b(?:called it|call it|named it|titled it|was|were)\s+(?:an?\s+|the\s+)?([A-Za-z][\w&\- ]{2,60}?)(?:[?,.!]|$)",
    re.IGNORECASE,
)

# Step vocabulary -> canonical concept, checked in order.
_STEP_CONCEPTS: dict[StepId, tuple[tuple[str, str], ...]] = {
    StepId.MILESTONES: (
        ("report", "Research Report"),
        ("presentation", "Community Presentation"),
        ("proposal", "Design Proposal"),
        ("portfolio", "Portfolio"),
        ("prototype", "Prototype"),
        ("exhibition", "Exhibition"),
    ),
    StepId.PHASES: (
        ("research", "Research & Investigation"),
        ("analysis", "Analysis & Interpretation"),
        ("creation", "Creation & Development"),
        ("present", "Presentation & Sharing"),
        ("reflect", "Reflection"),
    ),
}


def extract_concept(what_if_text: str, step: StepId | None = None) -> str | None:
    """Pull the core noun phrase out of a what-if coaching prompt.

    Returns None when nothing usable is found, in which case the caller should
    ask the educator to restate the idea in their own words.
    """
    m = _QUOTED_RE.search(what_if_text)
    if m:
        return m.group(1).strip()

    m = _NAMED_RE.search(what_if_text)
    if m:
        concept = m.group(1).strip()
        if concept.lower() not in {"you", "they", "students", "it"}:
            return concept

    lower = what_if_text.lower()
    for keyword, concept in _STEP_CONCEPTS.get(step, ()):
        if keyword in lower:
            return concept
    return None
