"""Pydantic models for the project-based-learning design engine."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Stage(str, Enum):
    IDEATION = "ideation"
    JOURNEY = "journey"
    DELIVERABLES = "deliverables"
    COMPLETE = "complete"


class StepId(str, Enum):
    BIG_IDEA = "bigIdea"
    ESSENTIAL_QUESTION = "essentialQuestion"
    CHALLENGE = "challenge"
    PHASES = "phases"
    ACTIVITIES = "activities"
    RESOURCES = "resources"
    MILESTONES = "milestones"
    DESCRIPTIONS = "descriptions"
    ASSESSMENT = "assessment"


class Strategy(str, Enum):
    REJECT_AND_COACH = "reject_and_coach"
    OFFER_REFINEMENT = "offer_refinement"
    ACCEPT_AND_ADVANCE = "accept_and_advance"
    STAY_AND_CLARIFY = "stay_and_clarify"
    COMPLETE_STAGE = "complete_stage"


class ClarifyReason(str, Enum):
    """Why the engine stayed on the current step without capturing anything."""
    WHAT_IF = "what_if"
    HELP = "help"
    HELP_NUDGE = "help_nudge"
    ELABORATE = "elaborate"
    EMPTY = "empty"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# Structured design data
# ---------------------------------------------------------------------------

class IdeationData(BaseModel):
    """Ideation slots: the framing of the project."""
    bigIdea: str | None = Field(default=None, description="Overarching theme")
    essentialQuestion: str | None = Field(default=None, description="Driving inquiry question")
    challenge: str | None = Field(default=None, description="What students will do or produce")


class Phase(BaseModel):
    """A single learning phase of the journey."""
    name: str = Field(..., description="Phase name, e.g. 'Research & Investigation'")
    activities: str | None = Field(default=None, description="What students do in this phase")


class JourneyData(BaseModel):
    phases: list[Phase] = Field(default_factory=list, description="Ordered learning phases")
    resources: list[str] = Field(default_factory=list, description="Experts, tools, sites, archives")


class Milestone(BaseModel):
    """A deliverable students create."""
    title: str = Field(..., description="Deliverable name, e.g. 'Research Report'")
    description: str | None = Field(default=None, description="Audience, format and purpose")


class DeliverablesData(BaseModel):
    milestones: list[Milestone] = Field(default_factory=list)
    assessmentMethods: list[str] = Field(default_factory=list)


class StructuredData(BaseModel):
    """Stage-scoped slots accumulated over the conversation."""
    ideation: IdeationData = Field(default_factory=IdeationData)
    journey: JourneyData = Field(default_factory=JourneyData)
    deliverables: DeliverablesData = Field(default_factory=DeliverablesData)


class ProjectProfile(BaseModel):
    """Optional educator context used to tailor backend prompts."""
    subject: str = Field(default="", description="Subject area")
    age_group: str = Field(default="", description="Learner age group or grade band")
    scope: str = Field(default="Full Course", description="Project scope")


# ---------------------------------------------------------------------------
# Flow state
# ---------------------------------------------------------------------------

class RefinementOffer(BaseModel):
    """Provisional candidate value awaiting confirmation or further refinement."""
    step: StepId = Field(...)
    proposed_value: str = Field(...)


class EditTarget(BaseModel):
    """Slot an explicit edit request will replace on the next commit."""
    stage: Stage = Field(...)
    step: StepId = Field(...)
    index: int | None = Field(default=None, description="List item to replace; None appends or sets")


class FlowState(BaseModel):
    """Conversation bookkeeping owned by the state machine. Never exported."""
    open_offer: RefinementOffer | None = Field(default=None)
    consecutive_help_count: int = Field(default=0)
    last_outcome_id: str | None = Field(default=None)
    edit_target: EditTarget | None = Field(default=None)


class Project(BaseModel):
    """Root entity: one educator's design session."""
    project_id: str = Field(...)
    stage: Stage = Field(default=Stage.IDEATION)
    step: StepId | None = Field(default=StepId.BIG_IDEA, description="None once stage is complete")
    data: StructuredData = Field(default_factory=StructuredData)
    revision: int = Field(default=0, description="Incremented on every applied outcome")
    profile: ProjectProfile | None = Field(default=None)
    flow: FlowState = Field(default_factory=FlowState)


# ---------------------------------------------------------------------------
# Per-turn ephemera
# ---------------------------------------------------------------------------

class ConversationTurn(BaseModel):
    role: Role = Field(...)
    text: str = Field(...)
    suggestions: list[str] | None = Field(default=None, description="Suggestions attached to an assistant turn")
    timestamp: float = Field(default_factory=time.time)


class ClassificationResult(BaseModel):
    """Signals derived from one utterance and the prior assistant turn."""
    is_help_request: bool = False
    is_what_if_selection: bool = False
    is_suggestion_selection: bool = False
    is_confirmation: bool = False
    skip_validation: bool = False
    matched_suggestion: str | None = None
    proposed_value: str | None = None


class ValidationResult(BaseModel):
    accepted: bool = Field(...)
    reason: str | None = Field(default=None, description="Human-readable rejection reason")
    rule: str | None = Field(default=None, description="Name of the rule that decided the verdict")


class StrategyOutcome(BaseModel):
    """A decision ready to be applied by the state machine."""
    outcome_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    base_revision: int = Field(..., description="Project revision the decision was made against")
    strategy: Strategy = Field(...)
    stage: Stage = Field(...)
    step: StepId | None = Field(default=None)
    proposed_value: str | None = Field(default=None, description="Value stored as the open offer")
    commit_value: str | None = Field(default=None, description="Value committed to the step's slot")
    clarify_reason: ClarifyReason | None = Field(default=None)
    reason: str | None = Field(default=None, description="Validator reason for reject-and-coach")
    concept: str | None = Field(default=None, description="Concept extracted from a what-if selection")
    request_prompts: int = Field(default=0, description="Number of coaching prompts to ask the backend for")
    help_count: int = Field(default=0, description="Consecutive help count after this outcome")


# ---------------------------------------------------------------------------
# External interfaces
# ---------------------------------------------------------------------------

class PromptContext(BaseModel):
    """Everything the generative backend sees for one turn."""
    stage: Stage = Field(...)
    step: StepId | None = Field(default=None)
    strategy: Strategy = Field(...)
    instruction: str = Field(default="", description="Strategy-specific instruction for the coach")
    utterance: str = Field(default="")
    data: StructuredData = Field(default_factory=StructuredData)
    history: list[ConversationTurn] = Field(default_factory=list)
    profile: ProjectProfile | None = Field(default=None)
    request_prompts: int = Field(default=0)
    outcome: StrategyOutcome | None = Field(default=None, description="Decision this reply must describe")
    next_stage: Stage | None = Field(default=None, description="Stage after the outcome is applied")
    next_step: StepId | None = Field(default=None, description="Step after the outcome is applied")


class BackendReply(BaseModel):
    """Structured reply from the generative backend. Every optional field may be absent."""
    displayText: str = Field(..., description="Text shown to the educator")
    suggestions: list[str] | None = Field(default=None)
    proposedDataPatch: dict[str, Any] | None = Field(default=None)
    proposedNextStep: str | None = Field(default=None)
    stageComplete: bool | None = Field(default=None)


class DesignContext(BaseModel):
    """Read-only projection for the backend adapter and export collaborators."""
    project_id: str = Field(...)
    stage: Stage = Field(...)
    step: StepId | None = Field(default=None)
    data: StructuredData = Field(...)
    completed_stages: list[Stage] = Field(default_factory=list)
    revision: int = Field(default=0)
    profile: ProjectProfile | None = Field(default=None)


class EngineResponse(BaseModel):
    """One record of the presentation stream."""
    displayText: str = Field(...)
    suggestions: list[str] | None = Field(default=None)
    isStageComplete: bool = Field(default=False)
    currentStage: Stage = Field(...)
    currentStep: StepId | None = Field(default=None)
    strategy: Strategy | None = Field(default=None)
    superseded: bool = Field(default=False, description="A newer utterance replaced this one")
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Engine Configuration (loaded from YAML)
# ---------------------------------------------------------------------------

class ModelEndpointOverride(BaseModel):
    """Per-model endpoint settings that take precedence over ``azure``."""
    endpoint: str = Field(..., description="Endpoint URL for this model")
    api_key: str = Field(default="")
    api_version: str = Field(default="")
    api_type: str | None = Field(default=None, description="Force an AG2 api_type, e.g. 'anthropic'")


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-5.2", description="Default model")
    coach: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class EngineConfig(BaseModel):
    """Full engine configuration loaded from config.yaml."""
    project_name: str = Field(default="pbl-design")

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)

    # Models
    models: ModelConfig = Field(default_factory=ModelConfig)
    timeout: int = Field(default=120, description="LLM call timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")

    # Backend
    backend: str = Field(default="autogen", description="'autogen' or 'offline'")
    backend_timeout: float = Field(default=60.0, gt=0, description="Seconds before a backend call counts as unavailable")

    # Conversation policy
    history_window: int = Field(default=6, description="Trailing turns sent to the backend")
    help_nudge_threshold: int = Field(default=2, description="Consecutive help requests before nudging")
    coaching_prompt_count: int = Field(default=3, description="Coaching prompts requested per help turn")
    min_journey_phases: int = Field(default=2, description="Phases required before moving on")

    # Persistence
    store_dir: str = Field(default="projects/", description="Directory for saved projects")
    save_retries: int = Field(default=2, description="Extra save attempts after a failure")
