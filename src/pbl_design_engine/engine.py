"""ConversationEngine: one turn of the design conversation, end to end.

Per utterance:
  1. classify against the prior assistant turn
  2. validate unless the classifier says to skip
  3. select a strategy and preview its effect on a scratch state machine
  4. ask the generative backend for wording (bounded by a timeout)
  5. re-validate the backend's patch and hints; fall back locally on trouble
  6. apply the outcome and persist

Sessions are per project id. Turns on the same project are serialized by a
lock, and a newer utterance supersedes an older one still waiting on the
backend: the older turn applies nothing and is answered ``superseded=True``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field

from .backend import GenerativeBackend, describe_reply, make_backend
from .classifier import classify
from .errors import (
    BackendUnavailable,
    InvalidPatchFromBackend,
    InvalidTransitionRequest,
    PersistenceFailure,
)
from .logging_config import EngineCallbacks, NullCallbacks
from .models import (
    BackendReply,
    ConversationTurn,
    DesignContext,
    EngineConfig,
    EngineResponse,
    Project,
    ProjectProfile,
    PromptContext,
    Role,
    Stage,
    StepId,
    Strategy,
    StrategyOutcome,
)
from .persistence import JsonProjectStore, ProjectStore
from .prompts import build_instruction, fallback_message, opening_message, step_ask
from .stages import STAGE_TITLES, STEP_LABELS
from .state_machine import DesignStateMachine, new_project
from .strategy import select_strategy
from .validator import validate, validate_patch

logger = logging.getLogger(__name__)

# Shown on a refinement offer; "Refine further" is never captured verbatim.
OFFER_CHOICES = ["Keep and Continue", "Refine further"]


@dataclass
class _Session:
    project_id: str
    machine: DesignStateMachine | None = None
    history: deque = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    ticket: int = 0
    inflight: asyncio.Task | None = None
    pending_saves: set = field(default_factory=set)
    save_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    saved_revision: int = -1

    def last_assistant_turn(self) -> ConversationTurn | None:
        for turn in reversed(self.history):
            if turn.role == Role.ASSISTANT:
                return turn
        return None


class ConversationEngine:
    """Drives classify -> validate -> select -> generate -> apply -> save."""

    def __init__(
        self,
        config: EngineConfig,
        backend: GenerativeBackend | None = None,
        store: ProjectStore | None = None,
        callbacks: EngineCallbacks | None = None,
    ) -> None:
        self.config = config
        self.backend = backend if backend is not None else make_backend(config)
        self.store = store if store is not None else JsonProjectStore(config.store_dir, retries=config.save_retries)
        self.callbacks = callbacks or NullCallbacks()
        self._sessions: dict[str, _Session] = {}

    # -----------------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------------

    def _session(self, project_id: str) -> _Session:
        session = self._sessions.get(project_id)
        if session is None:
            # two turns per exchange
            session = _Session(project_id, history=deque(maxlen=max(2, self.config.history_window * 2)))
            self._sessions[project_id] = session
        return session

    async def _ensure_loaded(
        self,
        session: _Session,
        profile: ProjectProfile | None = None,
        warnings: list[str] | None = None,
    ) -> DesignStateMachine:
        if session.machine is not None:
            return session.machine
        project: Project | None = None
        try:
            project = await asyncio.to_thread(self.store.load, session.project_id)
        except PersistenceFailure as e:
            logger.error("Could not load project %s: %s", session.project_id, e)
            self._warn(warnings, f"Saved progress could not be loaded: {e}")
        if project is None:
            project = new_project(session.project_id, profile=profile)
            logger.info("Started new project %s", session.project_id)
        elif profile is not None and project.profile is None:
            project.profile = profile
        session.machine = DesignStateMachine(project, min_phases=self.config.min_journey_phases)
        return session.machine

    def _supersede(self, session: _Session) -> int:
        """Claim a new ticket and cancel whatever the previous one is waiting on."""
        session.ticket += 1
        if session.inflight is not None and not session.inflight.done():
            session.inflight.cancel()
        return session.ticket

    def context(self, project_id: str) -> DesignContext | None:
        """Current ``DesignContext`` of a loaded project, or None."""
        session = self._sessions.get(project_id)
        if session is None or session.machine is None:
            return None
        return session.machine.current_context()

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def start(self, project_id: str, profile: ProjectProfile | None = None) -> EngineResponse:
        """Load or create *project_id* and greet the educator at its current step."""
        session = self._session(project_id)
        self._supersede(session)
        warnings: list[str] = []
        async with session.lock:
            machine = await self._ensure_loaded(session, profile, warnings)
            project = machine.project
            text = opening_message(project.stage, project.step, project.data)
            if project.stage != Stage.COMPLETE:
                self.callbacks.on_stage_start(project.stage, STAGE_TITLES[project.stage])
            session.history.append(ConversationTurn(role=Role.ASSISTANT, text=text))
            return EngineResponse(
                displayText=text,
                isStageComplete=project.stage == Stage.COMPLETE,
                currentStage=project.stage,
                currentStep=project.step,
                warnings=warnings,
            )

    async def handle(self, project_id: str, utterance: str) -> EngineResponse:
        """Process one educator utterance and return what to show."""
        session = self._session(project_id)
        ticket = self._supersede(session)
        warnings: list[str] = []

        async with session.lock:
            machine = await self._ensure_loaded(session, warnings=warnings)
            if ticket != session.ticket:
                return self._superseded(machine)

            project = machine.project
            text = utterance.strip()

            if project.stage == Stage.COMPLETE and project.flow.edit_target is None:
                return self._reply(
                    session, text,
                    "Your project design is complete. Name a step to edit if you want to change something.",
                    project, warnings=warnings,
                )
            if not text:
                # nothing to act on; the project is left untouched
                return self._reply(session, text, f"I didn't catch that. {step_ask(project.step, project.data)}",
                                   project, warnings=warnings)

            outcome = self._decide(session, project, text)
            self.callbacks.on_strategy(outcome.strategy, outcome.step.value if outcome.step else None)

            try:
                preview = DesignStateMachine(project, min_phases=machine.min_phases).apply(outcome)
            except InvalidTransitionRequest as e:
                logger.error("Selected outcome cannot be applied: %s", e)
                self.callbacks.on_error(str(e))
                return self._reply(session, text, step_ask(project.step, project.data), project,
                                   warnings=warnings + [str(e)])

            context = PromptContext(
                stage=project.stage,
                step=project.step,
                strategy=outcome.strategy,
                instruction=build_instruction(outcome, text, preview.data),
                utterance=text,
                data=preview.data,
                history=self._window(session),
                profile=project.profile,
                request_prompts=outcome.request_prompts,
                outcome=outcome,
                next_stage=preview.stage,
                next_step=preview.step,
            )

            task = asyncio.ensure_future(self.backend.generate(context))
            session.inflight = task
            try:
                reply = await asyncio.wait_for(task, timeout=self.config.backend_timeout)
            except asyncio.CancelledError:
                if ticket != session.ticket:
                    logger.info("Turn on %s superseded by a newer utterance", project_id)
                    return self._superseded(machine)
                raise
            except asyncio.TimeoutError:
                logger.warning("Backend timed out after %ss", self.config.backend_timeout)
                reply = None
            except BackendUnavailable as e:
                logger.warning("Backend unavailable: %s", e)
                reply = None
            except Exception as e:
                # Adapters are not required to wrap their own failures.
                logger.warning("Backend unavailable: %s: %s", type(e).__name__, e)
                reply = None
            finally:
                if session.inflight is task:
                    session.inflight = None

            if ticket != session.ticket:
                return self._superseded(machine)

            display, suggestions = self._render(outcome, reply, preview, warnings)

            try:
                applied = machine.apply(outcome)
            except InvalidTransitionRequest as e:
                logger.error("Outcome rejected by state machine: %s", e)
                self.callbacks.on_error(str(e))
                current = machine.project
                return self._reply(session, text, step_ask(current.step, current.data), current,
                                   warnings=warnings + [str(e)])

            stage_changed = applied.stage != project.stage
            if stage_changed:
                self.callbacks.on_stage_complete(project.stage)
                if applied.stage != Stage.COMPLETE:
                    self.callbacks.on_stage_start(applied.stage, STAGE_TITLES[applied.stage])
                await self._save(session, applied, warnings)
            else:
                self._save_later(session, applied)

            return self._reply(
                session, text, display, applied,
                suggestions=suggestions,
                strategy=outcome.strategy,
                stage_complete=stage_changed,
                warnings=warnings,
            )

    async def edit(
        self,
        project_id: str,
        stage: Stage,
        step: StepId,
        index: int | None = None,
    ) -> EngineResponse:
        """Re-open a captured slot. Raises ``InvalidTransitionRequest`` if it cannot be edited."""
        session = self._session(project_id)
        self._supersede(session)
        warnings: list[str] = []
        async with session.lock:
            machine = await self._ensure_loaded(session, warnings=warnings)
            project = machine.request_edit(stage, step, index)
            await self._save(session, project, warnings)
            target = project.flow.edit_target
            which = f" #{target.index + 1}" if target and target.index is not None else ""
            text = f"Let's revisit the {STEP_LABELS[step]}{which}. What would you like it to be?"
            session.history.append(ConversationTurn(role=Role.ASSISTANT, text=text))
            return EngineResponse(
                displayText=text,
                currentStage=project.stage,
                currentStep=project.step,
                warnings=warnings,
            )

    async def flush(self) -> None:
        """Wait for every background save to finish."""
        pending = [t for s in self._sessions.values() for t in s.pending_saves]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -----------------------------------------------------------------------
    # Turn internals
    # -----------------------------------------------------------------------

    def _decide(self, session: _Session, project: Project, text: str) -> StrategyOutcome:
        classification = classify(text, session.last_assistant_turn())
        validation = None
        if not classification.skip_validation and project.step is not None:
            validation = validate(classification.proposed_value or text, project.step)
        outcome = select_strategy(
            project,
            text,
            classification,
            validation,
            help_nudge_threshold=self.config.help_nudge_threshold,
            coaching_prompt_count=self.config.coaching_prompt_count,
            min_phases=self.config.min_journey_phases,
        )
        logger.debug("Classified %r as %s; validation=%s; strategy=%s",
                     text, classification.model_dump(exclude_defaults=True),
                     validation.rule if validation else None, outcome.strategy.value)
        return outcome

    def _render(
        self,
        outcome: StrategyOutcome,
        reply: BackendReply | None,
        preview: Project,
        warnings: list[str],
    ) -> tuple[str, list[str] | None]:
        """Choose display text and suggestions, trusting the reply only if it checks out."""
        fallback = fallback_message(outcome, preview.data, next_stage=preview.stage, next_step=preview.step)
        if reply is None:
            return fallback, self._default_suggestions(outcome)

        logger.debug("Backend reply: %s", describe_reply(reply))
        try:
            self._check_patch(reply)
        except InvalidPatchFromBackend as e:
            logger.warning("%s", e)
            self._warn(warnings, "The coach's reply was replaced because it proposed invalid content.")
            return fallback, self._default_suggestions(outcome)

        if reply.proposedNextStep and reply.proposedNextStep != (preview.step.value if preview.step else None):
            logger.info("Ignoring backend step hint %r; next step is %s", reply.proposedNextStep, preview.step)
        stage_done = preview.stage != outcome.stage
        if reply.stageComplete is not None and reply.stageComplete != stage_done:
            logger.info("Ignoring backend stageComplete=%s; stage complete is %s", reply.stageComplete, stage_done)

        text = reply.displayText.strip() or fallback
        if outcome.strategy == Strategy.OFFER_REFINEMENT:
            return text, list(OFFER_CHOICES)
        if outcome.strategy in (Strategy.ACCEPT_AND_ADVANCE, Strategy.COMPLETE_STAGE):
            return text, None
        suggestions = [s.strip() for s in reply.suggestions or [] if s and s.strip()]
        return text, suggestions or self._default_suggestions(outcome)

    def _window(self, session: _Session) -> list[ConversationTurn]:
        n = self.config.history_window
        return list(session.history)[-n:] if n > 0 else []

    def _default_suggestions(self, outcome: StrategyOutcome) -> list[str] | None:
        if outcome.strategy == Strategy.OFFER_REFINEMENT:
            return list(OFFER_CHOICES)
        return None

    @staticmethod
    def _check_patch(reply: BackendReply) -> None:
        for slot, verdict in validate_patch(reply.proposedDataPatch).items():
            if not verdict.accepted:
                raise InvalidPatchFromBackend(slot, verdict.reason or "rejected")

    def _reply(
        self,
        session: _Session,
        utterance: str,
        display: str,
        project: Project,
        *,
        suggestions: list[str] | None = None,
        strategy: Strategy | None = None,
        stage_complete: bool = False,
        warnings: list[str] | None = None,
    ) -> EngineResponse:
        if utterance:
            session.history.append(ConversationTurn(role=Role.USER, text=utterance))
        session.history.append(ConversationTurn(role=Role.ASSISTANT, text=display, suggestions=suggestions))
        return EngineResponse(
            displayText=display,
            suggestions=suggestions,
            isStageComplete=stage_complete,
            currentStage=project.stage,
            currentStep=project.step,
            strategy=strategy,
            warnings=warnings or [],
        )

    @staticmethod
    def _superseded(machine: DesignStateMachine) -> EngineResponse:
        return EngineResponse(
            displayText="",
            currentStage=machine.stage,
            currentStep=machine.step,
            superseded=True,
        )

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    async def _save(self, session: _Session, project: Project, warnings: list[str] | None) -> None:
        async with session.save_lock:
            # a newer revision may already be on disk
            if project.revision <= session.saved_revision:
                return
            try:
                await asyncio.to_thread(self.store.save, project)
            except PersistenceFailure as e:
                logger.error("Save failed for %s: %s", project.project_id, e)
                self._warn(warnings, "Your latest progress could not be saved; it is kept in this session.")
                return
            session.saved_revision = project.revision

    def _save_later(self, session: _Session, project: Project) -> None:
        task = asyncio.ensure_future(self._save(session, project, None))
        session.pending_saves.add(task)
        task.add_done_callback(session.pending_saves.discard)

    def _warn(self, warnings: list[str] | None, message: str) -> None:
        self.callbacks.on_warning(message)
        if warnings is not None:
            warnings.append(message)
