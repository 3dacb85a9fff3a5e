"""Exception taxonomy for the design engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class ValidationRejection(EngineError):
    """An utterance failed its step's rules. Recoverable; surfaced as coaching."""

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(f"{step}: {reason}")
        self.step = step
        self.reason = reason


class BackendUnavailable(EngineError):
    """The generative backend failed, timed out, or returned something unusable."""


class InvalidPatchFromBackend(EngineError):
    """The backend proposed a data patch that fails step validation."""

    def __init__(self, slot: str, reason: str) -> None:
        super().__init__(f"Rejected backend patch for {slot!r}: {reason}")
        self.slot = slot
        self.reason = reason


class PersistenceFailure(EngineError):
    """Load or save against the project store failed. Non-fatal."""


class InvalidTransitionRequest(EngineError):
    """A transition the state machine refuses; state is left unchanged."""
