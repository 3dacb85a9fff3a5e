"""Conversational stage-flow engine for project-based learning design."""

from .engine import ConversationEngine
from .models import EngineConfig, EngineResponse, Project, Stage, StepId, Strategy
from .state_machine import DesignStateMachine, new_project

__all__ = [
    "ConversationEngine",
    "DesignStateMachine",
    "EngineConfig",
    "EngineResponse",
    "Project",
    "Stage",
    "StepId",
    "Strategy",
    "new_project",
]

__version__ = "0.1.0"
