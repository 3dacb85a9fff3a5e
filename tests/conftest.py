"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from pbl_design_engine.models import (
    EngineConfig,
    Milestone,
    Phase,
    Project,
    Stage,
    StepId,
    StructuredData,
)
from pbl_design_engine.persistence import MemoryProjectStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"

BIG_IDEA = "Water shapes how communities grow and change"
ESSENTIAL_QUESTION = "How might our town prepare for rising floods?"
CHALLENGE = "Students design a flood preparedness plan for the city council"
PHASE_1 = "Research & Investigation"
PHASE_2 = "Design and build flood models"
ACTIVITY = "Teams interview local experts and document their findings in field notes"
RESOURCE = "Local water engineers as expert mentors"
MILESTONE = "Research Report"
DESCRIPTION = "A written report shared with community members at the town hall meeting"
ASSESSMENT = "Expert feedback on final proposals plus a reflection journal"


def ideation_done() -> StructuredData:
    data = StructuredData()
    data.ideation.bigIdea = BIG_IDEA
    data.ideation.essentialQuestion = ESSENTIAL_QUESTION
    data.ideation.challenge = CHALLENGE
    return data


def journey_done() -> StructuredData:
    data = ideation_done()
    data.journey.phases = [Phase(name=PHASE_1, activities=ACTIVITY), Phase(name=PHASE_2, activities=ACTIVITY)]
    data.journey.resources = [RESOURCE]
    return data


def all_done() -> StructuredData:
    data = journey_done()
    data.deliverables.milestones = [Milestone(title=MILESTONE, description=DESCRIPTION)]
    data.deliverables.assessmentMethods = [ASSESSMENT]
    return data


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(backend="offline", backend_timeout=2.0, store_dir=str(tmp_path / "projects"))


@pytest.fixture
def store() -> MemoryProjectStore:
    return MemoryProjectStore()


@pytest.fixture
def fresh_project() -> Project:
    return Project(project_id="p1")


@pytest.fixture
def milestones_project() -> Project:
    """A project sitting at the Deliverables milestone step."""
    return Project(project_id="p1", stage=Stage.DELIVERABLES, step=StepId.MILESTONES, data=journey_done())


@pytest.fixture
def complete_project() -> Project:
    return Project(project_id="done", stage=Stage.COMPLETE, step=None, data=all_done(), revision=30)
