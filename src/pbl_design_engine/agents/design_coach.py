"""DesignCoach: writes the educator-facing reply for one conversation turn."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import BackendReply, EngineConfig, ProjectProfile, Stage
from ..prompts import stage_prompt


def make_design_coach(
    config: EngineConfig,
    stage: Stage,
    profile: ProjectProfile | None = None,
) -> autogen.AssistantAgent:
    """Create the DesignCoach agent for *stage*."""
    prompt = stage_prompt(stage, profile)
    prompt += f"\nWhen asked for coaching prompts, give at most {config.coaching_prompt_count}.\n"

    agent = autogen.AssistantAgent(
        name="DesignCoach",
        system_message=prompt,
        llm_config=build_role_llm_config("coach", config),
    )
    agent.llm_config["response_format"] = BackendReply
    return agent
