"""Hydra structured config dataclasses.

These mirror the Pydantic ``EngineConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``EngineConfig`` via
``cli._to_engine_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "gpt-5.2"
    coach: str | None = None
    overrides: dict[str, Any] = field(default_factory=dict)


@dataclass
class EngineConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "chat"
    verbose: bool = False
    quiet: bool = False
    project_id: str = "default"
    utterance: str = ""
    step: str = "bigIdea"
    subject: str = ""
    age_group: str = ""

    # --- EngineConfig fields (1:1 mapping) ---
    project_name: str = "pbl-design"

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)
    timeout: int = 120
    seed: int = 42

    backend: str = "autogen"
    backend_timeout: float = 60.0

    history_window: int = 6
    help_nudge_threshold: int = 2
    coaching_prompt_count: int = 3
    min_journey_phases: int = 2

    store_dir: str = "projects/"
    save_retries: int = 2


# Keys present in EngineConf that are NOT part of EngineConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "verbose", "quiet", "project_id", "utterance", "step", "subject", "age_group",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="engine_schema", node=EngineConf)
