"""CLI entry point using Hydra.

Usage examples:
  pbl-engine mode=chat project_id=water-unit
  pbl-engine mode=chat project_id=water-unit backend=offline subject=Science age_group="Grades 6-8"
  pbl-engine mode=classify utterance="I'm not sure, any suggestions?"
  pbl-engine mode=validate step=milestones utterance="Students research local history"
  pbl-engine mode=show project_id=water-unit
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .classifier import classify
from .config import apply_azure_fallbacks
from .errors import InvalidTransitionRequest, PersistenceFailure, ValidationRejection
from .logging_config import RichCallbacks, console, print_response, setup_logging
from .models import EngineConfig, ProjectProfile, StepId
from .stages import stage_of
from .validator import ensure_valid, validate

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic EngineConfig bridge
# ---------------------------------------------------------------------------


def _to_engine_config(cfg: DictConfig) -> EngineConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``EngineConfig``.

    CLI-only keys (``mode``, ``verbose``, etc.) are stripped before validation.
    Azure credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = EngineConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _parse_step(text: str) -> StepId:
    """Accept a step id in any case (``bigidea``, ``bigIdea``)."""
    for step in StepId:
        if step.value.lower() == text.strip().lower():
            return step
    raise ValueError(f"Unknown step {text!r}. Choose from: {', '.join(s.value for s in StepId)}")


def _profile(cfg: DictConfig) -> ProjectProfile | None:
    subject = cfg.get("subject") or ""
    age_group = cfg.get("age_group") or ""
    if not subject and not age_group:
        return None
    return ProjectProfile(subject=subject, age_group=age_group)


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


async def _chat_loop(config: EngineConfig, project_id: str, profile: ProjectProfile | None) -> None:
    from .engine import ConversationEngine

    engine = ConversationEngine(config, callbacks=RichCallbacks())
    print_response(await engine.start(project_id, profile))
    console.print("[dim]Type 'edit <step> [n]' to revisit a slot, 'show' for the design, 'quit' to leave.[/]")

    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold green]You:[/] ")
        except (EOFError, KeyboardInterrupt):
            break
        command = line.strip()
        if command.lower() in ("quit", "exit"):
            break

        if command.lower() == "show":
            ctx = engine.context(project_id)
            if ctx is not None:
                console.print_json(ctx.model_dump_json())
            continue

        if command.lower().startswith("edit "):
            parts = command.split()
            try:
                step = _parse_step(parts[1])
                index = int(parts[2]) - 1 if len(parts) > 2 else None
                response = await engine.edit(project_id, stage_of(step), step, index)
            except (ValueError, InvalidTransitionRequest) as e:
                console.print(f"[red]{e}[/]")
                continue
            print_response(response)
            continue

        response = await engine.handle(project_id, line)
        print_response(response)

    await engine.flush()
    console.print("[dim]Session saved. Goodbye.[/]")


def _chat_mode(cfg: DictConfig) -> None:
    config = _to_engine_config(cfg)
    asyncio.run(_chat_loop(config, cfg.project_id, _profile(cfg)))


def _classify_mode(cfg: DictConfig) -> None:
    utterance = cfg.get("utterance") or ""
    result = classify(utterance)
    console.print_json(result.model_dump_json())


def _validate_mode(cfg: DictConfig) -> None:
    utterance = cfg.get("utterance") or ""
    try:
        step = _parse_step(cfg.get("step", "bigIdea"))
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    console.print_json(validate(utterance, step).model_dump_json())
    try:
        ensure_valid(utterance, step)
    except ValidationRejection as e:
        console.print(f"[bold red]Rejected for {e.step}[/]: {e.reason}")
        sys.exit(1)
    console.print(f"[bold green]Accepted for {step.value}[/]")


def _show_mode(cfg: DictConfig) -> None:
    config = _to_engine_config(cfg)

    from .persistence import JsonProjectStore
    from .state_machine import DesignStateMachine

    store = JsonProjectStore(Path(config.store_dir), retries=config.save_retries)
    try:
        project = store.load(cfg.project_id)
    except PersistenceFailure as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)
    if project is None:
        console.print(f"[red]No saved project {cfg.project_id!r} in {config.store_dir}[/]")
        sys.exit(1)

    ctx = DesignStateMachine(project, min_phases=config.min_journey_phases).current_context()
    console.print_json(ctx.model_dump_json())


_MODE_DISPATCH: dict[str, Any] = {
    "chat": _chat_mode,
    "classify": _classify_mode,
    "validate": _validate_mode,
    "show": _show_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "chat")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
