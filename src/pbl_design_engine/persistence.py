"""Project persistence.

Projects are stored whole, including their flow state, so a reloaded session
resumes exactly where it stopped (mid refinement offer included).
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .errors import PersistenceFailure
from .models import Project

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


class ProjectStore(Protocol):
    """Load and save whole projects by id. Implementations may block."""

    def load(self, project_id: str) -> Project | None: ...
    def save(self, project: Project) -> None: ...


class MemoryProjectStore:
    """Dict-backed store. Keeps serialized copies so callers cannot alias state."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, project_id: str) -> Project | None:
        raw = self._data.get(project_id)
        return Project.model_validate_json(raw) if raw is not None else None

    def save(self, project: Project) -> None:
        self._data[project.project_id] = project.model_dump_json()

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._data


class JsonProjectStore:
    """One ``<project_id>.json`` file per project under *root*."""

    def __init__(self, root: str | Path, *, retries: int = 2) -> None:
        self.root = Path(root)
        self.retries = max(0, retries)

    def path_for(self, project_id: str) -> Path:
        if not _SAFE_ID_RE.match(project_id):
            raise PersistenceFailure(f"Invalid project id: {project_id!r}")
        return self.root / f"{project_id}.json"

    def load(self, project_id: str) -> Project | None:
        path = self.path_for(project_id)
        if not path.exists():
            return None
        try:
            return Project.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceFailure(f"Could not load {path}: {e}") from e

    def save(self, project: Project) -> None:
        path = self.path_for(project.project_id)
        payload = project.model_dump_json(indent=2)

        last_error: OSError | None = None
        for attempt in range(self.retries + 1):
            try:
                self._write_atomic(path, payload)
                logger.debug("Saved %s (revision %d)", path, project.revision)
                return
            except OSError as e:
                last_error = e
                logger.warning("Save attempt %d/%d for %s failed: %s",
                               attempt + 1, self.retries + 1, path.name, e)
        raise PersistenceFailure(f"Could not save {path}: {last_error}") from last_error

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        """Write to a temp file in the same directory, then replace."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=f".{path.stem}_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def list_ids(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))
