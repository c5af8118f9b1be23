"""
Project registry stored in projects.json.

    {"projects": [{"id", "title", "description", "folder"?, "paused",
                   "createdAt", "updatedAt"}]}

The scheduler only reads it (list_active, working_dir). create and
set_paused exist for the CLI.
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, StorageError
from ..models import Project

logger = logging.getLogger(__name__)


class ProjectRegistry:
    """File-backed project registry."""

    def __init__(self, projects_file: Path, projects_dir: Path):
        self.projects_file = projects_file
        self.projects_dir = projects_dir
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        if not self.projects_file.exists():
            return []
        try:
            data = json.loads(self.projects_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self.projects_file}: {e}")
        return data.get("projects", []) if isinstance(data, dict) else []

    def _save(self, projects: List[Dict[str, Any]]) -> None:
        try:
            self.projects_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.projects_file.with_suffix(".json.tmp")
            tmp.write_text(json.dumps({"projects": projects}, indent=2), encoding="utf-8")
            os.replace(tmp, self.projects_file)
        except OSError as e:
            raise StorageError(f"Could not write {self.projects_file}: {e}")

    def _to_project(self, raw: Dict[str, Any]) -> Project:
        folder = raw.get("folder")
        working_dir = Path(os.path.expanduser(folder)) if folder else self.projects_dir / raw["id"]
        return Project(
            id=raw["id"],
            working_dir=working_dir,
            paused=bool(raw.get("paused", False)),
            title=raw.get("title", ""),
        )

    def list_all(self) -> List[Project]:
        with self._lock:
            raw = self._load()
        return [self._to_project(p) for p in raw if p.get("id")]

    def list_active(self) -> List[Project]:
        """Projects the scheduler should scan (not paused)."""
        return [p for p in self.list_all() if not p.paused]

    def get(self, project_id: str) -> Project:
        for project in self.list_all():
            if project.id == project_id:
                return project
        raise NotFoundError(f"Project not found: {project_id}")

    def working_dir(self, project_id: str) -> Path:
        return self.get(project_id).working_dir

    def create(
        self,
        title: str,
        description: str = "",
        folder: Optional[Path] = None,
    ) -> Project:
        now = datetime.now().isoformat()
        raw = {
            "id": str(uuid.uuid4()),
            "title": title or "Untitled Project",
            "description": description,
            "paused": False,
            "createdAt": now,
            "updatedAt": now,
        }
        if folder:
            raw["folder"] = str(folder)

        with self._lock:
            projects = self._load()
            projects.append(raw)
            self._save(projects)

        project = self._to_project(raw)
        project.working_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created project {project.id} ({project.title})")
        return project

    def set_paused(self, project_id: str, paused: bool) -> Project:
        with self._lock:
            projects = self._load()
            for raw in projects:
                if raw.get("id") == project_id:
                    raw["paused"] = paused
                    raw["updatedAt"] = datetime.now().isoformat()
                    self._save(projects)
                    return self._to_project(raw)
        raise NotFoundError(f"Project not found: {project_id}")
