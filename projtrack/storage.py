"""Storage layer for projtrack.

This module provides the storage contract the engine depends on and its
implementations:
- ProjectStorage: abstract synchronous contract
- AsyncProjectStorage: the same contract with coroutine methods
- JsonStorage: a single JSON document on disk, guarded by fcntl locks
- MemoryStorage: an in-process store for tests and embedding
- AsyncStorageAdapter: runs any ProjectStorage in a worker thread

Saves accept an ``expected`` mapping of project id to the ``updated_at``
the caller last read (``None`` meaning "must not exist yet"). A stored
version that differs raises ConflictError and nothing is written.
"""

import asyncio
import copy
import fcntl
import functools
import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from projtrack.config import load_settings
from projtrack.errors import ConflictError, PersistenceError
from projtrack.models import (
    Milestone,
    Priority,
    Project,
    ProjectStatus,
    Task,
    TaskPriority,
    TaskStatus,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
LABEL_KINDS = ("categories", "tags")

Expected = Optional[Mapping[str, Optional[datetime]]]


# ---------------------------------------------------------------------------
# JSON codec
# ---------------------------------------------------------------------------

def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "assigned_to": task.assigned_to,
        "due_date": _iso(task.due_date),
        "completed_at": _iso(task.completed_at),
        "weight": task.weight,
    }


def task_from_dict(data: Mapping[str, Any]) -> Task:
    return Task(
        id=data["id"],
        title=data["title"],
        description=data.get("description"),
        status=TaskStatus(data["status"]),
        priority=TaskPriority(data.get("priority") or TaskPriority.MEDIUM.value),
        assigned_to=data.get("assigned_to"),
        due_date=_parse_date(data.get("due_date")),
        completed_at=_parse_datetime(data.get("completed_at")),
        weight=data["weight"],
    )


def milestone_to_dict(milestone: Milestone) -> Dict[str, Any]:
    return {
        "id": milestone.id,
        "title": milestone.title,
        "description": milestone.description,
        "due_date": _iso(milestone.due_date),
        "completed_at": _iso(milestone.completed_at),
    }


def milestone_from_dict(data: Mapping[str, Any]) -> Milestone:
    return Milestone(
        id=data["id"],
        title=data["title"],
        description=data.get("description"),
        due_date=_parse_date(data["due_date"]),
        completed_at=_parse_datetime(data.get("completed_at")),
    )


def project_to_dict(project: Project) -> Dict[str, Any]:
    """Convert a project into a JSON-serializable dict."""
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "status": project.status.value,
        "priority": project.priority.value,
        "start_date": _iso(project.start_date),
        "due_date": _iso(project.due_date),
        "completed_at": _iso(project.completed_at),
        "category": project.category,
        "tags": list(project.tags),
        "tasks": [task_to_dict(t) for t in project.tasks],
        "milestones": [milestone_to_dict(m) for m in project.milestones],
        "team": list(project.team),
        "owner": project.owner,
        "notes": project.notes,
        "attachments": list(project.attachments),
        "budget": project.budget,
        "actual_cost": project.actual_cost,
        "progress": project.progress,
        "is_archived": project.is_archived,
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
    }


def project_from_dict(data: Mapping[str, Any]) -> Project:
    """Rebuild a project from its stored dict."""
    return Project(
        id=data["id"],
        title=data["title"],
        description=data.get("description", ""),
        status=ProjectStatus(data["status"]),
        priority=Priority(data["priority"]),
        start_date=_parse_date(data["start_date"]),
        due_date=_parse_date(data.get("due_date")),
        completed_at=_parse_datetime(data.get("completed_at")),
        category=data["category"],
        tags=list(data.get("tags", [])),
        tasks=[task_from_dict(t) for t in data.get("tasks", [])],
        milestones=[milestone_from_dict(m) for m in data.get("milestones", [])],
        team=list(data.get("team", [])),
        owner=data.get("owner", ""),
        notes=data.get("notes"),
        attachments=list(data.get("attachments", [])),
        budget=data.get("budget"),
        actual_cost=data.get("actual_cost"),
        progress=data.get("progress", 0),
        is_archived=data.get("is_archived", False),
        created_at=_parse_datetime(data["created_at"]),
        updated_at=_parse_datetime(data["updated_at"]),
    )


def _empty_document() -> Dict[str, Any]:
    return {"version": FORMAT_VERSION, "projects": {}, "categories": [], "tags": []}


def _check_expected(projects: Mapping[str, Mapping[str, Any]], expected: Expected) -> None:
    """Raise ConflictError if a stored version differs from ``expected``."""
    if not expected:
        return
    for project_id, version in expected.items():
        stored = projects.get(project_id)
        stored_version = _parse_datetime(stored["updated_at"]) if stored else None
        if stored_version != version:
            logger.warning(
                "Conflict on project %s: expected %s, stored %s",
                project_id, version, stored_version,
            )
            raise ConflictError(project_id, version, stored_version)


def _check_label_kind(kind: str) -> None:
    if kind not in LABEL_KINDS:
        raise ValueError(f"Unknown label kind {kind!r}, expected one of {LABEL_KINDS}")


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------

class ProjectStorage(ABC):
    """Abstract base class for project storage implementations."""

    @abstractmethod
    def load_all(self) -> List[Project]:
        """Load every stored project.

        Raises:
            PersistenceError: If the backend cannot be read
        """
        pass

    def load_by_id(self, project_id: str) -> Optional[Project]:
        """Load one project, or None if it is not stored."""
        return next((p for p in self.load_all() if p.id == project_id), None)

    @abstractmethod
    def save_all(self, projects: List[Project], expected: Expected = None) -> None:
        """Replace the stored collection with ``projects``.

        Raises:
            ConflictError: If a version in ``expected`` does not match
            PersistenceError: If the backend cannot be written
        """
        pass

    @abstractmethod
    def save(self, project: Project, expected: Expected = None) -> None:
        """Insert or replace a single project."""
        pass

    @abstractmethod
    def save_many(self, projects: List[Project], expected: Expected = None) -> None:
        """Insert or replace ``projects``; other stored projects are kept.

        The version check and the write happen together, so either every
        project is written or none is.
        """
        pass

    @abstractmethod
    def delete(self, project_id: str, expected: Expected = None) -> bool:
        """Remove a project. Returns False if it was not stored."""
        pass

    @abstractmethod
    def load_labels(self, kind: str) -> List[str]:
        """Load the registered names for ``kind`` ("categories" or "tags")."""
        pass

    @abstractmethod
    def save_labels(self, kind: str, names: List[str]) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete all data from storage."""
        pass


class AsyncProjectStorage(ABC):
    """Coroutine flavour of ProjectStorage for asynchronous backends."""

    @abstractmethod
    async def load_all(self) -> List[Project]:
        pass

    async def load_by_id(self, project_id: str) -> Optional[Project]:
        projects = await self.load_all()
        return next((p for p in projects if p.id == project_id), None)

    @abstractmethod
    async def save_all(self, projects: List[Project], expected: Expected = None) -> None:
        pass

    @abstractmethod
    async def save(self, project: Project, expected: Expected = None) -> None:
        pass

    @abstractmethod
    async def save_many(self, projects: List[Project], expected: Expected = None) -> None:
        pass

    @abstractmethod
    async def delete(self, project_id: str, expected: Expected = None) -> bool:
        pass

    @abstractmethod
    async def load_labels(self, kind: str) -> List[str]:
        pass

    @abstractmethod
    async def save_labels(self, kind: str, names: List[str]) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------

class MemoryStorage(ProjectStorage):
    """In-memory storage keeping serialized copies of each project.

    Projects are stored as dicts so callers never share objects with the
    store, matching what a round-trip through JsonStorage gives them.
    """

    def __init__(self) -> None:
        self._document = _empty_document()

    def load_all(self) -> List[Project]:
        return [project_from_dict(d) for d in self._document["projects"].values()]

    def load_by_id(self, project_id: str) -> Optional[Project]:
        data = self._document["projects"].get(project_id)
        return project_from_dict(data) if data else None

    def save_all(self, projects: List[Project], expected: Expected = None) -> None:
        _check_expected(self._document["projects"], expected)
        self._document["projects"] = {p.id: project_to_dict(p) for p in projects}

    def save(self, project: Project, expected: Expected = None) -> None:
        _check_expected(self._document["projects"], expected)
        self._document["projects"][project.id] = project_to_dict(project)

    def save_many(self, projects: List[Project], expected: Expected = None) -> None:
        _check_expected(self._document["projects"], expected)
        for project in projects:
            self._document["projects"][project.id] = project_to_dict(project)

    def delete(self, project_id: str, expected: Expected = None) -> bool:
        if project_id not in self._document["projects"]:
            return False
        _check_expected(self._document["projects"], expected)
        del self._document["projects"][project_id]
        return True

    def load_labels(self, kind: str) -> List[str]:
        _check_label_kind(kind)
        return list(self._document[kind])

    def save_labels(self, kind: str, names: List[str]) -> None:
        _check_label_kind(kind)
        self._document[kind] = list(names)

    def clear(self) -> None:
        self._document = _empty_document()


class JsonStorage(ProjectStorage):
    """JSON file-based storage implementation with file locking.

    The whole collection lives in one document. Reads take a shared
    fcntl lock; every write is a read-check-write cycle under a single
    exclusive lock so version checks and the write are atomic with
    respect to other processes using the same file.

    Attributes:
        file_path: Path to the JSON storage file
    """

    def __init__(self, file_path: Optional[str] = None):
        """Initialize JsonStorage with a file path.

        Args:
            file_path: Path to the JSON file for storage. If None, uses
                      the PROJTRACK_DB_PATH setting
        """
        if file_path is None:
            file_path = load_settings().db_path
        self.file_path = Path(file_path)

    @staticmethod
    def _decode(content: str) -> Dict[str, Any]:
        if not content.strip():
            return _empty_document()
        data = json.loads(content)
        document = _empty_document()
        document.update(data)
        return document

    def _read(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            return _empty_document()
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    return self._decode(f.read())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read %s: %s", self.file_path, exc)
            raise PersistenceError(f"cannot read {self.file_path}: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[Dict[str, Any]]:
        """Yield the current document and write it back on clean exit."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "a+", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.seek(0)
                    document = self._decode(f.read())
                    yield document
                    f.seek(0)
                    f.truncate()
                    json.dump(document, f, indent=2, ensure_ascii=False)
                    f.flush()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to write %s: %s", self.file_path, exc)
            raise PersistenceError(f"cannot write {self.file_path}: {exc}") from exc

    def _decode_project(self, data: Mapping[str, Any]) -> Project:
        try:
            return project_from_dict(data)
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            project_id = data.get("id", "?") if isinstance(data, Mapping) else "?"
            logger.warning("Malformed project %s in %s: %r", project_id, self.file_path, exc)
            raise PersistenceError(
                f"cannot decode project {project_id} in {self.file_path}: {exc!r}"
            ) from exc

    def load_all(self) -> List[Project]:
        document = self._read()
        return [self._decode_project(d) for d in document["projects"].values()]

    def load_by_id(self, project_id: str) -> Optional[Project]:
        data = self._read()["projects"].get(project_id)
        return self._decode_project(data) if data else None

    def save_all(self, projects: List[Project], expected: Expected = None) -> None:
        with self._transaction() as document:
            _check_expected(document["projects"], expected)
            document["projects"] = {p.id: project_to_dict(p) for p in projects}

    def save(self, project: Project, expected: Expected = None) -> None:
        with self._transaction() as document:
            _check_expected(document["projects"], expected)
            document["projects"][project.id] = project_to_dict(project)

    def save_many(self, projects: List[Project], expected: Expected = None) -> None:
        with self._transaction() as document:
            _check_expected(document["projects"], expected)
            for project in projects:
                document["projects"][project.id] = project_to_dict(project)

    def delete(self, project_id: str, expected: Expected = None) -> bool:
        with self._transaction() as document:
            if project_id not in document["projects"]:
                return False
            _check_expected(document["projects"], expected)
            del document["projects"][project_id]
            return True

    def load_labels(self, kind: str) -> List[str]:
        _check_label_kind(kind)
        return list(self._read()[kind])

    def save_labels(self, kind: str, names: List[str]) -> None:
        _check_label_kind(kind)
        with self._transaction() as document:
            document[kind] = list(names)

    def clear(self) -> None:
        """Delete the JSON storage file.

        If the file doesn't exist, this method does nothing.
        """
        try:
            if self.file_path.exists():
                self.file_path.unlink()
        except OSError as exc:
            raise PersistenceError(f"cannot delete {self.file_path}: {exc}") from exc


class AsyncStorageAdapter(AsyncProjectStorage):
    """Expose a synchronous ProjectStorage through the async contract."""

    def __init__(self, storage: ProjectStorage):
        self.storage = storage

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def load_all(self) -> List[Project]:
        return await self._run(self.storage.load_all)

    async def load_by_id(self, project_id: str) -> Optional[Project]:
        return await self._run(self.storage.load_by_id, project_id)

    async def save_all(self, projects: List[Project], expected: Expected = None) -> None:
        await self._run(self.storage.save_all, copy.deepcopy(projects), expected)

    async def save(self, project: Project, expected: Expected = None) -> None:
        await self._run(self.storage.save, copy.deepcopy(project), expected)

    async def save_many(self, projects: List[Project], expected: Expected = None) -> None:
        await self._run(self.storage.save_many, copy.deepcopy(projects), expected)

    async def delete(self, project_id: str, expected: Expected = None) -> bool:
        return await self._run(self.storage.delete, project_id, expected)

    async def load_labels(self, kind: str) -> List[str]:
        return await self._run(self.storage.load_labels, kind)

    async def save_labels(self, kind: str, names: List[str]) -> None:
        await self._run(self.storage.save_labels, kind, list(names))

    async def clear(self) -> None:
        await self._run(self.storage.clear)
