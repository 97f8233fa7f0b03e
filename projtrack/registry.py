"""Category and tag registries layered on project storage.

A registry keeps a list of known names next to the projects. Names in use
by projects are listed even when nobody registered them. Removing a name
also detaches it from every project that uses it: categories fall back to
the default category and tags are stripped.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from projtrack.errors import ValidationError
from projtrack.lifecycle import apply_reassign_category, apply_strip_tag
from projtrack.models import DEFAULT_CATEGORY, Project
from projtrack.storage import ProjectStorage

logger = logging.getLogger(__name__)


class LabelRegistry(ABC):
    """Set maintenance for one kind of project label.

    Subclasses define which projects use a name and how to detach it.
    """

    kind: str = ""

    def __init__(
        self,
        storage: ProjectStorage,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.clock = clock or datetime.now

    @abstractmethod
    def _names_in_use(self, project: Project) -> List[str]:
        pass

    @abstractmethod
    def _detach(self, project: Project, name: str, now: datetime) -> Project:
        pass

    @staticmethod
    def _clean(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", "must not be empty")
        return name.strip()

    def _registered(self) -> List[str]:
        return self.storage.load_labels(self.kind)

    def list(self) -> List[str]:
        """Return registered names plus names in use, sorted."""
        names = set(self._registered())
        for project in self.storage.load_all():
            names.update(self._names_in_use(project))
        return sorted(names)

    def add(self, name: str) -> bool:
        """Register ``name``. Returns False if it was already registered."""
        name = self._clean(name)
        registered = self._registered()
        if name in registered:
            return False
        self.storage.save_labels(self.kind, registered + [name])
        logger.info("Added %s %r", self.kind, name)
        return True

    def remove(self, name: str) -> int:
        """Detach ``name`` from projects, then unregister it.

        Only the projects that carry ``name`` are written, each checked
        against the version read here. On ConflictError nothing has been
        written and ``name`` stays registered.

        Returns:
            Number of projects that were changed
        """
        name = self._clean(name)

        now = self.clock()
        expected = {}
        changed = []
        for project in self.storage.load_all():
            if name in self._names_in_use(project):
                expected[project.id] = project.updated_at
                changed.append(self._detach(project, name, now))

        if changed:
            self.storage.save_many(changed, expected=expected)

        registered = self._registered()
        if name in registered:
            self.storage.save_labels(self.kind, [n for n in registered if n != name])
        logger.info("Removed %s %r from %d project(s)", self.kind, name, len(changed))
        return len(changed)


class CategoryRegistry(LabelRegistry):
    """Categories; the default category is always present and cannot be removed."""

    kind = "categories"

    def _names_in_use(self, project: Project) -> List[str]:
        return [project.category]

    def _detach(self, project: Project, name: str, now: datetime) -> Project:
        return apply_reassign_category(project, DEFAULT_CATEGORY, now)

    def list(self) -> List[str]:
        names = [n for n in super().list() if n != DEFAULT_CATEGORY]
        return [DEFAULT_CATEGORY] + names

    def add(self, name: str) -> bool:
        if self._clean(name) == DEFAULT_CATEGORY:
            return False
        return super().add(name)

    def remove(self, name: str) -> int:
        if self._clean(name) == DEFAULT_CATEGORY:
            raise ValidationError("name", "the default category cannot be removed")
        return super().remove(name)


class TagRegistry(LabelRegistry):
    kind = "tags"

    def _names_in_use(self, project: Project) -> List[str]:
        return list(project.tags)

    def _detach(self, project: Project, name: str, now: datetime) -> Project:
        return apply_strip_tag(project, name, now)
