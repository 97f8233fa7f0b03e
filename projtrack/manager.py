"""Project manager: the engine's entry point for callers.

ProjectManager provides high-level operations over a ProjectStorage. Each
mutating operation loads the project, applies a lifecycle rule, and saves
the result with an optimistic version check against the ``updated_at``
it loaded. Nothing is considered updated unless the save succeeded.

AsyncProjectManager offers the same lifecycle operations over an
AsyncProjectStorage, awaiting load and save in sequence.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from projtrack import lifecycle
from projtrack.config import DEFAULT_UPCOMING_DAYS
from projtrack.errors import NotFoundError, PersistenceError
from projtrack.models import Project, ProjectStatus
from projtrack.query import ProjectFilter, SortOption, filter_projects, sort_projects
from projtrack.registry import CategoryRegistry, TagRegistry
from projtrack.stats import ProjectStatistics, aggregate
from projtrack.storage import AsyncProjectStorage, JsonStorage, ProjectStorage

logger = logging.getLogger(__name__)

Rule = Callable[[Project, datetime], Project]


class ProjectManager:
    """Lifecycle operations over a project storage backend.

    Attributes:
        storage: Storage backend for persisting projects
        clock: Callable returning the current time
        categories: Category registry over the same storage
        tags: Tag registry over the same storage
    """

    def __init__(
        self,
        storage: Optional[ProjectStorage] = None,
        clock: Optional[Callable[[], datetime]] = None,
        upcoming_days: int = DEFAULT_UPCOMING_DAYS,
    ):
        """Initialize ProjectManager with a storage backend.

        Args:
            storage: Storage implementation to use. If None, uses JsonStorage
                    with the configured file path.
            clock: Time source; defaults to datetime.now
            upcoming_days: Horizon used by statistics() for upcoming deadlines
        """
        self.storage = storage or JsonStorage()
        self.clock = clock or datetime.now
        self.upcoming_days = upcoming_days
        self.categories = CategoryRegistry(self.storage, self.clock)
        self.tags = TagRegistry(self.storage, self.clock)

    # -- storage access --

    def _load(self, project_id: str) -> Project:
        try:
            project = self.storage.load_by_id(project_id)
        except OSError as exc:
            raise PersistenceError(f"cannot load project {project_id}: {exc}") from exc
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def _save(self, project: Project, expected_version: Optional[datetime]) -> None:
        try:
            self.storage.save(project, expected={project.id: expected_version})
        except OSError as exc:
            raise PersistenceError(f"cannot save project {project.id}: {exc}") from exc

    def _mutate(self, project_id: str, rule: Rule) -> Project:
        project = self._load(project_id)
        updated = rule(project, self.clock())
        if updated is project:
            logger.debug("Project %s already up to date", project_id)
            return project
        self._save(updated, project.updated_at)
        return updated

    # -- read paths --

    def get_project(self, project_id: str) -> Project:
        """Get a project by ID.

        Raises:
            NotFoundError: If the project does not exist
        """
        return self._load(project_id)

    def list_projects(
        self,
        criteria: Optional[ProjectFilter] = None,
        sort: Optional[SortOption] = None,
    ) -> List[Project]:
        """Load all projects, then filter and sort them."""
        return sort_projects(filter_projects(self.storage.load_all(), criteria), sort)

    def statistics(self, include_archived: bool = True) -> ProjectStatistics:
        projects = self.storage.load_all()
        if not include_archived:
            projects = [p for p in projects if not p.is_archived]
        return aggregate(projects, now=self.clock(), upcoming_days=self.upcoming_days)

    # -- projects --

    def create_project(self, data: Mapping[str, Any]) -> Project:
        """Create a project with a fresh id, timestamps and derived progress.

        Raises:
            ValidationError: If title is empty or start_date is missing
        """
        project = lifecycle.build_project(data, self.clock())
        self._save(project, None)
        logger.info("Created project %s (%s)", project.id, project.title)
        return project

    def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        project = self._mutate(
            project_id, lambda p, now: lifecycle.apply_update(p, changes, now)
        )
        logger.info("Updated project %s", project_id)
        return project

    def delete_project(self, project_id: str) -> bool:
        """Delete a project.

        Returns:
            True if the project was deleted, False if it didn't exist
        """
        try:
            deleted = self.storage.delete(project_id)
        except OSError as exc:
            raise PersistenceError(f"cannot delete project {project_id}: {exc}") from exc
        if deleted:
            logger.info("Deleted project %s", project_id)
        else:
            logger.debug("Project %s already absent", project_id)
        return deleted

    def archive_project(self, project_id: str) -> Project:
        return self._mutate(
            project_id, lambda p, now: lifecycle.apply_archived(p, True, now)
        )

    def unarchive_project(self, project_id: str) -> Project:
        return self._mutate(
            project_id, lambda p, now: lifecycle.apply_archived(p, False, now)
        )

    def set_project_status(self, project_id: str, status: Any) -> Project:
        project = self._mutate(
            project_id, lambda p, now: lifecycle.apply_status(p, status, now)
        )
        logger.info("Project %s is now %s", project_id, project.status.value)
        return project

    def complete_project(self, project_id: str) -> Project:
        """Mark a project completed. Its tasks are left as they are."""
        return self.set_project_status(project_id, ProjectStatus.COMPLETED)

    # -- tasks --

    def add_task(self, project_id: str, task_data: Any) -> Project:
        return self._mutate(
            project_id, lambda p, now: lifecycle.apply_add_task(p, task_data, now)
        )

    def update_task(
        self, project_id: str, task_id: str, changes: Mapping[str, Any]
    ) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_update_task(p, task_id, changes, now),
        )

    def toggle_task(self, project_id: str, task_id: str) -> Project:
        return self._mutate(
            project_id, lambda p, now: lifecycle.apply_toggle_task(p, task_id, now)
        )

    def remove_task(self, project_id: str, task_id: str) -> Project:
        return self._mutate(
            project_id, lambda p, now: lifecycle.apply_remove_task(p, task_id, now)
        )

    # -- milestones --

    def add_milestone(self, project_id: str, milestone_data: Any) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_add_milestone(p, milestone_data, now),
        )

    def update_milestone(
        self, project_id: str, milestone_id: str, changes: Mapping[str, Any]
    ) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_update_milestone(p, milestone_id, changes, now),
        )

    def complete_milestone(self, project_id: str, milestone_id: str) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_milestone_completion(p, milestone_id, True, now),
        )

    def reopen_milestone(self, project_id: str, milestone_id: str) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_milestone_completion(p, milestone_id, False, now),
        )

    def remove_milestone(self, project_id: str, milestone_id: str) -> Project:
        return self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_remove_milestone(p, milestone_id, now),
        )

    # -- registries --

    def list_categories(self) -> List[str]:
        return self.categories.list()

    def add_category(self, name: str) -> bool:
        return self.categories.add(name)

    def remove_category(self, name: str) -> int:
        return self.categories.remove(name)

    def list_tags(self) -> List[str]:
        return self.tags.list()

    def add_tag(self, name: str) -> bool:
        return self.tags.add(name)

    def remove_tag(self, name: str) -> int:
        return self.tags.remove(name)


class AsyncProjectManager:
    """ProjectManager counterpart for asynchronous storage backends."""

    def __init__(
        self,
        storage: AsyncProjectStorage,
        clock: Optional[Callable[[], datetime]] = None,
        upcoming_days: int = DEFAULT_UPCOMING_DAYS,
    ):
        self.storage = storage
        self.clock = clock or datetime.now
        self.upcoming_days = upcoming_days

    async def _load(self, project_id: str) -> Project:
        try:
            project = await self.storage.load_by_id(project_id)
        except OSError as exc:
            raise PersistenceError(f"cannot load project {project_id}: {exc}") from exc
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _save(self, project: Project, expected_version: Optional[datetime]) -> None:
        try:
            await self.storage.save(project, expected={project.id: expected_version})
        except OSError as exc:
            raise PersistenceError(f"cannot save project {project.id}: {exc}") from exc

    async def _mutate(self, project_id: str, rule: Rule) -> Project:
        project = await self._load(project_id)
        updated = rule(project, self.clock())
        if updated is project:
            logger.debug("Project %s already up to date", project_id)
            return project
        await self._save(updated, project.updated_at)
        return updated

    async def get_project(self, project_id: str) -> Project:
        return await self._load(project_id)

    async def list_projects(
        self,
        criteria: Optional[ProjectFilter] = None,
        sort: Optional[SortOption] = None,
    ) -> List[Project]:
        projects = await self.storage.load_all()
        return sort_projects(filter_projects(projects, criteria), sort)

    async def statistics(self) -> ProjectStatistics:
        projects = await self.storage.load_all()
        return aggregate(projects, now=self.clock(), upcoming_days=self.upcoming_days)

    async def create_project(self, data: Mapping[str, Any]) -> Project:
        project = lifecycle.build_project(data, self.clock())
        await self._save(project, None)
        logger.info("Created project %s (%s)", project.id, project.title)
        return project

    async def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_update(p, changes, now)
        )

    async def delete_project(self, project_id: str) -> bool:
        try:
            deleted = await self.storage.delete(project_id)
        except OSError as exc:
            raise PersistenceError(f"cannot delete project {project_id}: {exc}") from exc
        if deleted:
            logger.info("Deleted project %s", project_id)
        else:
            logger.debug("Project %s already absent", project_id)
        return deleted

    async def archive_project(self, project_id: str) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_archived(p, True, now)
        )

    async def unarchive_project(self, project_id: str) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_archived(p, False, now)
        )

    async def set_project_status(self, project_id: str, status: Any) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_status(p, status, now)
        )

    async def add_task(self, project_id: str, task_data: Any) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_add_task(p, task_data, now)
        )

    async def update_task(
        self, project_id: str, task_id: str, changes: Mapping[str, Any]
    ) -> Project:
        return await self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_update_task(p, task_id, changes, now),
        )

    async def remove_task(self, project_id: str, task_id: str) -> Project:
        return await self._mutate(
            project_id, lambda p, now: lifecycle.apply_remove_task(p, task_id, now)
        )

    async def add_milestone(self, project_id: str, milestone_data: Any) -> Project:
        return await self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_add_milestone(p, milestone_data, now),
        )

    async def update_milestone(
        self, project_id: str, milestone_id: str, changes: Mapping[str, Any]
    ) -> Project:
        return await self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_update_milestone(p, milestone_id, changes, now),
        )

    async def remove_milestone(self, project_id: str, milestone_id: str) -> Project:
        return await self._mutate(
            project_id,
            lambda p, now: lifecycle.apply_remove_milestone(p, milestone_id, now),
        )
