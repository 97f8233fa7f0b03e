"""Comprehensive tests for ProjectManager."""

from datetime import date
from unittest.mock import patch

import pytest

from projtrack.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from projtrack.manager import ProjectManager
from projtrack.models import DEFAULT_CATEGORY, ProjectStatus, TaskStatus
from projtrack.query import ProjectFilter, SortField, SortOption
from projtrack.storage import MemoryStorage


class TestCreateProject:
    """Tests for create_project and the read paths."""

    def test_create_project_assigns_engine_fields(self, manager, project_data):
        project = manager.create_project(project_data)

        assert project.id
        assert project.created_at == project.updated_at
        assert project.progress == 0
        assert project.is_archived is False
        assert project.status == ProjectStatus.PLANNING

    def test_create_defaults_category(self, manager):
        project = manager.create_project({"title": "T", "start_date": "2026-01-01"})
        assert project.category == DEFAULT_CATEGORY

    def test_create_with_tasks_computes_progress(self, manager, project_data):
        project_data["tasks"] = [
            {"title": "A", "weight": 25, "status": "done"},
            {"title": "B", "weight": 75},
        ]
        project = manager.create_project(project_data)
        assert project.progress == 25

    def test_create_rejects_empty_title(self, manager):
        with pytest.raises(ValidationError) as exc_info:
            manager.create_project({"title": "", "start_date": "2026-01-01"})
        assert exc_info.value.field == "title"
        assert manager.storage.load_all() == []

    def test_create_rejects_missing_start_date(self, manager):
        with pytest.raises(ValidationError):
            manager.create_project({"title": "T"})

    def test_create_then_load_round_trip(self, manager, project_data):
        created = manager.create_project(project_data)
        loaded = manager.storage.load_by_id(created.id)

        assert loaded == created
        assert loaded.title == project_data["title"]
        assert loaded.tags == project_data["tags"]
        assert loaded.team == project_data["team"]
        assert loaded.due_date == project_data["due_date"]

    def test_create_multiple_projects_unique_ids(self, manager):
        ids = {
            manager.create_project({"title": f"P{i}", "start_date": "2026-01-01"}).id
            for i in range(5)
        }
        assert len(ids) == 5

    def test_get_project_not_found(self, manager):
        with pytest.raises(NotFoundError) as exc_info:
            manager.get_project("missing")
        assert exc_info.value.kind == "project"

    def test_list_projects_excludes_archived_by_default(self, manager):
        keep = manager.create_project({"title": "Keep", "start_date": "2026-01-01"})
        hide = manager.create_project({"title": "Hide", "start_date": "2026-01-01"})
        manager.archive_project(hide.id)

        assert [p.id for p in manager.list_projects()] == [keep.id]
        everything = manager.list_projects(ProjectFilter(include_archived=True))
        assert len(everything) == 2

    def test_list_projects_sorted(self, manager):
        manager.create_project({"title": "b", "start_date": "2026-01-01"})
        manager.create_project({"title": "a", "start_date": "2026-01-01"})

        projects = manager.list_projects(sort=SortOption(SortField.TITLE))
        assert [p.title for p in projects] == ["a", "b"]


class TestUpdateAndDelete:
    def test_update_project_bumps_updated_at(self, manager, project_data):
        project = manager.create_project(project_data)
        updated = manager.update_project(project.id, {"title": "Renamed"})

        assert updated.title == "Renamed"
        assert updated.updated_at > project.updated_at
        assert updated.created_at == project.created_at
        assert manager.get_project(project.id).title == "Renamed"

    def test_update_project_ignores_id_and_created_at(self, manager, project_data):
        project = manager.create_project(project_data)
        updated = manager.update_project(
            project.id, {"id": "hijack", "created_at": "2000-01-01T00:00:00"}
        )

        assert updated.id == project.id
        assert updated.created_at == project.created_at

    def test_update_missing_project(self, manager):
        with pytest.raises(NotFoundError):
            manager.update_project("missing", {"title": "x"})

    def test_delete_project(self, manager, project_data):
        project = manager.create_project(project_data)

        assert manager.delete_project(project.id) is True
        with pytest.raises(NotFoundError):
            manager.get_project(project.id)

    def test_delete_absent_project_returns_false(self, manager):
        assert manager.delete_project("missing") is False


class TestArchiveAndStatus:
    def test_archive_twice_keeps_updated_at(self, manager, project_data):
        project = manager.create_project(project_data)
        first = manager.archive_project(project.id)
        second = manager.archive_project(project.id)

        assert first.is_archived is True
        assert second.is_archived is True
        assert second.updated_at == first.updated_at

    def test_archive_does_not_change_status_or_progress(self, manager, project_data):
        project = manager.create_project(project_data)
        archived = manager.archive_project(project.id)

        assert archived.status == project.status
        assert archived.progress == project.progress

    def test_unarchive(self, manager, project_data):
        project = manager.create_project(project_data)
        manager.archive_project(project.id)
        restored = manager.unarchive_project(project.id)
        assert restored.is_archived is False

    def test_set_status_completed_keeps_task_progress(self, manager, project_data):
        project = manager.create_project(project_data)
        manager.add_task(project.id, {"title": "A", "weight": 50})
        completed = manager.set_project_status(project.id, "completed")

        assert completed.status == ProjectStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.progress == 0

    def test_complete_project_with_no_tasks(self, manager, project_data):
        project = manager.create_project(project_data)
        completed = manager.complete_project(project.id)

        assert completed.status == ProjectStatus.COMPLETED
        assert completed.progress == 0

    def test_leaving_completed_clears_completed_at(self, manager, project_data):
        project = manager.create_project(project_data)
        manager.complete_project(project.id)
        reopened = manager.set_project_status(project.id, ProjectStatus.IN_PROGRESS)
        assert reopened.completed_at is None

    def test_set_same_status_is_noop(self, manager, project_data):
        project = manager.create_project(project_data)
        again = manager.set_project_status(project.id, "planning")
        assert again.updated_at == project.updated_at


class TestTasksAndMilestones:
    """Tests for task and milestone operations."""

    @pytest.fixture
    def project(self, manager, project_data):
        return manager.create_project(project_data)

    def test_add_task_updates_progress(self, manager, project):
        updated = manager.add_task(project.id, {"title": "A", "weight": 40, "status": "done"})
        updated = manager.add_task(project.id, {"title": "B", "weight": 60})

        assert updated.progress == 40
        assert manager.get_project(project.id).progress == 40

    def test_update_task_to_done(self, manager, project):
        project = manager.add_task(project.id, {"title": "A", "weight": 10})
        task_id = project.tasks[0].id

        updated = manager.update_task(project.id, task_id, {"status": "done"})
        task = updated.find_task(task_id)
        assert task.status == TaskStatus.DONE
        assert task.completed_at is not None
        assert updated.progress == 100

    def test_toggle_task_back_to_todo(self, manager, project):
        project = manager.add_task(project.id, {"title": "A", "status": "done"})
        task_id = project.tasks[0].id

        updated = manager.toggle_task(project.id, task_id)
        assert updated.find_task(task_id).status == TaskStatus.TODO
        assert updated.find_task(task_id).completed_at is None
        assert updated.progress == 0

    def test_remove_task(self, manager, project):
        project = manager.add_task(project.id, {"title": "A"})
        updated = manager.remove_task(project.id, project.tasks[0].id)
        assert updated.tasks == []

    def test_update_unknown_task(self, manager, project):
        with pytest.raises(NotFoundError) as exc_info:
            manager.update_task(project.id, "missing", {"status": "done"})
        assert exc_info.value.kind == "task"

    def test_task_on_unknown_project(self, manager):
        with pytest.raises(NotFoundError):
            manager.add_task("missing", {"title": "A"})

    def test_invalid_task_is_not_saved(self, manager, project):
        with pytest.raises(ValidationError):
            manager.add_task(project.id, {"title": "A", "weight": 0})
        assert manager.get_project(project.id).tasks == []

    def test_milestone_lifecycle(self, manager, project):
        project = manager.add_milestone(project.id, {"title": "Beta", "due_date": "2026-04-01"})
        milestone_id = project.milestones[0].id

        done = manager.complete_milestone(project.id, milestone_id)
        assert done.find_milestone(milestone_id).is_completed
        assert done.progress == project.progress

        reopened = manager.reopen_milestone(project.id, milestone_id)
        assert not reopened.find_milestone(milestone_id).is_completed

        renamed = manager.update_milestone(project.id, milestone_id, {"title": "Public beta"})
        assert renamed.find_milestone(milestone_id).title == "Public beta"

        removed = manager.remove_milestone(project.id, milestone_id)
        assert removed.milestones == []


class TestFailures:
    """Tests for persistence failures and concurrent writes."""

    def test_save_failure_leaves_stored_project_unchanged(self, manager, project_data):
        project = manager.create_project(project_data)

        with patch.object(
            manager.storage, "save", side_effect=PersistenceError("disk full")
        ):
            with pytest.raises(PersistenceError):
                manager.update_project(project.id, {"title": "Lost"})

        assert manager.get_project(project.id).title == project_data["title"]

    def test_os_error_surfaces_as_persistence_error(self, manager, project_data):
        project = manager.create_project(project_data)

        with patch.object(manager.storage, "load_by_id", side_effect=OSError("gone")):
            with pytest.raises(PersistenceError):
                manager.archive_project(project.id)

    def test_stale_write_raises_conflict(self, clock, project_data):
        storage = MemoryStorage()
        first = ProjectManager(storage, clock=clock)
        project = first.create_project(project_data)

        stale = storage.load_by_id(project.id)
        first.update_project(project.id, {"title": "Newer"})

        stale.title = "Older"
        with pytest.raises(ConflictError) as exc_info:
            storage.save(stale, expected={stale.id: stale.updated_at})
        assert exc_info.value.project_id == project.id
        assert storage.load_by_id(project.id).title == "Newer"

    def test_create_conflicts_with_existing_id(self, manager, project_data):
        project = manager.create_project(project_data)
        with pytest.raises(ConflictError):
            manager.storage.save(project, expected={project.id: None})


class TestRegistries:
    def test_category_registry_through_manager(self, manager, project_data):
        project = manager.create_project(project_data)
        assert manager.add_category("research") is True
        assert manager.list_categories() == [DEFAULT_CATEGORY, "engineering", "research"]

        assert manager.remove_category("engineering") == 1
        assert manager.get_project(project.id).category == DEFAULT_CATEGORY

    def test_tag_registry_through_manager(self, manager, project_data):
        project = manager.create_project(project_data)
        manager.add_tag("later")
        assert manager.list_tags() == ["later", "q2", "web"]

        assert manager.remove_tag("web") == 1
        assert manager.get_project(project.id).tags == ["q2"]


class TestStatistics:
    def test_statistics_uses_manager_clock(self, manager):
        manager.create_project(
            {"title": "Due soon", "start_date": "2026-03-01", "due_date": date(2026, 3, 11)}
        )
        manager.create_project(
            {"title": "Late", "start_date": "2026-01-01", "due_date": date(2026, 3, 1)}
        )

        stats = manager.statistics()
        assert stats.total == 2
        assert stats.upcoming_deadlines == 1
        assert stats.overdue_projects == 1
