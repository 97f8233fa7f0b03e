"""Lifecycle rules for projects, tasks and milestones.

Every function here takes a project and returns the project as it should
be persisted after the change. The input project is never modified: work
happens on a copy, so a rule that raises leaves the caller's object as it
was. Functions that detect nothing to change return the input object
itself, which callers use to skip the save.

All rules share the same post-conditions:
- ``progress`` equals ``compute_progress(project.tasks)``
- ``completed_at`` is set exactly when the entity's status denotes
  completion
- ``updated_at`` is ``now`` whenever something changed
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Mapping

from projtrack.errors import NotFoundError, ValidationError
from projtrack.models import (
    DEFAULT_CATEGORY,
    EDITABLE_PROJECT_FIELDS,
    ENGINE_PROJECT_FIELDS,
    MILESTONE_FIELDS,
    TASK_FIELDS,
    Milestone,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    coerce_enum,
    coerce_project_field,
    milestone_from_data,
    task_from_data,
    validate_project,
)
from projtrack.progress import compute_progress

logger = logging.getLogger(__name__)


def reconcile_task(task: Task, now: datetime) -> Task:
    """Derive ``completed_at`` from the task's status."""
    if task.status == TaskStatus.DONE:
        if task.completed_at is None:
            task.completed_at = now
    else:
        task.completed_at = None
    return task


def reconcile_project_completion(project: Project, now: datetime) -> Project:
    """Derive ``completed_at`` from the project's status."""
    if project.status == ProjectStatus.COMPLETED:
        if project.completed_at is None:
            project.completed_at = now
    else:
        project.completed_at = None
    return project


def order_milestones(project: Project) -> None:
    project.milestones.sort(key=lambda m: m.due_date)


def _finish(project: Project, now: datetime) -> Project:
    """Recompute derived fields, validate and stamp a changed project."""
    project.progress = compute_progress(project.tasks)
    validate_project(project)
    project.updated_at = now
    return project


def _check_unique(items, field_name: str) -> None:
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValidationError(field_name, f"duplicate id {item.id}")
        seen.add(item.id)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def build_project(data: Mapping[str, Any], now: datetime) -> Project:
    """Create a new project from caller data.

    Engine-owned fields (id, timestamps, progress, completed_at) in
    ``data`` are ignored.

    Raises:
        ValidationError: If the title is empty, start_date is missing or
            any other field is malformed
    """
    if not isinstance(data, Mapping):
        raise ValidationError("project", f"must be a mapping, got {type(data).__name__}")

    if "start_date" not in data or data["start_date"] is None:
        raise ValidationError("start_date", "is required")

    values: Dict[str, Any] = {}
    for name, value in data.items():
        if name in ENGINE_PROJECT_FIELDS:
            continue
        values[name] = coerce_project_field(name, value)
    if "title" not in values:
        raise ValidationError("title", "must not be empty")

    project = Project(
        created_at=now,
        updated_at=now,
        **values,
    )
    _check_unique(project.tasks, "task.id")
    _check_unique(project.milestones, "milestone.id")
    for task in project.tasks:
        reconcile_task(task, now)
    order_milestones(project)
    reconcile_project_completion(project, now)
    return _finish(project, now)


def apply_update(project: Project, changes: Mapping[str, Any], now: datetime) -> Project:
    """Merge ``changes`` into a project.

    Engine-owned fields are silently ignored. Replacing ``tasks`` or
    ``milestones`` re-derives their completion timestamps and, for tasks,
    the project's progress.

    Raises:
        ValidationError: On an unknown field or malformed value
    """
    values: Dict[str, Any] = {}
    for name, value in changes.items():
        if name in ENGINE_PROJECT_FIELDS:
            logger.debug("Ignoring engine-owned field %s on project %s", name, project.id)
            continue
        if name not in EDITABLE_PROJECT_FIELDS:
            raise ValidationError(name, "is not a known field")
        values[name] = coerce_project_field(name, value)

    if not values:
        return project

    updated = copy.deepcopy(project)
    for name, value in values.items():
        setattr(updated, name, value)

    if "tasks" in values:
        _check_unique(updated.tasks, "task.id")
        for task in updated.tasks:
            reconcile_task(task, now)
    if "milestones" in values:
        _check_unique(updated.milestones, "milestone.id")
        order_milestones(updated)
    reconcile_project_completion(updated, now)
    return _finish(updated, now)


def apply_archived(project: Project, archived: bool, now: datetime) -> Project:
    """Set ``is_archived``; a project already in that state is returned as-is."""
    if project.is_archived == archived:
        return project
    updated = copy.deepcopy(project)
    updated.is_archived = archived
    return _finish(updated, now)


def apply_status(project: Project, status: Any, now: datetime) -> Project:
    """Move a project to ``status``.

    Entering COMPLETED stamps ``completed_at``; leaving it clears the
    stamp. Progress stays task-derived. Setting the current status again
    returns the project unchanged.
    """
    status = coerce_enum(ProjectStatus, status, "status")
    if project.status == status:
        return project
    updated = copy.deepcopy(project)
    updated.status = status
    reconcile_project_completion(updated, now)
    return _finish(updated, now)


def apply_reassign_category(project: Project, category: str, now: datetime) -> Project:
    updated = copy.deepcopy(project)
    updated.category = category or DEFAULT_CATEGORY
    return _finish(updated, now)


def apply_strip_tag(project: Project, tag: str, now: datetime) -> Project:
    if tag not in project.tags:
        return project
    updated = copy.deepcopy(project)
    updated.tags = [t for t in updated.tags if t != tag]
    return _finish(updated, now)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def _require_task(project: Project, task_id: str) -> Task:
    task = project.find_task(task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    return task


def apply_add_task(project: Project, task_data: Any, now: datetime) -> Project:
    task = task_from_data(task_data)
    if project.find_task(task.id) is not None:
        raise ValidationError("task.id", f"duplicate task id {task.id}")
    reconcile_task(task, now)

    updated = copy.deepcopy(project)
    updated.tasks.append(task)
    return _finish(updated, now)


def apply_update_task(
    project: Project, task_id: str, changes: Mapping[str, Any], now: datetime
) -> Project:
    """Merge ``changes`` into one task.

    ``completed_at`` is always re-derived from the resulting status, even
    when the status itself did not change. ``id`` and ``completed_at`` in
    ``changes`` are ignored.
    """
    current = _require_task(project, task_id)
    merged = {name: getattr(current, name) for name in TASK_FIELDS}
    for name, value in changes.items():
        if name in ("id", "completed_at"):
            continue
        if name not in TASK_FIELDS:
            raise ValidationError(f"task.{name}", "is not a known field")
        merged[name] = value

    task = reconcile_task(task_from_data(merged), now)

    updated = copy.deepcopy(project)
    updated.tasks = [task if t.id == task_id else t for t in updated.tasks]
    return _finish(updated, now)


def apply_toggle_task(project: Project, task_id: str, now: datetime) -> Project:
    """Flip a task between DONE and TODO."""
    task = _require_task(project, task_id)
    status = TaskStatus.TODO if task.status == TaskStatus.DONE else TaskStatus.DONE
    return apply_update_task(project, task_id, {"status": status}, now)


def apply_remove_task(project: Project, task_id: str, now: datetime) -> Project:
    _require_task(project, task_id)
    updated = copy.deepcopy(project)
    updated.tasks = [t for t in updated.tasks if t.id != task_id]
    return _finish(updated, now)


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

def _require_milestone(project: Project, milestone_id: str) -> Milestone:
    milestone = project.find_milestone(milestone_id)
    if milestone is None:
        raise NotFoundError("milestone", milestone_id)
    return milestone


def apply_add_milestone(project: Project, milestone_data: Any, now: datetime) -> Project:
    milestone = milestone_from_data(milestone_data)
    if project.find_milestone(milestone.id) is not None:
        raise ValidationError("milestone.id", f"duplicate milestone id {milestone.id}")

    updated = copy.deepcopy(project)
    updated.milestones.append(milestone)
    order_milestones(updated)
    return _finish(updated, now)


def apply_update_milestone(
    project: Project, milestone_id: str, changes: Mapping[str, Any], now: datetime
) -> Project:
    """Merge ``changes`` into one milestone.

    ``completed_at`` may be given to complete (a timestamp, or ``True`` for
    now) or reopen (``None`` or ``False``) the milestone.
    """
    current = _require_milestone(project, milestone_id)
    merged = {name: getattr(current, name) for name in MILESTONE_FIELDS}
    for name, value in changes.items():
        if name == "id":
            continue
        if name not in MILESTONE_FIELDS:
            raise ValidationError(f"milestone.{name}", "is not a known field")
        if name == "completed_at" and isinstance(value, bool):
            value = now if value else None
        merged[name] = value

    milestone = milestone_from_data(merged)

    updated = copy.deepcopy(project)
    updated.milestones = [
        milestone if m.id == milestone_id else m for m in updated.milestones
    ]
    order_milestones(updated)
    return _finish(updated, now)


def apply_milestone_completion(
    project: Project, milestone_id: str, completed: bool, now: datetime
) -> Project:
    """Complete or reopen a milestone; no change returns the project as-is."""
    milestone = _require_milestone(project, milestone_id)
    if milestone.is_completed == completed:
        return project
    return apply_update_milestone(project, milestone_id, {"completed_at": completed}, now)


def apply_remove_milestone(project: Project, milestone_id: str, now: datetime) -> Project:
    _require_milestone(project, milestone_id)
    updated = copy.deepcopy(project)
    updated.milestones = [m for m in updated.milestones if m.id != milestone_id]
    return _finish(updated, now)
