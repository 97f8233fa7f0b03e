"""Core models for projtrack.

This module defines the data structures of the project engine:
- Project: A project made of weighted tasks and dated milestones
- Task: A weighted unit of work owned by a project
- Milestone: A dated checkpoint owned by a project
- ProjectStatus, TaskStatus, Priority, TaskPriority: closed enumerations

It also holds the validation predicates and the coercion helpers used at
the engine boundary to turn raw caller values (strings, ISO dates) into
model values.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Type, TypeVar

from projtrack.errors import ValidationError

DEFAULT_CATEGORY = "general"
MIN_WEIGHT = 1
MAX_WEIGHT = 100


class ProjectStatus(Enum):
    """Project lifecycle status."""

    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    DELAYED = "delayed"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.COMPLETED, ProjectStatus.CANCELED)


class TaskStatus(Enum):
    """Task completion status."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Priority(Enum):
    """Project priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskPriority(Enum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Task:
    """A weighted unit of work inside a project.

    Attributes:
        id: Identifier, unique within the owning project
        title: Non-empty task title
        status: TODO, IN_PROGRESS or DONE
        weight: Share of the project's progress, 1-100
        completed_at: Set exactly while status is DONE
    """

    title: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    weight: int = 1


@dataclass
class Milestone:
    """A dated checkpoint inside a project.

    A milestone is completed exactly when ``completed_at`` is set.
    """

    title: str
    due_date: date
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class Project:
    """A project composed of weighted tasks and dated milestones.

    Attributes:
        id: Unique identifier assigned on creation, never reassigned
        title: Non-empty project title
        status: Lifecycle status
        priority: Project priority
        start_date: Date work starts (required)
        due_date: Optional deadline
        completed_at: Set exactly while status is COMPLETED
        category: Category name, DEFAULT_CATEGORY when not given
        tags: Tag names; order carries no meaning
        tasks: Tasks in insertion order
        milestones: Milestones ordered by due date
        team: Member identifiers
        progress: Derived 0-100 value, recomputed from tasks on every
            task mutation
        is_archived: Soft-hidden from default queries
        created_at: Creation timestamp, immutable
        updated_at: Bumped on every mutation
    """

    title: str
    start_date: date
    id: str = field(default_factory=new_id)
    description: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    category: str = DEFAULT_CATEGORY
    tags: List[str] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)
    team: List[str] = field(default_factory=list)
    owner: str = ""
    notes: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    budget: Optional[float] = None
    actual_cost: Optional[float] = None
    progress: int = 0
    is_archived: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_milestone(self, milestone_id: str) -> Optional[Milestone]:
        return next((m for m in self.milestones if m.id == milestone_id), None)


# ---------------------------------------------------------------------------
# Boundary coercion
# ---------------------------------------------------------------------------

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_type: Type[E], value: Any, field_name: str) -> E:
    """Return ``value`` as a member of ``enum_type``.

    Accepts a member or its string value (case-insensitive).

    Raises:
        ValidationError: If the value is not a member of the enumeration
    """
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        try:
            return enum_type(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_type)
    raise ValidationError(field_name, f"must be one of: {allowed} (got {value!r})")


def coerce_date(value: Any, field_name: str) -> Optional[date]:
    """Return ``value`` as a ``date``; ``None`` passes through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(field_name, f"is not a valid date: {value!r}")


def coerce_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """Return ``value`` as a ``datetime``; ``None`` passes through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(field_name, f"is not a valid timestamp: {value!r}")


def coerce_weight(value: Any, field_name: str = "weight") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field_name, f"must be an integer, got {value!r}")
    if not MIN_WEIGHT <= value <= MAX_WEIGHT:
        raise ValidationError(
            field_name, f"must be between {MIN_WEIGHT} and {MAX_WEIGHT}, got {value}"
        )
    return value


def _coerce_names(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not hasattr(value, "__iter__"):
        raise ValidationError(field_name, "must be a list of strings")
    names = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(field_name, f"contains a non-string value {item!r}")
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names


def coerce_tags(value: Any) -> List[str]:
    return _coerce_names(value, "tags")


def coerce_team(value: Any) -> List[str]:
    return _coerce_names(value, "team")


def _coerce_amount(value: Any, field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field_name, f"must be a number, got {value!r}")
    return float(value)


def _require_title(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field_name, "must not be empty")
    return value.strip()


TASK_FIELDS = (
    "id", "title", "description", "status", "priority",
    "assigned_to", "due_date", "completed_at", "weight",
)
MILESTONE_FIELDS = ("id", "title", "description", "due_date", "completed_at")


def _reject_unknown(data: dict, allowed, prefix: str) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(f"{prefix}.{unknown[0]}", "is not a known field")


def task_from_data(data: Any) -> Task:
    """Build a Task from a mapping or copy an existing Task.

    The returned task's ``completed_at`` is not yet reconciled with its
    status; lifecycle code does that.
    """
    if isinstance(data, Task):
        data = {name: getattr(data, name) for name in TASK_FIELDS}
    if not isinstance(data, dict):
        raise ValidationError("task", f"must be a mapping, got {type(data).__name__}")
    _reject_unknown(data, TASK_FIELDS, "task")

    task = Task(
        title=_require_title(data.get("title"), "task.title"),
        description=data.get("description"),
        status=coerce_enum(TaskStatus, data.get("status", TaskStatus.TODO), "task.status"),
        priority=coerce_enum(
            TaskPriority, data.get("priority") or TaskPriority.MEDIUM, "task.priority"
        ),
        assigned_to=data.get("assigned_to"),
        due_date=coerce_date(data.get("due_date"), "task.due_date"),
        completed_at=coerce_datetime(data.get("completed_at"), "task.completed_at"),
        weight=coerce_weight(data.get("weight", MIN_WEIGHT), "task.weight"),
    )
    if data.get("id"):
        task.id = str(data["id"])
    return task


def milestone_from_data(data: Any) -> Milestone:
    """Build a Milestone from a mapping or copy an existing Milestone."""
    if isinstance(data, Milestone):
        data = {name: getattr(data, name) for name in MILESTONE_FIELDS}
    if not isinstance(data, dict):
        raise ValidationError(
            "milestone", f"must be a mapping, got {type(data).__name__}"
        )
    _reject_unknown(data, MILESTONE_FIELDS, "milestone")

    due_date = coerce_date(data.get("due_date"), "milestone.due_date")
    if due_date is None:
        raise ValidationError("milestone.due_date", "is required")

    milestone = Milestone(
        title=_require_title(data.get("title"), "milestone.title"),
        due_date=due_date,
        description=data.get("description"),
        completed_at=coerce_datetime(data.get("completed_at"), "milestone.completed_at"),
    )
    if data.get("id"):
        milestone.id = str(data["id"])
    return milestone


# Fields a caller may set on a project; everything else is engine-owned.
EDITABLE_PROJECT_FIELDS = (
    "title", "description", "status", "priority", "start_date", "due_date",
    "category", "tags", "tasks", "milestones", "team", "owner", "notes",
    "attachments", "budget", "actual_cost", "is_archived",
)
ENGINE_PROJECT_FIELDS = ("id", "created_at", "updated_at", "progress", "completed_at")


def coerce_project_field(name: str, value: Any) -> Any:
    """Coerce one editable project field to its model type.

    Raises:
        ValidationError: If the name is unknown or the value is malformed
    """
    if name == "title":
        return _require_title(value, "title")
    if name == "description":
        return "" if value is None else str(value)
    if name == "status":
        return coerce_enum(ProjectStatus, value, "status")
    if name == "priority":
        return coerce_enum(Priority, value, "priority")
    if name == "start_date":
        start = coerce_date(value, "start_date")
        if start is None:
            raise ValidationError("start_date", "is required")
        return start
    if name == "due_date":
        return coerce_date(value, "due_date")
    if name == "category":
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_CATEGORY
        if not isinstance(value, str):
            raise ValidationError("category", f"must be a string, got {value!r}")
        return value.strip()
    if name == "tags":
        return coerce_tags(value)
    if name == "team":
        return coerce_team(value)
    if name == "attachments":
        return _coerce_names(value, "attachments")
    if name == "tasks":
        return [task_from_data(item) for item in (value or [])]
    if name == "milestones":
        return [milestone_from_data(item) for item in (value or [])]
    if name == "owner":
        return "" if value is None else str(value)
    if name == "notes":
        return value
    if name in ("budget", "actual_cost"):
        return _coerce_amount(value, name)
    if name == "is_archived":
        return bool(value)
    raise ValidationError(name, "is not a known field")


# ---------------------------------------------------------------------------
# Validation predicates
# ---------------------------------------------------------------------------

def validate_task(task: Task) -> None:
    _require_title(task.title, "task.title")
    coerce_weight(task.weight, "task.weight")


def validate_milestone(milestone: Milestone) -> None:
    _require_title(milestone.title, "milestone.title")
    if not isinstance(milestone.due_date, date):
        raise ValidationError("milestone.due_date", "is required")


def validate_project(project: Project) -> None:
    """Check that a project may be persisted.

    Raises:
        ValidationError: Naming the first violated field
    """
    _require_title(project.title, "title")
    if not isinstance(project.start_date, date):
        raise ValidationError("start_date", "is required")

    seen = set()
    for task in project.tasks:
        validate_task(task)
        if task.id in seen:
            raise ValidationError("task.id", f"duplicate task id {task.id}")
        seen.add(task.id)

    seen = set()
    for milestone in project.milestones:
        validate_milestone(milestone)
        if milestone.id in seen:
            raise ValidationError("milestone.id", f"duplicate milestone id {milestone.id}")
        seen.add(milestone.id)

    for name in ("budget", "actual_cost"):
        amount = getattr(project, name)
        if amount is not None and amount < 0:
            raise ValidationError(name, "must not be negative")


def is_valid_project(project: Project) -> bool:
    try:
        validate_project(project)
    except ValidationError:
        return False
    return True
