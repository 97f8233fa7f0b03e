"""Filtering and sorting over a collection of projects.

Both entry points are pure: they never modify the input sequence or the
projects in it, and always return a new list.
"""

import locale
import unicodedata
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from projtrack.errors import ValidationError
from projtrack.models import (
    Priority,
    Project,
    ProjectStatus,
    coerce_date,
    coerce_enum,
)


class SortField(Enum):
    """Fields a project collection can be sorted by."""

    TITLE = "title"
    DUE_DATE = "due_date"
    START_DATE = "start_date"
    PRIORITY = "priority"
    STATUS = "status"
    PROGRESS = "progress"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


# Higher rank sorts later in ascending order.
PRIORITY_RANK = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}
STATUS_RANK = {
    ProjectStatus.CANCELED: 1,
    ProjectStatus.COMPLETED: 2,
    ProjectStatus.DELAYED: 3,
    ProjectStatus.IN_PROGRESS: 4,
    ProjectStatus.PLANNING: 5,
}


@dataclass
class DateRange:
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class ProjectFilter:
    """Filter criteria; every given criterion must match (AND).

    List criteria match when the project has any of the listed values;
    an empty list or None leaves that criterion out.

    Attributes:
        status: Allowed project statuses
        category: Allowed category names
        priority: Allowed priorities
        tags: Project must carry at least one of these tags
        team: Project team must include at least one of these members
        date_range: start_date lower bound and due_date upper bound;
            projects without a due date are not excluded by the upper bound
        search_term: Case-insensitive substring of title, description or
            any tag
        include_archived: Archived projects are dropped unless True
    """

    status: Optional[List[ProjectStatus]] = None
    category: Optional[List[str]] = None
    priority: Optional[List[Priority]] = None
    tags: Optional[List[str]] = None
    team: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    search_term: Optional[str] = None
    include_archived: bool = False

    def __post_init__(self) -> None:
        if self.status:
            self.status = [coerce_enum(ProjectStatus, s, "status") for s in self.status]
        if self.priority:
            self.priority = [coerce_enum(Priority, p, "priority") for p in self.priority]
        if self.date_range is not None:
            self.date_range = DateRange(
                start_date=coerce_date(self.date_range.start_date, "date_range.start_date"),
                end_date=coerce_date(self.date_range.end_date, "date_range.end_date"),
            )


@dataclass
class SortOption:
    field: SortField = SortField.CREATED_AT
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        self.field = _coerce_choice(SortField, self.field, "sort.field")
        self.direction = _coerce_choice(SortDirection, self.direction, "sort.direction")


def _coerce_choice(enum_type, value: Any, field_name: str):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ValidationError(field_name, f"must be one of: {allowed} (got {value!r})") from None


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _matches_search(project: Project, term: str) -> bool:
    needle = term.casefold()
    haystacks = [project.title, project.description or ""] + list(project.tags)
    return any(needle in text.casefold() for text in haystacks)


def _matches_date_range(project: Project, date_range: DateRange) -> bool:
    if date_range.start_date is not None and project.start_date < date_range.start_date:
        return False
    if (
        date_range.end_date is not None
        and project.due_date is not None
        and project.due_date > date_range.end_date
    ):
        return False
    return True


def matches(project: Project, criteria: ProjectFilter) -> bool:
    """Return True if ``project`` satisfies every criterion."""
    if project.is_archived and not criteria.include_archived:
        return False
    if criteria.status and project.status not in criteria.status:
        return False
    if criteria.category and project.category not in criteria.category:
        return False
    if criteria.priority and project.priority not in criteria.priority:
        return False
    if criteria.tags and not set(criteria.tags) & set(project.tags):
        return False
    if criteria.team and not set(criteria.team) & set(project.team):
        return False
    if criteria.date_range is not None and not _matches_date_range(project, criteria.date_range):
        return False
    if criteria.search_term and not _matches_search(project, criteria.search_term):
        return False
    return True


def filter_projects(
    projects: Iterable[Project], criteria: Optional[ProjectFilter] = None
) -> List[Project]:
    """Return the projects matching ``criteria``, in input order.

    With no criteria this is the non-archived subset of ``projects``.
    """
    if criteria is None:
        criteria = ProjectFilter()
    return [p for p in projects if matches(p, criteria)]


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def _title_key(project: Project) -> Any:
    """Case- and accent-insensitive collation key, locale collation on top.

    The exact title breaks ties so ordering stays deterministic.
    """
    decomposed = unicodedata.normalize("NFKD", project.title.casefold())
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (locale.strxfrm(base), project.title)


SORT_KEYS: Dict[SortField, Callable[[Project], Any]] = {
    SortField.TITLE: _title_key,
    SortField.START_DATE: lambda p: p.start_date,
    SortField.PRIORITY: lambda p: PRIORITY_RANK[p.priority],
    SortField.STATUS: lambda p: STATUS_RANK[p.status],
    SortField.PROGRESS: lambda p: p.progress,
    SortField.CREATED_AT: lambda p: p.created_at,
    SortField.UPDATED_AT: lambda p: p.updated_at,
    SortField.DUE_DATE: lambda p: p.due_date,
}


def sort_projects(
    projects: Sequence[Project], option: Optional[SortOption] = None
) -> List[Project]:
    """Return a stably sorted copy of ``projects``.

    Descending order reverses the comparison only; projects without a due
    date stay after all dated projects in either direction when sorting
    by due date.
    """
    if option is None:
        option = SortOption()
    key = SORT_KEYS[option.field]
    reverse = option.direction == SortDirection.DESC

    if option.field == SortField.DUE_DATE:
        dated = [p for p in projects if p.due_date is not None]
        undated = [p for p in projects if p.due_date is None]
        return sorted(dated, key=key, reverse=reverse) + undated

    return sorted(projects, key=key, reverse=reverse)
