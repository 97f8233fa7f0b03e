"""Rollup statistics over a collection of projects."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from projtrack.config import DEFAULT_UPCOMING_DAYS
from projtrack.models import Priority, Project, ProjectStatus


@dataclass
class ProjectStatistics:
    """Counts and derived metrics for a set of projects.

    Attributes:
        total: Number of projects
        active: Number of non-archived projects
        by_status: Count per status, every status present
        average_progress: Mean progress of non-archived, non-terminal
            projects, rounded to an integer; 0 when there are none
        high_priority: HIGH and URGENT projects
        medium_priority: MEDIUM projects
        low_priority: LOW projects
        upcoming_deadlines: Non-archived, non-terminal projects due
            within the next ``upcoming_days`` calendar days, today included
            (today through today + 6 for the default of 7)
        overdue_projects: Non-archived, non-terminal projects due before
            today
    """

    total: int = 0
    active: int = 0
    by_status: Dict[ProjectStatus, int] = field(
        default_factory=lambda: {status: 0 for status in ProjectStatus}
    )
    average_progress: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
    upcoming_deadlines: int = 0
    overdue_projects: int = 0


def aggregate(
    projects: Iterable[Project],
    now: Optional[datetime] = None,
    upcoming_days: int = DEFAULT_UPCOMING_DAYS,
) -> ProjectStatistics:
    """Compute statistics for ``projects``.

    ``now`` is read once, so every project in a call is measured against
    the same instant.
    """
    today = (now or datetime.now()).date()
    # the window holds upcoming_days calendar days, today included
    horizon = today + timedelta(days=upcoming_days - 1)

    stats = ProjectStatistics()
    progress_sum = 0
    progress_count = 0

    for project in projects:
        stats.total += 1
        stats.by_status[project.status] += 1

        if project.priority in (Priority.HIGH, Priority.URGENT):
            stats.high_priority += 1
        elif project.priority == Priority.MEDIUM:
            stats.medium_priority += 1
        else:
            stats.low_priority += 1

        if project.is_archived:
            continue
        stats.active += 1

        if project.status.is_terminal:
            continue
        progress_sum += project.progress
        progress_count += 1

        if project.due_date is None:
            continue
        if project.due_date < today:
            stats.overdue_projects += 1
        elif project.due_date <= horizon:
            stats.upcoming_deadlines += 1

    if progress_count:
        stats.average_progress = (2 * progress_sum + progress_count) // (2 * progress_count)
    return stats
