"""Progress calculation for projects.

Progress is the weighted share of completed tasks, as a whole percentage.
"""

from typing import Iterable

from projtrack.models import Task, TaskStatus


def compute_progress(tasks: Iterable[Task]) -> int:
    """Compute a completion percentage from task weights and statuses.

    Args:
        tasks: Tasks of a single project, in any order

    Returns:
        Integer in [0, 100]; 0 when the total weight is zero
    """
    total_weight = 0
    completed_weight = 0
    for task in tasks:
        total_weight += task.weight
        if task.status == TaskStatus.DONE:
            completed_weight += task.weight

    if total_weight <= 0:
        return 0

    # round-half-up of 100 * completed / total, in integers
    return (200 * completed_weight + total_weight) // (2 * total_weight)
