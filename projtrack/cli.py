"""Command-line interface for projtrack.

This module provides a thin argparse front end over ProjectManager. It
supports the following commands:
- create: Create a new project
- list: List projects with optional filters and sorting
- show: Show one project with its tasks and milestones
- status: Change a project's status
- archive / unarchive: Hide or restore a project
- delete: Delete a project
- task-add / task-done / task-remove: Manage tasks
- milestone-add / milestone-done: Manage milestones
- stats: Show collection statistics
- categories / tags: List, add or remove labels
"""

import argparse
import logging
import sys
from datetime import date
from typing import List, Optional

from projtrack.config import load_settings
from projtrack.errors import ProjectError
from projtrack.manager import ProjectManager
from projtrack.models import Priority, Project, ProjectStatus, TaskPriority, TaskStatus
from projtrack.query import ProjectFilter, SortDirection, SortField, SortOption

STATUS_CHOICES = [s.value for s in ProjectStatus]
PRIORITY_CHOICES = [p.value for p in Priority]


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="projtrack",
        description="Track projects, weighted tasks and milestones"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Create command
    create = subparsers.add_parser("create", help="Create a new project")
    create.add_argument("title", help="Project title")
    create.add_argument("--start", help="Start date, YYYY-MM-DD (default: today)")
    create.add_argument("--due", help="Due date, YYYY-MM-DD")
    create.add_argument("--description", default="", help="Project description")
    create.add_argument("--status", choices=STATUS_CHOICES, default="planning")
    create.add_argument("--priority", choices=PRIORITY_CHOICES, default="medium")
    create.add_argument("--category", help="Category name")
    create.add_argument("--tag", action="append", default=[], help="Tag (repeatable)")
    create.add_argument("--owner", default="", help="Owner identifier")

    # List command
    list_parser = subparsers.add_parser("list", help="List projects")
    list_parser.add_argument("--status", action="append", choices=STATUS_CHOICES)
    list_parser.add_argument("--category", action="append")
    list_parser.add_argument("--priority", action="append", choices=PRIORITY_CHOICES)
    list_parser.add_argument("--tag", action="append")
    list_parser.add_argument("--search", help="Search title, description and tags")
    list_parser.add_argument("--archived", action="store_true", help="Include archived projects")
    list_parser.add_argument(
        "--sort",
        choices=[f.value for f in SortField],
        default=SortField.CREATED_AT.value,
        help="Sort field (default: created_at)"
    )
    list_parser.add_argument("--desc", action="store_true", help="Sort descending")

    show = subparsers.add_parser("show", help="Show a project")
    show.add_argument("id", help="Project ID")

    status = subparsers.add_parser("status", help="Change a project's status")
    status.add_argument("id", help="Project ID")
    status.add_argument("status", choices=STATUS_CHOICES)

    for name, help_text in (
        ("archive", "Archive a project"),
        ("unarchive", "Restore an archived project"),
        ("delete", "Delete a project"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("id", help="Project ID")

    # Task commands
    task_add = subparsers.add_parser("task-add", help="Add a task to a project")
    task_add.add_argument("project_id", help="Project ID")
    task_add.add_argument("title", help="Task title")
    task_add.add_argument("--weight", type=int, default=1, help="Weight 1-100 (default: 1)")
    task_add.add_argument(
        "--priority", choices=[p.value for p in TaskPriority], default="medium"
    )
    task_add.add_argument("--assignee", help="Assigned member")
    task_add.add_argument("--due", help="Due date, YYYY-MM-DD")

    task_done = subparsers.add_parser("task-done", help="Toggle a task between done and todo")
    task_done.add_argument("project_id", help="Project ID")
    task_done.add_argument("task_id", help="Task ID")

    task_remove = subparsers.add_parser("task-remove", help="Remove a task")
    task_remove.add_argument("project_id", help="Project ID")
    task_remove.add_argument("task_id", help="Task ID")

    # Milestone commands
    milestone_add = subparsers.add_parser("milestone-add", help="Add a milestone")
    milestone_add.add_argument("project_id", help="Project ID")
    milestone_add.add_argument("title", help="Milestone title")
    milestone_add.add_argument("--due", required=True, help="Due date, YYYY-MM-DD")

    milestone_done = subparsers.add_parser("milestone-done", help="Complete a milestone")
    milestone_done.add_argument("project_id", help="Project ID")
    milestone_done.add_argument("milestone_id", help="Milestone ID")

    subparsers.add_parser("stats", help="Show project statistics")

    for name in ("categories", "tags"):
        sub = subparsers.add_parser(name, help=f"List or edit {name}")
        group = sub.add_mutually_exclusive_group()
        group.add_argument("--add", metavar="NAME")
        group.add_argument("--remove", metavar="NAME")

    return parser


def format_project(project: Project) -> str:
    status_icon = "✓" if project.status == ProjectStatus.COMPLETED else " "
    line = (
        f"[{status_icon}] {project.id} {project.title} "
        f"[{project.priority.value}] ({project.status.value}) {project.progress}%"
    )
    if project.is_archived:
        line += " (archived)"
    return line


def cmd_create(args: argparse.Namespace, manager: ProjectManager) -> int:
    """Handle the 'create' command.

    Args:
        args: Parsed command-line arguments
        manager: ProjectManager instance

    Returns:
        Exit code (0 for success)
    """
    project = manager.create_project({
        "title": args.title,
        "description": args.description,
        "start_date": args.start or date.today(),
        "due_date": args.due,
        "status": args.status,
        "priority": args.priority,
        "category": args.category,
        "tags": args.tag,
        "owner": args.owner,
    })
    print(f"Project created: {project.id} {project.title} [{project.priority.value}]")
    return 0


def cmd_list(args: argparse.Namespace, manager: ProjectManager) -> int:
    """Handle the 'list' command.

    Args:
        args: Parsed command-line arguments
        manager: ProjectManager instance

    Returns:
        Exit code (0 for success)
    """
    criteria = ProjectFilter(
        status=args.status,
        category=args.category,
        priority=args.priority,
        tags=args.tag,
        search_term=args.search,
        include_archived=args.archived,
    )
    direction = SortDirection.DESC if args.desc else SortDirection.ASC
    projects = manager.list_projects(criteria, SortOption(SortField(args.sort), direction))

    if not projects:
        print("No projects found.")
        return 0

    for project in projects:
        print(format_project(project))

    return 0


def cmd_show(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.get_project(args.id)
    print(format_project(project))
    if project.description:
        print(f"    {project.description}")
    due = project.due_date.isoformat() if project.due_date else "-"
    print(f"    start: {project.start_date.isoformat()}  due: {due}  category: {project.category}")
    if project.tags:
        print(f"    tags: {', '.join(project.tags)}")

    print("Tasks:")
    if not project.tasks:
        print("    (none)")
    for task in project.tasks:
        mark = "✓" if task.status == TaskStatus.DONE else " "
        print(f"    [{mark}] {task.id} {task.title} (weight {task.weight}, {task.status.value})")

    print("Milestones:")
    if not project.milestones:
        print("    (none)")
    for milestone in project.milestones:
        mark = "✓" if milestone.is_completed else " "
        print(f"    [{mark}] {milestone.id} {milestone.title} (due {milestone.due_date.isoformat()})")
    return 0


def cmd_status(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.set_project_status(args.id, args.status)
    print(f"Project {project.id} status: {project.status.value}")
    return 0


def cmd_archive(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.archive_project(args.id)
    print(f"Project {project.id} archived.")
    return 0


def cmd_unarchive(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.unarchive_project(args.id)
    print(f"Project {project.id} restored.")
    return 0


def cmd_delete(args: argparse.Namespace, manager: ProjectManager) -> int:
    """Handle the 'delete' command.

    Returns:
        Exit code (0 for success, 1 if the project does not exist)
    """
    deleted = manager.delete_project(args.id)

    if not deleted:
        print(f"Error: Project {args.id} not found.", file=sys.stderr)
        return 1

    print(f"Project {args.id} deleted.")
    return 0


def cmd_task_add(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.add_task(args.project_id, {
        "title": args.title,
        "weight": args.weight,
        "priority": args.priority,
        "assigned_to": args.assignee,
        "due_date": args.due,
    })
    task = project.tasks[-1]
    print(f"Task added: {task.id} {task.title} (project progress {project.progress}%)")
    return 0


def cmd_task_done(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.toggle_task(args.project_id, args.task_id)
    task = project.find_task(args.task_id)
    print(f"Task {task.id} is now {task.status.value} (project progress {project.progress}%)")
    return 0


def cmd_task_remove(args: argparse.Namespace, manager: ProjectManager) -> int:
    project = manager.remove_task(args.project_id, args.task_id)
    print(f"Task {args.task_id} removed (project progress {project.progress}%)")
    return 0


def cmd_milestone_add(args: argparse.Namespace, manager: ProjectManager) -> int:
    before = manager.get_project(args.project_id)
    known = {m.id for m in before.milestones}
    project = manager.add_milestone(
        args.project_id, {"title": args.title, "due_date": args.due}
    )
    milestone = next(m for m in project.milestones if m.id not in known)
    print(f"Milestone added: {milestone.id} {milestone.title} (due {milestone.due_date.isoformat()})")
    return 0


def cmd_milestone_done(args: argparse.Namespace, manager: ProjectManager) -> int:
    manager.complete_milestone(args.project_id, args.milestone_id)
    print(f"Milestone {args.milestone_id} completed.")
    return 0


def cmd_stats(args: argparse.Namespace, manager: ProjectManager) -> int:
    stats = manager.statistics()
    print(f"Projects: {stats.total} ({stats.active} active)")
    for status, count in stats.by_status.items():
        print(f"  {status.value}: {count}")
    print(f"Average progress: {stats.average_progress}%")
    print(
        f"Priority: high {stats.high_priority}, medium {stats.medium_priority}, "
        f"low {stats.low_priority}"
    )
    print(f"Upcoming deadlines: {stats.upcoming_deadlines}")
    print(f"Overdue: {stats.overdue_projects}")
    return 0


def _cmd_labels(args: argparse.Namespace, registry, label: str) -> int:
    if args.add:
        added = registry.add(args.add)
        print(f"{label} {args.add!r} {'added' if added else 'already exists'}.")
        return 0
    if args.remove:
        changed = registry.remove(args.remove)
        print(f"{label} {args.remove!r} removed ({changed} project(s) updated).")
        return 0
    for name in registry.list():
        print(name)
    return 0


def cmd_categories(args: argparse.Namespace, manager: ProjectManager) -> int:
    return _cmd_labels(args, manager.categories, "Category")


def cmd_tags(args: argparse.Namespace, manager: ProjectManager) -> int:
    return _cmd_labels(args, manager.tags, "Tag")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:]

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except ProjectError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    manager = ProjectManager(upcoming_days=settings.upcoming_days)

    # Dispatch to command handlers
    commands = {
        "create": cmd_create,
        "list": cmd_list,
        "show": cmd_show,
        "status": cmd_status,
        "archive": cmd_archive,
        "unarchive": cmd_unarchive,
        "delete": cmd_delete,
        "task-add": cmd_task_add,
        "task-done": cmd_task_done,
        "task-remove": cmd_task_remove,
        "milestone-add": cmd_milestone_add,
        "milestone-done": cmd_milestone_done,
        "stats": cmd_stats,
        "categories": cmd_categories,
        "tags": cmd_tags,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
        return 1

    try:
        return handler(args, manager)
    except ProjectError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
