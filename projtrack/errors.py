"""Exceptions raised by the project engine.

Hierarchy:
    ProjectError
    ├── ValidationError   malformed input, caller-correctable
    ├── NotFoundError     unknown project, task or milestone id
    ├── PersistenceError  storage I/O failure, retryable
    └── ConflictError     stored copy changed since it was read, retryable
"""

from typing import Any, Optional


class ProjectError(Exception):
    """Base exception for project engine errors."""

    pass


class ValidationError(ProjectError):
    """Raised when input violates a model invariant.

    Attributes:
        field: Name of the violated field (dotted for nested fields)
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field} {message}")


class NotFoundError(ProjectError):
    """Raised when an operation references an id that does not exist."""

    def __init__(self, kind: str, item_id: Any):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} {item_id} not found")


class PersistenceError(ProjectError):
    """Raised when the storage backend cannot load or save."""

    pass


class ConflictError(ProjectError):
    """Raised when a save would overwrite a newer stored copy."""

    def __init__(self, project_id: str, expected: Optional[Any], actual: Optional[Any]):
        self.project_id = project_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"project {project_id} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )
