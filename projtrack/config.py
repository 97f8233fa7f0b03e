"""Runtime configuration read from environment variables.

Variables:
- PROJTRACK_DB_PATH: JSON storage file (default: projects.json)
- PROJTRACK_LOG_LEVEL: logging level name for the CLI (default: WARNING)
- PROJTRACK_UPCOMING_DAYS: horizon for upcoming deadlines (default: 7)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from projtrack.errors import ValidationError

DEFAULT_DB_PATH = "projects.json"
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_UPCOMING_DAYS = 7


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    log_level: str = DEFAULT_LOG_LEVEL
    upcoming_days: int = DEFAULT_UPCOMING_DAYS


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from ``environ`` (defaults to ``os.environ``).

    Raises:
        ValidationError: If PROJTRACK_UPCOMING_DAYS is not a non-negative integer
    """
    if environ is None:
        environ = os.environ

    raw_days = environ.get("PROJTRACK_UPCOMING_DAYS", str(DEFAULT_UPCOMING_DAYS))
    try:
        upcoming_days = int(raw_days)
    except ValueError:
        raise ValidationError(
            "PROJTRACK_UPCOMING_DAYS", f"must be an integer, got {raw_days!r}"
        ) from None
    if upcoming_days < 0:
        raise ValidationError("PROJTRACK_UPCOMING_DAYS", "must not be negative")

    return Settings(
        db_path=environ.get("PROJTRACK_DB_PATH", DEFAULT_DB_PATH),
        log_level=environ.get("PROJTRACK_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        upcoming_days=upcoming_days,
    )
