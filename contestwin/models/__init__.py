from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .target import Target, TargetStatus, TargetType  # noqa: F401
from .entry import ACTIVE_ENTRY_STATUSES, Entry, EntryStatus  # noqa: F401
from .selection import SelectionRun, WinnerRecord  # noqa: F401

__all__ = [
    "Base",
    "User",
    "Target",
    "TargetStatus",
    "TargetType",
    "ACTIVE_ENTRY_STATUSES",
    "Entry",
    "EntryStatus",
    "SelectionRun",
    "WinnerRecord",
]
