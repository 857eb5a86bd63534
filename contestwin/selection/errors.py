"""Exceptions raised by the winner selection engine."""

from __future__ import annotations

from typing import Mapping, Optional, Sequence


class SelectionError(Exception):
    """Base class for winner selection failures."""


class ValidationError(SelectionError, ValueError):
    """Selection criteria were malformed.

    Attributes
    ----------
    errors : dict[str, list[str]]
        Messages keyed by the offending field name, e.g.
        ``{"max_winners": ["must be between 1 and 20"]}``.
    """

    def __init__(self, errors: Mapping[str, Sequence[str]]) -> None:
        self.errors: dict[str, list[str]] = {
            field: list(messages) for field, messages in errors.items()
        }
        summary = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in self.errors.items()
        )
        super().__init__(f"Invalid selection criteria ({summary})")


class NotFoundError(SelectionError, LookupError):
    """The requested contest or giveaway does not exist."""


class StateError(SelectionError):
    """The target is not in a state that permits the operation."""

    def __init__(self, message: str, *, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class ConflictError(SelectionError):
    """Winners were already finalized for the target, or another request won the race."""

    def __init__(self, message: str, *, run_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.run_key = run_key


class InsufficientCandidatesWarning(UserWarning):
    """Fewer eligible candidates than requested winners.

    Never raised by the engine; the run completes with a partial result and this
    warning's text becomes the shortfall note.
    """

    def __init__(self, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        self.shortfall = max(requested - available, 0)
        super().__init__(
            f"Requested {requested} winner(s) but only {available} eligible "
            f"candidate(s) were available; shortfall of {self.shortfall}"
        )


__all__ = [
    "ConflictError",
    "InsufficientCandidatesWarning",
    "NotFoundError",
    "SelectionError",
    "StateError",
    "ValidationError",
]
