"""Environment-driven settings for the winner selection engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .db.utils import resolve_sqlite_url

load_dotenv()

# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)

DEFAULT_CLAIM_WINDOW_DAYS = 30
DEFAULT_MAX_WINNERS = 20


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc
    if value < 1:
        raise ValueError(f"Environment variable '{name}' must be at least 1")
    return value


@dataclass(frozen=True)
class SelectionSettings:
    """Tunable limits applied by :class:`~contestwin.selection.engine.WinnerSelectionEngine`.

    Attributes
    ----------
    claim_window_days : int
        Days a winner has to claim the prize, counted from the selection run.
    max_winners : int
        Upper bound accepted for ``SelectionCriteria.max_winners``.
    """

    claim_window_days: int = DEFAULT_CLAIM_WINDOW_DAYS
    max_winners: int = DEFAULT_MAX_WINNERS

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SelectionSettings":
        """Build settings from ``env`` (defaults to ``os.environ``)."""

        source = os.environ if env is None else env
        max_winners = _int_from_env(source, "WINNER_MAX_WINNERS", DEFAULT_MAX_WINNERS)
        if max_winners > DEFAULT_MAX_WINNERS:
            raise ValueError(
                f"Environment variable 'WINNER_MAX_WINNERS' cannot exceed {DEFAULT_MAX_WINNERS}"
            )
        return cls(
            claim_window_days=_int_from_env(
                source, "WINNER_CLAIM_WINDOW_DAYS", DEFAULT_CLAIM_WINDOW_DAYS
            ),
            max_winners=max_winners,
        )


__all__ = [
    "DEFAULT_SQLITE_URL",
    "ROOT_DIR",
    "SelectionSettings",
]
