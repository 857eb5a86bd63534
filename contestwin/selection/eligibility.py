"""Reduce a raw entry pool to the candidates eligible for a selection run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from ..models.entry import EntryStatus
from .criteria import SelectionCriteria

if TYPE_CHECKING:
    from ..models.entry import Entry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """Read-only snapshot of an entry as seen by the selection pipeline."""

    entry_id: int
    user_id: int
    target_id: int
    created_at: datetime
    score: Optional[float] = None
    participation_count: int = 0
    engagement_count: int = 0
    quality_rating: Optional[float] = None
    is_verified: bool = False
    is_winner: bool = False
    status: EntryStatus = EntryStatus.SUBMITTED

    def __post_init__(self) -> None:
        if not isinstance(self.status, EntryStatus):
            object.__setattr__(self, "status", EntryStatus(self.status))

    @classmethod
    def from_entry(cls, entry: "Entry") -> "Candidate":
        if entry.id is None:
            raise ValueError("Entry must be persisted before it can be a candidate")
        return cls(
            entry_id=entry.id,
            user_id=entry.user_id,
            target_id=entry.target_id,
            created_at=entry.created_at,
            score=entry.score,
            participation_count=entry.participation_count or 0,
            engagement_count=entry.engagement_count or 0,
            quality_rating=entry.quality_rating,
            is_verified=bool(entry.is_verified),
            is_winner=bool(entry.is_winner),
            status=EntryStatus(entry.status or EntryStatus.SUBMITTED),
        )


def filter_candidates(
    candidates: Iterable[Candidate],
    criteria: SelectionCriteria,
    *,
    prior_winner_user_ids: Iterable[int] = (),
) -> list[Candidate]:
    """Return the candidates that may win under ``criteria``.

    Rules are applied in order:

    1. Entries whose status is not ``submitted`` or ``entered`` are dropped.
    2. Users listed in ``criteria.exclude_user_ids`` are dropped.
    3. Entries flagged as winners, and entries of users who already hold a
       winner record for the target, are dropped.
    4. Unverified entries are dropped when ``require_verification`` is set.
    5. For score-based and hybrid methods, unscored entries and entries below
       ``min_score`` are dropped.

    The relative order of the input is preserved. An empty result is valid.

    Parameters
    ----------
    candidates : Iterable[Candidate]
        Raw pool for a single target, typically in creation order.
    criteria : SelectionCriteria
        Validated selection request.
    prior_winner_user_ids : Iterable[int], default: ()
        Users already recorded as winners for the same target.

    Returns
    -------
    list[Candidate]
        Eligible candidates in input order.
    """

    prior_winners = set(prior_winner_user_ids)
    uses_scores = criteria.method.uses_scores
    min_score = criteria.min_score

    eligible: list[Candidate] = []
    pool_size = 0
    for candidate in candidates:
        pool_size += 1
        if not candidate.status.is_active:
            continue
        if candidate.user_id in criteria.exclude_user_ids:
            continue
        if candidate.is_winner or candidate.user_id in prior_winners:
            continue
        if criteria.require_verification and not candidate.is_verified:
            continue
        if uses_scores:
            if candidate.score is None:
                continue
            if min_score is not None and candidate.score < min_score:
                continue
        eligible.append(candidate)

    logger.debug(
        f"Eligibility filter kept {len(eligible)} of {pool_size} candidates "
        f"(method={criteria.method.value})"
    )
    return eligible


__all__ = ["Candidate", "filter_candidates"]
