"""Read-only winner statistics over persisted selection runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from ..models import SelectionRun, TargetType, WinnerRecord


@dataclass(frozen=True)
class ScoreDistribution:
    """Scores of the scored winners of one selection method."""

    count: int
    min: float
    max: float
    mean: float

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "min": self.min, "max": self.max, "mean": self.mean}


@dataclass(frozen=True)
class WinnerStats:
    """Aggregate view of winners for a scope.

    Attributes
    ----------
    total_winners : int
        Winner records in scope.
    total_runs : int
        Distinct selection runs those winners belong to.
    by_method : dict[str, int]
        Winner count per selection method.
    winners_by_rank : dict[int, int]
        Winner count per rank position.
    scored_winners : int
        Winners that carry a composite score.
    score_min, score_max, score_mean : Optional[float]
        Distribution of scores among scored winners. ``None`` when there are
        none, or when they come from more than one method: ``score-based``
        stores raw 0-100 scores and ``hybrid`` stores 0-1 composites.
    score_by_method : dict[str, ScoreDistribution]
        Score distribution per method that produced scored winners.
    """

    total_winners: int = 0
    total_runs: int = 0
    by_method: dict[str, int] = field(default_factory=dict)
    winners_by_rank: dict[int, int] = field(default_factory=dict)
    scored_winners: int = 0
    score_min: Optional[float] = None
    score_max: Optional[float] = None
    score_mean: Optional[float] = None
    score_by_method: dict[str, ScoreDistribution] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_winners": self.total_winners,
            "total_runs": self.total_runs,
            "by_method": dict(self.by_method),
            "winners_by_rank": {str(rank): n for rank, n in self.winners_by_rank.items()},
            "scored_winners": self.scored_winners,
            "score": {
                "min": self.score_min,
                "max": self.score_max,
                "mean": self.score_mean,
            },
            "score_by_method": {
                method: dist.to_dict() for method, dist in self.score_by_method.items()
            },
        }


def get_winner_stats(
    session: Session,
    contest_id: Optional[int] = None,
    giveaway_id: Optional[int] = None,
    *,
    user_id: Optional[int] = None,
    include_superseded: bool = False,
) -> WinnerStats:
    """Summarize persisted winners for a contest, a giveaway, or a user.

    Parameters
    ----------
    session : Session
        Session used for the read queries. Nothing is written.
    contest_id : Optional[int], default: None
        Restrict to winners of this contest.
    giveaway_id : Optional[int], default: None
        Restrict to winners of this giveaway. Combined with ``contest_id`` the
        scope covers both targets.
    user_id : Optional[int], default: None
        Restrict to winners who are this user, across every target in scope.
    include_superseded : bool, default: False
        Count winners of revoked runs as well as active ones.

    Returns
    -------
    WinnerStats
        Aggregates for the scope; zeroed when no winners match.
    """

    conditions = []
    target_filters = []
    if contest_id is not None:
        target_filters.append(
            and_(
                WinnerRecord.target_id == contest_id,
                WinnerRecord.target_type == TargetType.CONTEST.value,
            )
        )
    if giveaway_id is not None:
        target_filters.append(
            and_(
                WinnerRecord.target_id == giveaway_id,
                WinnerRecord.target_type == TargetType.GIVEAWAY.value,
            )
        )
    if target_filters:
        conditions.append(or_(*target_filters))
    if user_id is not None:
        conditions.append(WinnerRecord.user_id == user_id)
    if not include_superseded:
        conditions.append(SelectionRun.is_active.is_(True))

    def _scoped(stmt):
        return (
            stmt.select_from(WinnerRecord)
            .join(SelectionRun, SelectionRun.id == WinnerRecord.run_id)
            .where(*conditions)
        )

    totals = session.execute(
        _scoped(
            select(
                func.count(WinnerRecord.id),
                func.count(func.distinct(WinnerRecord.run_id)),
                func.count(WinnerRecord.score),
            )
        )
    ).one()
    total_winners, total_runs, scored = totals

    if not total_winners:
        return WinnerStats()

    by_method = {
        method: int(count)
        for method, count in session.execute(
            _scoped(
                select(WinnerRecord.method, func.count(WinnerRecord.id))
            ).group_by(WinnerRecord.method)
        ).all()
    }
    winners_by_rank = {
        int(rank): int(count)
        for rank, count in session.execute(
            _scoped(select(WinnerRecord.rank, func.count(WinnerRecord.id)))
            .group_by(WinnerRecord.rank)
            .order_by(WinnerRecord.rank)
        ).all()
    }
    score_by_method = {
        method: ScoreDistribution(
            count=int(count),
            min=float(low),
            max=float(high),
            mean=float(mean),
        )
        for method, count, low, high, mean in session.execute(
            _scoped(
                select(
                    WinnerRecord.method,
                    func.count(WinnerRecord.score),
                    func.min(WinnerRecord.score),
                    func.max(WinnerRecord.score),
                    func.avg(WinnerRecord.score),
                )
            )
            .where(WinnerRecord.score.is_not(None))
            .group_by(WinnerRecord.method)
            .order_by(WinnerRecord.method)
        ).all()
    }
    # Raw scores and hybrid composites live on different scales.
    single = (
        next(iter(score_by_method.values())) if len(score_by_method) == 1 else None
    )

    return WinnerStats(
        total_winners=int(total_winners),
        total_runs=int(total_runs),
        by_method=by_method,
        winners_by_rank=winners_by_rank,
        scored_winners=int(scored or 0),
        score_min=single.min if single is not None else None,
        score_max=single.max if single is not None else None,
        score_mean=single.mean if single is not None else None,
        score_by_method=score_by_method,
    )


__all__ = ["ScoreDistribution", "WinnerStats", "get_winner_stats"]
