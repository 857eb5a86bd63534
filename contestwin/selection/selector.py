"""Winner selection strategies and the registry that maps methods to them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Sequence

from ..db.utils import as_utc
from .criteria import SelectionCriteria, SelectionMethod
from .eligibility import Candidate
from .errors import InsufficientCandidatesWarning
from .scoring import compute_composite_scores, raw_scores
from .seed import generate_seed, normalize_seed, rng_from_seed

logger = logging.getLogger(__name__)

HYBRID_ZERO_WEIGHTS_FALLBACK = (
    "All hybrid weighting factors are zero; fell back to random selection"
)


@dataclass(frozen=True)
class Ordering:
    """Candidates in the order a strategy would hand out winner slots."""

    candidates: list[Candidate]
    scores: Optional[Mapping[int, float]] = None
    seed: Optional[str] = None


@dataclass(frozen=True)
class SelectedWinner:
    """A candidate that won a slot in a run.

    Attributes
    ----------
    candidate : Candidate
        The winning entry snapshot.
    rank : int
        1-based position among the run's winners.
    score : Optional[float]
        Composite score behind the pick; ``None`` for random picks.
    reason : str
        Human-readable explanation stored with the winner record.
    """

    candidate: Candidate
    rank: int
    score: Optional[float]
    reason: str

    @property
    def entry_id(self) -> int:
        return self.candidate.entry_id

    @property
    def user_id(self) -> int:
        return self.candidate.user_id


@dataclass(frozen=True)
class SelectionOutcome:
    """Result of running a selection strategy over an eligible pool.

    Attributes
    ----------
    winners : list[SelectedWinner]
        Winners ordered by rank.
    method : SelectionMethod
        Method actually applied.
    requested_method : SelectionMethod
        Method named in the criteria.
    seed : Optional[str]
        Replay seed for random draws.
    fallback_reason : Optional[str]
        Why the requested method was not applied as-is, if it was not.
    eligible_count : int
        Distinct eligible users in the pool.
    requested : int
        ``max_winners`` from the criteria.
    """

    winners: list[SelectedWinner]
    method: SelectionMethod
    requested_method: SelectionMethod
    eligible_count: int
    requested: int
    seed: Optional[str] = None
    fallback_reason: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    @property
    def selected_count(self) -> int:
        return len(self.winners)

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.selected_count, 0)


def _tie_break_key(candidate: Candidate, scores: Mapping[int, float]):
    created_at = as_utc(candidate.created_at) or datetime.min.replace(
        tzinfo=timezone.utc
    )
    return (-scores[candidate.entry_id], created_at, candidate.entry_id)


def _order_random(
    pool: Sequence[Candidate],
    criteria: SelectionCriteria,
    scores: Optional[Mapping[int, float]],
    seed: Optional[str],
) -> Ordering:
    resolved_seed = normalize_seed(seed) if seed is not None else generate_seed()
    rng = rng_from_seed(resolved_seed)
    shuffled = rng.sample(list(pool), len(pool))
    return Ordering(candidates=shuffled, scores=None, seed=resolved_seed)


def _order_by_score(
    pool: Sequence[Candidate],
    criteria: SelectionCriteria,
    scores: Optional[Mapping[int, float]],
    seed: Optional[str],
) -> Ordering:
    resolved = dict(scores) if scores is not None else raw_scores(pool)
    ranked = sorted(pool, key=lambda c: _tie_break_key(c, resolved))
    return Ordering(candidates=ranked, scores=resolved)


def _order_hybrid(
    pool: Sequence[Candidate],
    criteria: SelectionCriteria,
    scores: Optional[Mapping[int, float]],
    seed: Optional[str],
) -> Ordering:
    resolved = (
        dict(scores)
        if scores is not None
        else compute_composite_scores(pool, criteria.effective_weights)
    )
    ranked = sorted(pool, key=lambda c: _tie_break_key(c, resolved))
    return Ordering(candidates=ranked, scores=resolved)


def _random_reason(rank: int, score: Optional[float]) -> str:
    return "Selected randomly from eligible entries"


def _score_reason(rank: int, score: Optional[float]) -> str:
    return f"Ranked #{rank} with score of {score:g}"


def _hybrid_reason(rank: int, score: Optional[float]) -> str:
    return f"Ranked #{rank} with composite score of {score:.4f}"


@dataclass(frozen=True)
class SelectionStrategy:
    """Definition of a selection method.

    Attributes
    ----------
    key : str
        Method name, matching :class:`SelectionMethod` values.
    order : Callable
        Takes ``(pool, criteria, scores, seed)`` and returns an :class:`Ordering`.
    reason : Callable[[int, Optional[float]], str]
        Builds the selection reason for a winner from its rank and score.
    description : Optional[str]
        Human-readable summary of the method.
    """

    key: str
    order: Callable[
        [Sequence[Candidate], SelectionCriteria, Optional[Mapping[int, float]], Optional[str]],
        Ordering,
    ]
    reason: Callable[[int, Optional[float]], str]
    description: Optional[str] = None


class SelectionMethodRegistry:
    """Mutable registry mapping method keys to strategies."""

    def __init__(self) -> None:
        self._strategies: Dict[str, SelectionStrategy] = {}

    def register(self, strategy: SelectionStrategy, *, replace: bool = False) -> None:
        """Register a strategy under its key.

        Parameters
        ----------
        strategy : SelectionStrategy
            Strategy to add to the registry.
        replace : bool, default: False
            When ``True`` an existing registration with the same key is
            overwritten. Otherwise a duplicate raises :class:`ValueError`.
        """
        if not replace and strategy.key in self._strategies:
            raise ValueError(f"Selection method '{strategy.key}' is already registered")
        self._strategies[strategy.key] = strategy

    def get(self, key: str) -> SelectionStrategy:
        """Return the strategy registered under ``key``."""
        try:
            return self._strategies[key]
        except KeyError as exc:
            raise KeyError(f"Unknown selection method '{key}'") from exc

    def available_methods(self) -> Dict[str, SelectionStrategy]:
        """Return a copy of the registered strategies keyed by method."""
        return dict(self._strategies)


DEFAULT_SELECTION_REGISTRY = SelectionMethodRegistry()
DEFAULT_SELECTION_REGISTRY.register(
    SelectionStrategy(
        key=SelectionMethod.RANDOM.value,
        order=_order_random,
        reason=_random_reason,
        description=(
            "Uniform sampling without replacement from a per-run generator seeded "
            "with a recorded hex seed."
        ),
    )
)
DEFAULT_SELECTION_REGISTRY.register(
    SelectionStrategy(
        key=SelectionMethod.SCORE_BASED.value,
        order=_order_by_score,
        reason=_score_reason,
        description=(
            "Highest judge score first; ties go to the earliest entry, then the "
            "lowest entry id."
        ),
    )
)
DEFAULT_SELECTION_REGISTRY.register(
    SelectionStrategy(
        key=SelectionMethod.HYBRID.value,
        order=_order_hybrid,
        reason=_hybrid_reason,
        description=(
            "Highest pool-normalized weighted composite first, with the "
            "score-based tie-breaks."
        ),
    )
)


def resolve_method(
    criteria: SelectionCriteria,
) -> tuple[SelectionMethod, Optional[str]]:
    """Return the method that will actually run and the fallback note, if any.

    ``hybrid`` without any positive weight degenerates to ``random``.
    """

    if criteria.method is SelectionMethod.HYBRID and criteria.effective_weights.is_zero:
        return SelectionMethod.RANDOM, HYBRID_ZERO_WEIGHTS_FALLBACK
    return criteria.method, None


def select_winners(
    candidates: Sequence[Candidate],
    criteria: SelectionCriteria,
    *,
    scores: Optional[Mapping[int, float]] = None,
    seed: Optional[str] = None,
    registry: Optional[SelectionMethodRegistry] = None,
) -> SelectionOutcome:
    """Choose up to ``criteria.max_winners`` winners from an eligible pool.

    The pool is never rejected for being too small: the cap is clamped to the
    number of distinct eligible users and the gap is reported as a shortfall.
    A user wins at most one slot per run even with several entries.

    Parameters
    ----------
    candidates : Sequence[Candidate]
        Eligible pool, in creation order.
    criteria : SelectionCriteria
        Validated criteria naming the method and the cap.
    scores : Optional[Mapping[int, float]], default: None
        Precomputed composite scores keyed by entry id. Computed on demand by
        the ranked methods when omitted.
    seed : Optional[str], default: None
        Replay seed for random draws. Falls back to ``criteria.seed``, then to
        a freshly generated seed.
    registry : Optional[SelectionMethodRegistry], default: None
        Custom strategy registry. The default registry is used when omitted.

    Returns
    -------
    SelectionOutcome
        Ranked winners plus the bookkeeping needed to audit the run.
    """

    pool = list(candidates)
    active_registry = registry or DEFAULT_SELECTION_REGISTRY
    method, fallback_reason = resolve_method(criteria)
    strategy = active_registry.get(method.value)

    ordering = strategy.order(pool, criteria, scores, seed or criteria.seed)

    winners: list[SelectedWinner] = []
    seen_users: set[int] = set()
    for candidate in ordering.candidates:
        if len(winners) >= criteria.max_winners:
            break
        if candidate.user_id in seen_users:
            continue
        seen_users.add(candidate.user_id)
        rank = len(winners) + 1
        winner_score = (
            ordering.scores[candidate.entry_id] if ordering.scores is not None else None
        )
        reason = strategy.reason(rank, winner_score)
        if fallback_reason is not None:
            reason = f"{reason} (hybrid fallback)"
        winners.append(
            SelectedWinner(
                candidate=candidate, rank=rank, score=winner_score, reason=reason
            )
        )

    eligible_count = len({candidate.user_id for candidate in pool})
    notes: list[str] = []
    if fallback_reason is not None:
        notes.append(fallback_reason)
        logger.warning(fallback_reason)
    if eligible_count < criteria.max_winners:
        shortage = InsufficientCandidatesWarning(criteria.max_winners, eligible_count)
        notes.append(str(shortage))
        logger.warning(str(shortage))

    return SelectionOutcome(
        winners=winners,
        method=method,
        requested_method=criteria.method,
        eligible_count=eligible_count,
        requested=criteria.max_winners,
        seed=ordering.seed,
        fallback_reason=fallback_reason,
        notes=notes,
    )


__all__ = [
    "DEFAULT_SELECTION_REGISTRY",
    "HYBRID_ZERO_WEIGHTS_FALLBACK",
    "Ordering",
    "SelectedWinner",
    "SelectionMethodRegistry",
    "SelectionOutcome",
    "SelectionStrategy",
    "resolve_method",
    "select_winners",
]
