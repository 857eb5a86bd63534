"""Composite scoring of candidates for ranked selection methods."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Sequence

from .criteria import WeightingFactors
from .eligibility import Candidate

logger = logging.getLogger(__name__)

# Normalized value for a metric that does not vary across the pool.
ZERO_VARIANCE_VALUE = 0.5


@dataclass(frozen=True)
class MetricDefinition:
    """Raw metric blended into a composite score.

    Attributes
    ----------
    key : str
        Name of the matching :class:`WeightingFactors` field.
    extractor : Callable[[Candidate], float]
        Returns the raw metric value for a candidate.
    description : Optional[str]
        Human-readable summary of what the metric measures.
    """

    key: str
    extractor: Callable[[Candidate], float]
    description: Optional[str] = None


def _judge_score(candidate: Candidate) -> float:
    return float(candidate.score or 0.0)


def _submission_quality(candidate: Candidate) -> float:
    if candidate.quality_rating is not None:
        return float(candidate.quality_rating)
    return _judge_score(candidate)


METRICS: tuple[MetricDefinition, ...] = (
    MetricDefinition(
        key="score",
        extractor=_judge_score,
        description="Judge-assigned score on the 0-100 scale.",
    ),
    MetricDefinition(
        key="participation_history",
        extractor=lambda c: float(c.participation_count or 0),
        description="Count of the user's prior entries and wins.",
    ),
    MetricDefinition(
        key="social_engagement",
        extractor=lambda c: float(c.engagement_count or 0),
        description="Likes and shares collected by the submission.",
    ),
    MetricDefinition(
        key="submission_quality",
        extractor=_submission_quality,
        description=(
            "Secondary quality rating, or the judge score when the entry has "
            "no separate rating."
        ),
    ),
)


@dataclass(frozen=True)
class MetricRange:
    minimum: float
    maximum: float

    def normalize(self, value: float) -> float:
        """Min-max normalize ``value`` into ``[0, 1]``."""

        spread = self.maximum - self.minimum
        if spread <= 0:
            return ZERO_VARIANCE_VALUE
        normalized = (value - self.minimum) / spread
        return min(max(normalized, 0.0), 1.0)


def pool_ranges(
    pool: Sequence[Candidate],
    metrics: Sequence[MetricDefinition] = METRICS,
) -> Dict[str, MetricRange]:
    """Return the observed min/max of each metric within ``pool``."""

    ranges: Dict[str, MetricRange] = {}
    for metric in metrics:
        values = [metric.extractor(candidate) for candidate in pool]
        if values:
            ranges[metric.key] = MetricRange(min(values), max(values))
        else:
            ranges[metric.key] = MetricRange(0.0, 0.0)
    return ranges


def _effective_weights(weights: WeightingFactors) -> Dict[str, float]:
    raw = weights.as_dict()
    if sum(raw.values()) <= 0:
        # Equal weighting keeps the composite defined when every weight is zero.
        return {key: 1.0 for key in raw}
    return raw


def score(
    candidate: Candidate,
    weights: WeightingFactors,
    pool: Optional[Sequence[Candidate]] = None,
    *,
    ranges: Optional[Dict[str, MetricRange]] = None,
) -> float:
    """Compute the composite score of ``candidate`` relative to ``pool``.

    Each metric is min-max normalized against the pool, then blended as
    ``sum(normalized * weight) / sum(weights)``. Scores are only comparable
    within the same pool.

    Parameters
    ----------
    candidate : Candidate
        Candidate to score.
    weights : WeightingFactors
        Metric weights. All-zero weights fall back to equal weighting.
    pool : Optional[Sequence[Candidate]], default: None
        Eligible pool the candidate is compared against. Defaults to the
        candidate alone, which yields ``0.5``.
    ranges : Optional[Dict[str, MetricRange]], default: None
        Precomputed ranges for ``pool``; skips recomputation in batch scoring.

    Returns
    -------
    float
        Composite score in ``[0, 1]``.
    """

    if ranges is None:
        ranges = pool_ranges(pool if pool is not None else [candidate])
    effective = _effective_weights(weights)
    total_weight = sum(effective.values())

    weighted = 0.0
    for metric in METRICS:
        weight = effective[metric.key]
        if weight == 0:
            continue
        weighted += ranges[metric.key].normalize(metric.extractor(candidate)) * weight
    return weighted / total_weight


def compute_composite_scores(
    candidates: Iterable[Candidate],
    weights: WeightingFactors,
) -> Dict[int, float]:
    """Score every candidate against the pool they form, keyed by entry id."""

    pool = list(candidates)
    ranges = pool_ranges(pool)
    scores = {
        candidate.entry_id: score(candidate, weights, ranges=ranges)
        for candidate in pool
    }
    logger.debug(f"Computed composite scores for {len(scores)} candidates")
    return scores


def raw_scores(candidates: Iterable[Candidate]) -> Dict[int, float]:
    """Return the judge score of each candidate, keyed by entry id.

    Used by the score-based method, which ranks on submission quality alone.
    """

    return {candidate.entry_id: _judge_score(candidate) for candidate in candidates}


__all__ = [
    "METRICS",
    "MetricDefinition",
    "MetricRange",
    "ZERO_VARIANCE_VALUE",
    "compute_composite_scores",
    "pool_ranges",
    "raw_scores",
    "score",
]
