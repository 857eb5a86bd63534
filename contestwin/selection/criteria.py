"""Selection criteria value objects and their boundary validation."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, Mapping, Optional

from ..config import DEFAULT_MAX_WINNERS
from .errors import ValidationError
from .seed import normalize_seed


class SelectionMethod(str, enum.Enum):
    RANDOM = "random"
    SCORE_BASED = "score-based"
    HYBRID = "hybrid"

    @property
    def uses_scores(self) -> bool:
        return self is not SelectionMethod.RANDOM


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class WeightingFactors:
    """Relative weights of the four metrics blended by the ``hybrid`` method.

    Weights need not sum to one; the scorer normalizes them.
    """

    score: float = 0.0
    participation_history: float = 0.0
    social_engagement: float = 0.0
    submission_quality: float = 0.0

    _ALIASES = {
        "score": "score",
        "participation_history": "participation_history",
        "participationHistory": "participation_history",
        "social_engagement": "social_engagement",
        "socialEngagement": "social_engagement",
        "submission_quality": "submission_quality",
        "submissionQuality": "submission_quality",
    }

    def __post_init__(self) -> None:
        errors = self.errors()
        if errors:
            raise ValidationError(errors)

    def errors(self) -> dict[str, list[str]]:
        found: dict[str, list[str]] = {}
        for name, value in self.as_dict().items():
            key = f"weighting_factors.{name}"
            if not _is_number(value):
                found.setdefault(key, []).append("must be a finite number")
            elif value < 0:
                found.setdefault(key, []).append("must be non-negative")
        return found

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @property
    def total(self) -> float:
        return float(sum(self.as_dict().values()))

    @property
    def is_zero(self) -> bool:
        return self.total == 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "WeightingFactors":
        """Build weights from a mapping using snake_case or camelCase keys.

        Missing weights default to zero. Unknown keys raise :class:`ValidationError`.
        """

        values: dict[str, Any] = {}
        unknown: dict[str, list[str]] = {}
        for key, value in raw.items():
            name = cls._ALIASES.get(key)
            if name is None:
                unknown[f"weighting_factors.{key}"] = ["unknown weighting factor"]
                continue
            values[name] = 0.0 if value is None else value
        if unknown:
            raise ValidationError(unknown)
        return cls(**values)


@dataclass(frozen=True)
class SelectionCriteria:
    """Validated request describing how winners should be chosen.

    Attributes
    ----------
    method : SelectionMethod
        ``random``, ``score-based`` or ``hybrid``.
    max_winners : int
        Upper bound on winners, between 1 and 20 inclusive.
    min_score : Optional[float]
        Score floor applied by the score-based and hybrid methods.
    exclude_user_ids : frozenset[int]
        Users that are never eligible.
    require_verification : bool
        Only verified entries are eligible when ``True``.
    weighting_factors : Optional[WeightingFactors]
        Metric weights for ``hybrid``; ignored by the other methods.
    seed : Optional[str]
        Hex replay seed for the random source. Generated per run when omitted.
    """

    method: SelectionMethod
    max_winners: int
    min_score: Optional[float] = None
    exclude_user_ids: frozenset[int] = field(default_factory=frozenset)
    require_verification: bool = False
    weighting_factors: Optional[WeightingFactors] = None
    seed: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.method, SelectionMethod):
            try:
                object.__setattr__(self, "method", SelectionMethod(self.method))
            except ValueError as exc:
                allowed = ", ".join(m.value for m in SelectionMethod)
                raise ValidationError({"method": [f"must be one of {allowed}"]}) from exc
        if not isinstance(self.exclude_user_ids, frozenset):
            try:
                excluded = frozenset(self.exclude_user_ids or ())
            except TypeError as exc:
                raise ValidationError(
                    {"exclude_user_ids": ["must contain only integer user ids"]}
                ) from exc
            object.__setattr__(self, "exclude_user_ids", excluded)
        if isinstance(self.weighting_factors, Mapping):
            object.__setattr__(
                self,
                "weighting_factors",
                WeightingFactors.from_mapping(self.weighting_factors),
            )
        errors = self.errors()
        if errors:
            raise ValidationError(errors)
        if self.seed is not None:
            object.__setattr__(self, "seed", normalize_seed(self.seed))

    def errors(self, max_winners_limit: int = DEFAULT_MAX_WINNERS) -> dict[str, list[str]]:
        """Return field-level problems, empty when the criteria are valid."""

        found: dict[str, list[str]] = {}
        if not isinstance(self.max_winners, int) or isinstance(self.max_winners, bool):
            found["max_winners"] = ["must be an integer"]
        elif not 1 <= self.max_winners <= max_winners_limit:
            found["max_winners"] = [f"must be between 1 and {max_winners_limit}"]

        if self.min_score is not None and not _is_number(self.min_score):
            found["min_score"] = ["must be a finite number"]

        bad_ids = [
            uid
            for uid in self.exclude_user_ids
            if not isinstance(uid, int) or isinstance(uid, bool)
        ]
        if bad_ids:
            found["exclude_user_ids"] = ["must contain only integer user ids"]

        if not isinstance(self.require_verification, bool):
            found["require_verification"] = ["must be a boolean"]

        if self.weighting_factors is not None and not isinstance(
            self.weighting_factors, WeightingFactors
        ):
            found["weighting_factors"] = ["must be a mapping of weights"]

        if self.seed is not None:
            try:
                normalize_seed(self.seed)
            except (TypeError, ValueError) as exc:
                found["seed"] = [str(exc)]
        return found

    def validate(self, max_winners_limit: int = DEFAULT_MAX_WINNERS) -> "SelectionCriteria":
        """Re-check the criteria against a (possibly tighter) winner limit."""

        errors = self.errors(max_winners_limit)
        if errors:
            raise ValidationError(errors)
        return self

    def with_method(self, method: SelectionMethod) -> "SelectionCriteria":
        return replace(self, method=method)

    def with_seed(self, seed: str) -> "SelectionCriteria":
        return replace(self, seed=seed)

    @property
    def effective_weights(self) -> WeightingFactors:
        return self.weighting_factors or WeightingFactors()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly snapshot suitable for auditing."""

        return {
            "method": self.method.value,
            "max_winners": self.max_winners,
            "min_score": self.min_score,
            "exclude_user_ids": sorted(self.exclude_user_ids),
            "require_verification": self.require_verification,
            "weighting_factors": (
                self.weighting_factors.as_dict()
                if self.weighting_factors is not None
                else None
            ),
            "seed": self.seed,
        }


_CRITERIA_ALIASES = {
    "method": "method",
    "max_winners": "max_winners",
    "maxWinners": "max_winners",
    "min_score": "min_score",
    "minScore": "min_score",
    "exclude_user_ids": "exclude_user_ids",
    "excludeUserIds": "exclude_user_ids",
    "require_verification": "require_verification",
    "requireVerification": "require_verification",
    "weighting_factors": "weighting_factors",
    "weightingFactors": "weighting_factors",
    "seed": "seed",
}


def parse_criteria(
    raw: Mapping[str, Any],
    *,
    default_method: Optional[SelectionMethod] = None,
    max_winners_limit: int = DEFAULT_MAX_WINNERS,
) -> SelectionCriteria:
    """Build :class:`SelectionCriteria` from a request payload.

    Keys may be snake_case or the camelCase used by JSON clients. Every problem
    found is collected and reported together.

    Parameters
    ----------
    raw : Mapping[str, Any]
        Decoded request body.
    default_method : Optional[SelectionMethod], default: None
        Method used when the payload omits ``method``.
    max_winners_limit : int, default: 20
        Upper bound accepted for ``max_winners``.

    Raises
    ------
    ValidationError
        If the payload is not a mapping or any field is invalid.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError({"__root__": ["criteria must be a mapping"]})

    values: dict[str, Any] = {}
    errors: dict[str, list[str]] = {}
    for key, value in raw.items():
        name = _CRITERIA_ALIASES.get(key)
        if name is None:
            errors.setdefault(key, []).append("unknown field")
            continue
        values[name] = value

    if "method" not in values or values["method"] is None:
        if default_method is None:
            errors.setdefault("method", []).append("is required")
        else:
            values["method"] = default_method
    if "max_winners" not in values:
        errors.setdefault("max_winners", []).append("is required")

    exclude = values.get("exclude_user_ids")
    if exclude is None:
        values.pop("exclude_user_ids", None)
    elif isinstance(exclude, (str, bytes, Mapping)) or not isinstance(exclude, Iterable):
        errors.setdefault("exclude_user_ids", []).append("must be a list of user ids")
    else:
        exclude = list(exclude)
        if any(not isinstance(uid, int) or isinstance(uid, bool) for uid in exclude):
            errors.setdefault("exclude_user_ids", []).append(
                "must contain only integer user ids"
            )
        else:
            values["exclude_user_ids"] = frozenset(exclude)

    if values.get("require_verification") is None:
        values.pop("require_verification", None)

    weights = values.get("weighting_factors")
    if weights is not None and not isinstance(weights, (Mapping, WeightingFactors)):
        errors.setdefault("weighting_factors", []).append("must be a mapping of weights")

    if errors:
        raise ValidationError(errors)

    try:
        criteria = SelectionCriteria(**values)
    except TypeError as exc:  # unhashable exclusion ids and similar
        raise ValidationError({"__root__": [str(exc)]}) from exc
    return criteria.validate(max_winners_limit)


__all__ = [
    "SelectionCriteria",
    "SelectionMethod",
    "WeightingFactors",
    "parse_criteria",
]
