"""Winner selection engine: eligibility, scoring, selection and statistics."""

from .criteria import (
    SelectionCriteria,
    SelectionMethod,
    WeightingFactors,
    parse_criteria,
)
from .eligibility import Candidate, filter_candidates
from .engine import DrawStatus, SelectionResult, WinnerSelectionEngine
from .errors import (
    ConflictError,
    InsufficientCandidatesWarning,
    NotFoundError,
    SelectionError,
    StateError,
    ValidationError,
)
from .scoring import compute_composite_scores, score
from .seed import generate_seed, normalize_seed
from .selector import (
    DEFAULT_SELECTION_REGISTRY,
    SelectedWinner,
    SelectionMethodRegistry,
    SelectionOutcome,
    SelectionStrategy,
    select_winners,
)
from .stats import ScoreDistribution, WinnerStats, get_winner_stats

__all__ = [
    "Candidate",
    "ConflictError",
    "DEFAULT_SELECTION_REGISTRY",
    "DrawStatus",
    "InsufficientCandidatesWarning",
    "NotFoundError",
    "ScoreDistribution",
    "SelectedWinner",
    "SelectionCriteria",
    "SelectionError",
    "SelectionMethod",
    "SelectionMethodRegistry",
    "SelectionOutcome",
    "SelectionResult",
    "SelectionStrategy",
    "StateError",
    "ValidationError",
    "WeightingFactors",
    "WinnerSelectionEngine",
    "WinnerStats",
    "compute_composite_scores",
    "filter_candidates",
    "generate_seed",
    "get_winner_stats",
    "normalize_seed",
    "parse_criteria",
    "score",
    "select_winners",
]
