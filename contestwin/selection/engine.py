"""Orchestrates eligibility, scoring, selection and persistence of winners."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import SelectionSettings
from ..db.utils import dt_iso
from ..models import Entry, SelectionRun, Target, TargetStatus, TargetType, WinnerRecord
from .criteria import SelectionCriteria, SelectionMethod, parse_criteria
from .eligibility import Candidate, filter_candidates
from .errors import ConflictError, NotFoundError, StateError, ValidationError
from .scoring import compute_composite_scores, raw_scores
from .seed import generate_seed
from .selector import (
    SelectionMethodRegistry,
    SelectionOutcome,
    resolve_method,
    select_winners,
)

logger = logging.getLogger(__name__)

ACTIVE_RUN_INDEX = "uq_selection_runs_one_active"

CriteriaInput = Union[SelectionCriteria, Mapping[str, Any]]


@dataclass
class SelectionResult:
    """Outcome of one orchestrated selection run.

    Attributes
    ----------
    run : SelectionRun
        The persisted run grouping the winners.
    target_id : int
        Contest or giveaway the winners were selected for.
    target_type : TargetType
        Kind of target.
    winners : list[WinnerRecord]
        Persisted winner records ordered by rank.
    method : SelectionMethod
        Method actually applied.
    requested_method : SelectionMethod
        Method named in the request (giveaways always request ``random``).
    eligible_count : int
        Distinct users that survived the eligibility filter.
    requested_count : int
        ``max_winners`` from the criteria.
    seed : Optional[str]
        Replay seed for random draws.
    notes : list[str]
        Shortfall and fallback notes.
    """

    run: SelectionRun
    target_id: int
    target_type: TargetType
    winners: list[WinnerRecord]
    method: SelectionMethod
    requested_method: SelectionMethod
    eligible_count: int
    requested_count: int
    seed: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    @property
    def run_key(self) -> str:
        return self.run.run_key

    @property
    def selected_count(self) -> int:
        return len(self.winners)

    @property
    def shortfall(self) -> int:
        return max(self.requested_count - self.selected_count, 0)

    @property
    def truncated(self) -> bool:
        return self.shortfall > 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for the API layer."""

        return {
            "run_key": self.run_key,
            "target_id": self.target_id,
            "target_type": self.target_type.value,
            "method": self.method.value,
            "requested_method": self.requested_method.value,
            "eligible_count": self.eligible_count,
            "selected_count": self.selected_count,
            "requested_count": self.requested_count,
            "shortfall": self.shortfall,
            "seed": self.seed,
            "notes": list(self.notes),
            "selected_by": self.run.selected_by,
            "created_at": dt_iso(self.run.created_at),
            "winners": [
                {
                    "rank": winner.rank,
                    "entry_id": winner.entry_id,
                    "user_id": winner.user_id,
                    "score": winner.score,
                    "method": winner.method,
                    "selection_reason": winner.selection_reason,
                    "prize_claim_deadline": dt_iso(winner.prize_claim_deadline),
                }
                for winner in self.winners
            ],
        }


@dataclass(frozen=True)
class DrawStatus:
    """Whether a target is ready for a winner draw, with the individual checks."""

    target_id: int
    target_type: TargetType
    status: TargetStatus
    total_entries: int
    winners_drawn: int
    has_ended: bool
    is_closed: bool
    has_entries: bool
    winners_already_drawn: bool

    @property
    def can_draw(self) -> bool:
        return (
            self.is_closed and self.has_entries and not self.winners_already_drawn
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "target_type": self.target_type.value,
            "status": self.status.value,
            "total_entries": self.total_entries,
            "winners_drawn": self.winners_drawn,
            "can_draw": self.can_draw,
            "eligibility_check": {
                "is_closed": self.is_closed,
                "has_ended": self.has_ended,
                "has_entries": self.has_entries,
                "winners_already_drawn": self.winners_already_drawn,
            },
        }


class WinnerSelectionEngine:
    """Engine that validates criteria, selects winners and persists them once."""

    def __init__(
        self,
        session: Session,
        *,
        registry: Optional[SelectionMethodRegistry] = None,
        settings: Optional[SelectionSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create a selection engine bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session. The engine flushes but never commits, so
            every write of a run lands in the caller's transaction.
        registry : Optional[SelectionMethodRegistry], default: None
            Custom strategy registry. The default registry is used when omitted.
        settings : Optional[SelectionSettings], default: None
            Limits such as the claim window. Read from the environment when omitted.
        clock : Optional[Callable[[], datetime]], default: None
            Returns the current aware UTC time. Overridable in tests.
        """

        self._session = session
        self._registry = registry
        self._settings = settings or SelectionSettings.from_env()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -------- public operations --------
    def select_contest_winners(
        self,
        contest_id: int,
        criteria: CriteriaInput,
        *,
        force: bool = False,
        keep_previous_winners_eligible: bool = False,
        actor: Optional[str] = None,
    ) -> SelectionResult:
        """Select and persist winners for a contest.

        Parameters
        ----------
        contest_id : int
            Id of the contest target.
        criteria : SelectionCriteria or Mapping
            Validated criteria, or a raw payload parsed with :func:`parse_criteria`.
        force : bool, default: False
            Revoke an existing active run first instead of raising
            :class:`ConflictError`. Only for separately authorized callers.
        keep_previous_winners_eligible : bool, default: False
            On a forced redo, let users from revoked runs win again.
        actor : Optional[str], default: None
            Operator triggering the draw. Stored on the run as ``selected_by``
            and, on a forced redo, as ``revoked_by`` of the replaced run.

        Returns
        -------
        SelectionResult
            Winners and bookkeeping of the new run.

        Raises
        ------
        ValidationError
            If the criteria or ``actor`` are malformed.
        NotFoundError
            If no contest with ``contest_id`` exists.
        StateError
            If the contest is still open for entries.
        ConflictError
            If winners were already finalized and ``force`` is not set, or a
            concurrent request finalized them first.
        """

        parsed = self._parse(criteria)
        return self._run(
            contest_id,
            TargetType.CONTEST,
            parsed,
            force=force,
            keep_previous_winners_eligible=keep_previous_winners_eligible,
            actor=actor,
        )

    def select_giveaway_winners(
        self,
        giveaway_id: int,
        criteria: CriteriaInput,
        *,
        force: bool = False,
        keep_previous_winners_eligible: bool = False,
        actor: Optional[str] = None,
    ) -> SelectionResult:
        """Select and persist winners for a giveaway.

        Giveaways are always drawn at random: any caller-supplied method is
        replaced with ``random`` before validation. See
        :meth:`select_contest_winners` for the parameters and errors.
        """

        parsed = self._parse(criteria, force_method=SelectionMethod.RANDOM)
        return self._run(
            giveaway_id,
            TargetType.GIVEAWAY,
            parsed,
            force=force,
            keep_previous_winners_eligible=keep_previous_winners_eligible,
            actor=actor,
        )

    def revoke_selection(
        self, target_id: int, *, actor: Optional[str] = None
    ) -> SelectionRun:
        """Mark the target's active run inactive so winners can be re-selected.

        This is the force path: the target moves from ``selection-finalized``
        to ``selection-forced-redo``. Winner records are kept as history and
        ``actor``, when given, is stored as the run's ``revoked_by``.

        Raises
        ------
        ValidationError
            If ``actor`` is malformed.
        NotFoundError
            If the target does not exist.
        StateError
            If the target has no finalized selection to revoke.
        ConflictError
            If another request changed the target concurrently.
        """

        actor = _normalize_actor(actor)
        target = self._load_target(target_id)
        return self._revoke(target, actor=actor)

    def close_target(self, target_id: int) -> Target:
        """Stop accepting entries for ``target_id`` (``open`` -> ``closed``)."""

        target = self._load_target(target_id)
        if target.status_enum is not TargetStatus.OPEN:
            raise StateError(
                f"Target {target_id} cannot be closed from status '{target.status}'",
                status=target.status,
            )
        if not target.compare_and_set_status(
            self._session, TargetStatus.OPEN, TargetStatus.CLOSED, now=self._clock()
        ):
            raise ConflictError(f"Target {target_id} was modified concurrently")
        logger.info(f"Closed target {target_id} for entries")
        return target

    def draw_status(self, target_id: int) -> DrawStatus:
        """Report whether ``target_id`` is ready for a winner draw."""

        target = self._load_target(target_id)
        now = self._clock()
        status = target.status_enum
        total_entries = Target.count_entries(self._session, target.id)
        active = SelectionRun.active_for_target(self._session, target.id)
        winners_drawn = active.selected_count if active is not None else 0
        has_ended = target.has_ended(now)
        is_closed = status in (
            TargetStatus.CLOSED,
            TargetStatus.SELECTION_FORCED_REDO,
        ) or (status is TargetStatus.OPEN and has_ended)
        return DrawStatus(
            target_id=target.id,
            target_type=target.type_enum,
            status=status,
            total_entries=total_entries,
            winners_drawn=winners_drawn,
            has_ended=has_ended,
            is_closed=is_closed,
            has_entries=total_entries > 0,
            winners_already_drawn=active is not None,
        )

    # -------- internals --------
    def _parse(
        self,
        criteria: CriteriaInput,
        *,
        force_method: Optional[SelectionMethod] = None,
    ) -> SelectionCriteria:
        limit = self._settings.max_winners
        if isinstance(criteria, SelectionCriteria):
            parsed = criteria
            if force_method is not None and parsed.method is not force_method:
                parsed = parsed.with_method(force_method)
            return parsed.validate(limit)

        if force_method is not None and isinstance(criteria, Mapping):
            # Method-specific knobs mean nothing for a forced method.
            criteria = {
                key: value
                for key, value in criteria.items()
                if key
                not in {
                    "method",
                    "min_score",
                    "minScore",
                    "weighting_factors",
                    "weightingFactors",
                }
            }
        return parse_criteria(
            criteria, default_method=force_method, max_winners_limit=limit
        )

    def _load_target(
        self, target_id: int, target_type: Optional[TargetType] = None
    ) -> Target:
        target = self._session.get(Target, target_id)
        if target is None or (
            target_type is not None and target.target_type != target_type.value
        ):
            label = target_type.value if target_type is not None else "target"
            raise NotFoundError(f"{label.capitalize()} {target_id} not found")
        return target

    def _revoke(self, target: Target, *, actor: Optional[str] = None) -> SelectionRun:
        if target.status_enum is not TargetStatus.SELECTION_FINALIZED:
            raise StateError(
                f"Target {target.id} has no finalized selection to revoke "
                f"(status '{target.status}')",
                status=target.status,
            )
        now = self._clock()
        if not target.compare_and_set_status(
            self._session,
            TargetStatus.SELECTION_FINALIZED,
            TargetStatus.SELECTION_FORCED_REDO,
            now=now,
            clear_active_run=True,
        ):
            raise ConflictError(f"Target {target.id} was modified concurrently")

        run = SelectionRun.active_for_target(self._session, target.id)
        if run is None:
            raise StateError(
                f"Target {target.id} is finalized but has no active run",
                status=target.status,
            )
        run.is_active = False
        run.superseded_at = now
        run.revoked_by = actor
        self._session.flush()
        logger.warning(
            f"Revoked selection run {run.run_key} for target {target.id} "
            f"(by {actor or 'unknown'})"
        )
        return run

    def _check_selectable(
        self, target: Target, *, force: bool, actor: Optional[str] = None
    ) -> TargetStatus:
        """Return the status the CAS must expect, revoking first when forced."""

        status = target.status_enum
        now = self._clock()
        if status is TargetStatus.SELECTION_FINALIZED:
            if not force:
                active = SelectionRun.active_for_target(self._session, target.id)
                run_key = active.run_key if active is not None else None
                logger.warning(
                    f"Rejected selection for {target.target_type} {target.id}: "
                    f"run {run_key} is already active"
                )
                raise ConflictError(
                    f"Winners were already selected for {target.target_type} {target.id}",
                    run_key=run_key,
                )
            self._revoke(target, actor=actor)
            return TargetStatus.SELECTION_FORCED_REDO
        if status is TargetStatus.OPEN and not target.has_ended(now):
            raise StateError(
                f"{target.target_type.capitalize()} {target.id} is still open for entries",
                status=target.status,
            )
        return status

    def _run(
        self,
        target_id: int,
        target_type: TargetType,
        criteria: SelectionCriteria,
        *,
        force: bool,
        keep_previous_winners_eligible: bool,
        actor: Optional[str] = None,
    ) -> SelectionResult:
        actor = _normalize_actor(actor)
        target = self._load_target(target_id, target_type)
        forced = target.status_enum is TargetStatus.SELECTION_FORCED_REDO or (
            force and target.status_enum is TargetStatus.SELECTION_FINALIZED
        )
        expected_status = self._check_selectable(target, force=force, actor=actor)

        # Only random draws consume a seed; generate it up front so it is recorded.
        method, _ = resolve_method(criteria)
        if method is SelectionMethod.RANDOM and criteria.seed is None:
            criteria = criteria.with_seed(generate_seed())
        filter_criteria = criteria.with_method(method)

        entries = Entry.for_target(self._session, target.id)
        candidates = [Candidate.from_entry(entry) for entry in entries]
        prior_winners = (
            WinnerRecord.user_ids_for_target(self._session, target.id, active_only=True)
            if keep_previous_winners_eligible
            else WinnerRecord.user_ids_for_target(self._session, target.id)
        )
        eligible = filter_candidates(
            candidates, filter_criteria, prior_winner_user_ids=prior_winners
        )

        scores = None
        if method is SelectionMethod.HYBRID:
            scores = compute_composite_scores(eligible, criteria.effective_weights)
        elif method is SelectionMethod.SCORE_BASED:
            scores = raw_scores(eligible)

        outcome = select_winners(
            eligible, criteria, scores=scores, registry=self._registry
        )

        run, records = self._persist(
            target,
            criteria,
            outcome,
            expected_status=expected_status,
            forced=forced,
            actor=actor,
        )
        logger.info(
            f"Selected {outcome.selected_count}/{outcome.requested} winner(s) for "
            f"{target.target_type} {target.id} (run={run.run_key}, "
            f"method={outcome.method.value}, eligible={outcome.eligible_count}, "
            f"seed={(outcome.seed or '-')[:16]})"
        )
        return SelectionResult(
            run=run,
            target_id=target.id,
            target_type=target.type_enum,
            winners=records,
            method=outcome.method,
            requested_method=outcome.requested_method,
            eligible_count=outcome.eligible_count,
            requested_count=outcome.requested,
            seed=outcome.seed,
            notes=list(outcome.notes),
        )

    def _persist(
        self,
        target: Target,
        criteria: SelectionCriteria,
        outcome: SelectionOutcome,
        *,
        expected_status: TargetStatus,
        forced: bool,
        actor: Optional[str] = None,
    ) -> tuple[SelectionRun, list[WinnerRecord]]:
        """Write the run and its winners, then claim the target via compare-and-set.

        Everything is flushed into the caller's transaction. Any failure leaves
        the transaction to be rolled back, so no partial run is ever committed.
        """

        # A failed flush expires every loaded object; read ids up front.
        target_id = target.id
        target_type = target.target_type
        now = self._clock()
        claim_deadline = now + timedelta(days=self._settings.claim_window_days)
        run = SelectionRun(
            run_key=uuid.uuid4().hex,
            target_id=target_id,
            method=outcome.method.value,
            requested_method=outcome.requested_method.value,
            max_winners=outcome.requested,
            eligible_count=outcome.eligible_count,
            selected_count=outcome.selected_count,
            shortfall=outcome.shortfall,
            seed=outcome.seed,
            fallback_reason=outcome.fallback_reason,
            criteria=criteria.to_dict(),
            forced=forced,
            selected_by=actor,
            created_at=now,
        )
        records = [
            WinnerRecord(
                run=run,
                target_id=target_id,
                target_type=target_type,
                entry_id=winner.entry_id,
                user_id=winner.user_id,
                method=outcome.method.value,
                rank=winner.rank,
                score=winner.score,
                selection_reason=winner.reason,
                prize_claim_deadline=claim_deadline,
                created_at=now,
            )
            for winner in outcome.winners
        ]
        self._session.add(run)
        self._session.add_all(records)
        try:
            self._session.flush()
        except IntegrityError as exc:
            if not is_active_run_violation(exc):
                logger.error(
                    f"Failed to store selection run for target {target_id}: {exc.orig}"
                )
                raise
            logger.warning(f"Active run index rejected a new run for target {target_id}")
            raise ConflictError(
                f"Another selection run is already active for target {target_id}"
            ) from exc

        if not target.compare_and_set_status(
            self._session,
            expected_status,
            TargetStatus.SELECTION_FINALIZED,
            now=now,
            active_run_id=run.id,
        ):
            logger.warning(f"Lost the status race for target {target_id}")
            raise ConflictError(
                f"Target {target_id} was finalized by a concurrent selection"
            )
        return run, records


def is_active_run_violation(exc: IntegrityError) -> bool:
    """Return ``True`` when ``exc`` comes from the one-active-run unique index.

    SQLite reports the indexed column, PostgreSQL names the index itself.
    """

    message = str(exc.orig)
    return ACTIVE_RUN_INDEX in message or "selection_runs.target_id" in message


def _normalize_actor(actor: Optional[str]) -> Optional[str]:
    if actor is None:
        return None
    if not isinstance(actor, str) or not actor.strip():
        raise ValidationError({"actor": ["must be a non-empty string"]})
    actor = actor.strip()
    if len(actor) > 64:
        raise ValidationError({"actor": ["must be at most 64 characters"]})
    return actor


__all__ = [
    "DrawStatus",
    "SelectionResult",
    "WinnerSelectionEngine",
    "is_active_run_violation",
]
