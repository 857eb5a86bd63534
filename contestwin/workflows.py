from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from sqlalchemy.orm import Session

from .config import SelectionSettings
from .models import SelectionRun, Target
from .selection.criteria import SelectionCriteria
from .selection.engine import DrawStatus, SelectionResult, WinnerSelectionEngine
from .selection.selector import SelectionMethodRegistry
from .selection.stats import WinnerStats, get_winner_stats as _get_winner_stats

CriteriaInput = Union[SelectionCriteria, Mapping[str, Any]]
Clock = Callable[[], datetime]


def select_contest_winners(
    session: Session,
    contest_id: int,
    criteria: CriteriaInput,
    *,
    actor: Optional[str] = None,
    registry: Optional[SelectionMethodRegistry] = None,
    settings: Optional[SelectionSettings] = None,
    clock: Optional[Clock] = None,
) -> SelectionResult:
    """Select winners for a contest and persist them as one selection run.

    This function essentially wraps :class:`WinnerSelectionEngine`. The run is
    flushed into ``session``'s transaction; committing is the caller's job, and
    a rollback discards the whole run.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    contest_id : int
        Id of the contest.
    criteria : SelectionCriteria or Mapping
        Selection request. Raw mappings accept snake_case or camelCase keys.
    actor : Optional[str], default: None
        Operator triggering the draw, recorded as the run's ``selected_by``.
    registry : Optional[SelectionMethodRegistry], default: None
        Optional strategy registry to use instead of the default one.
    settings : Optional[SelectionSettings], default: None
        Optional limits. Read from the environment when omitted.
    clock : Optional[Callable[[], datetime]], default: None
        Source of the current UTC time. The wall clock when omitted.

    Returns
    -------
    SelectionResult
        Ranked winners, counts, notes and the replay seed.

    Raises
    ------
    ValidationError
        If the criteria are malformed.
    NotFoundError
        If the contest does not exist.
    StateError
        If the contest is still open for entries.
    ConflictError
        If winners were already selected for the contest.
    """

    engine = WinnerSelectionEngine(
        session, registry=registry, settings=settings, clock=clock
    )
    return engine.select_contest_winners(contest_id, criteria, actor=actor)


def select_giveaway_winners(
    session: Session,
    giveaway_id: int,
    criteria: CriteriaInput,
    *,
    actor: Optional[str] = None,
    registry: Optional[SelectionMethodRegistry] = None,
    settings: Optional[SelectionSettings] = None,
    clock: Optional[Clock] = None,
) -> SelectionResult:
    """Draw random winners for a giveaway and persist them as one selection run.

    Any method in ``criteria`` is ignored: giveaways are always drawn at random.
    See :func:`select_contest_winners` for the parameters and errors.
    """

    engine = WinnerSelectionEngine(
        session, registry=registry, settings=settings, clock=clock
    )
    return engine.select_giveaway_winners(giveaway_id, criteria, actor=actor)


def force_reselect_contest_winners(
    session: Session,
    contest_id: int,
    criteria: CriteriaInput,
    *,
    keep_previous_winners_eligible: bool = False,
    actor: Optional[str] = None,
    registry: Optional[SelectionMethodRegistry] = None,
    settings: Optional[SelectionSettings] = None,
    clock: Optional[Clock] = None,
) -> SelectionResult:
    """Revoke the contest's active run and select a replacement.

    Callers must authorize this separately from the normal selection path.
    Users who won in revoked runs stay ineligible unless
    ``keep_previous_winners_eligible`` is set. ``actor`` is recorded as both the
    revoker of the old run and the selector of the new one.
    """

    engine = WinnerSelectionEngine(
        session, registry=registry, settings=settings, clock=clock
    )
    return engine.select_contest_winners(
        contest_id,
        criteria,
        force=True,
        keep_previous_winners_eligible=keep_previous_winners_eligible,
        actor=actor,
    )


def force_reselect_giveaway_winners(
    session: Session,
    giveaway_id: int,
    criteria: CriteriaInput,
    *,
    keep_previous_winners_eligible: bool = False,
    actor: Optional[str] = None,
    registry: Optional[SelectionMethodRegistry] = None,
    settings: Optional[SelectionSettings] = None,
    clock: Optional[Clock] = None,
) -> SelectionResult:
    """Revoke the giveaway's active run and draw a replacement."""

    engine = WinnerSelectionEngine(
        session, registry=registry, settings=settings, clock=clock
    )
    return engine.select_giveaway_winners(
        giveaway_id,
        criteria,
        force=True,
        keep_previous_winners_eligible=keep_previous_winners_eligible,
        actor=actor,
    )


def revoke_selection(
    session: Session,
    target_id: int,
    *,
    actor: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> SelectionRun:
    """Mark the target's active run inactive and move it to forced redo."""

    engine = WinnerSelectionEngine(session, clock=clock)
    return engine.revoke_selection(target_id, actor=actor)


def close_target(
    session: Session, target_id: int, *, clock: Optional[Clock] = None
) -> Target:
    """Stop accepting entries for a contest or giveaway."""

    return WinnerSelectionEngine(session, clock=clock).close_target(target_id)


def get_draw_status(
    session: Session, target_id: int, *, clock: Optional[Clock] = None
) -> DrawStatus:
    """Return whether winners can be drawn for the target at ``clock()``."""

    return WinnerSelectionEngine(session, clock=clock).draw_status(target_id)


def get_winner_stats(
    session: Session,
    contest_id: Optional[int] = None,
    giveaway_id: Optional[int] = None,
    *,
    user_id: Optional[int] = None,
    include_superseded: bool = False,
) -> WinnerStats:
    """Summarize stored winners for a contest, a giveaway, a user, or everything.

    Zero winners yields a zeroed :class:`WinnerStats`, never an error.
    """

    return _get_winner_stats(
        session,
        contest_id,
        giveaway_id,
        user_id=user_id,
        include_superseded=include_superseded,
    )
