"""Database models recording winner selection runs and their winners."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .entry import Entry
    from .target import Target
    from .user import User


class SelectionRun(Base):
    """One atomic winner-selection invocation for a target.

    At most one run per target is active at a time. Revoking a run through the
    force path flips :attr:`is_active` off and stamps :attr:`superseded_at`;
    nothing else about a run changes after it is written.
    """

    __tablename__ = "selection_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    run_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    """Public identifier grouping every winner chosen together."""

    target_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("targets.id", ondelete="CASCADE"), nullable=False, index=True
    )

    method: Mapped[str] = mapped_column(String(20), nullable=False)
    """Method actually applied (``hybrid`` may fall back to ``random``)."""

    requested_method: Mapped[str] = mapped_column(String(20), nullable=False)
    """Method named by the caller before any fallback or override."""

    max_winners: Mapped[int] = mapped_column(Integer, nullable=False)
    eligible_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    selected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shortfall: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    seed: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Replay seed of the random source; ``None`` for purely ranked runs."""

    fallback_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    criteria: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    """Snapshot of the validated criteria used for the run."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """``True`` when the run replaced a revoked one."""

    selected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Operator who triggered the run, when the caller supplied one."""

    revoked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Operator who revoked the run through the force path."""

    superseded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    target: Mapped["Target"] = relationship(back_populates="runs")
    winners: Mapped[list["WinnerRecord"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="WinnerRecord.rank",
    )

    __table_args__ = (
        # Storage-level guard for the one-active-run-per-target rule.
        Index(
            "uq_selection_runs_one_active",
            "target_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    def __init__(
        self,
        *,
        run_key: str,
        target: Optional["Target"] = None,
        target_id: Optional[int] = None,
        method: str,
        requested_method: Optional[str] = None,
        max_winners: int,
        eligible_count: int = 0,
        selected_count: int = 0,
        shortfall: int = 0,
        seed: Optional[str] = None,
        fallback_reason: Optional[str] = None,
        criteria: Optional[dict[str, Any]] = None,
        is_active: bool = True,
        forced: bool = False,
        selected_by: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.run_key = run_key
        if target is not None:
            self.target = target
        if target_id is not None:
            self.target_id = target_id
        self.method = method
        self.requested_method = requested_method or method
        self.max_winners = max_winners
        self.eligible_count = eligible_count
        self.selected_count = selected_count
        self.shortfall = shortfall
        self.seed = seed
        self.fallback_reason = fallback_reason
        self.criteria = criteria
        self.is_active = is_active
        self.forced = forced
        self.selected_by = selected_by
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<SelectionRun(id={id}, target_id={target}, method={method}, active={active})>".format(
            id=self.id,
            target=self.target_id,
            method=self.method,
            active=self.is_active,
        )

    @classmethod
    def active_for_target(
        cls, session: Session, target_id: int
    ) -> Optional["SelectionRun"]:
        """Return the active run for ``target_id`` if one exists."""

        return session.scalar(
            select(cls).where(cls.target_id == target_id, cls.is_active.is_(True))
        )

    @classmethod
    def get_by_run_key(cls, session: Session, run_key: str) -> Optional["SelectionRun"]:
        return session.scalar(select(cls).where(cls.run_key == run_key))


class WinnerRecord(Base):
    """Append-only record of one winning entry within a selection run."""

    __tablename__ = "winner_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("selection_runs.id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("targets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entry_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Composite score behind the pick; ``None`` for random draws."""

    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    """1-based position among the winners of the run."""

    selection_reason: Mapped[str] = mapped_column(String(255), nullable=False)
    prize_claim_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    run: Mapped["SelectionRun"] = relationship(back_populates="winners")
    entry: Mapped["Entry"] = relationship()
    user: Mapped["User"] = relationship(back_populates="wins")

    __table_args__ = (
        UniqueConstraint("run_id", "rank", name="uq_winner_records_run_rank"),
        UniqueConstraint("run_id", "entry_id", name="uq_winner_records_run_entry"),
        Index("ix_winner_records_method", "method"),
    )

    def __init__(
        self,
        *,
        run: Optional["SelectionRun"] = None,
        run_id: Optional[int] = None,
        target_id: int,
        target_type: str,
        entry_id: int,
        user_id: int,
        method: str,
        rank: int,
        selection_reason: str,
        score: Optional[float] = None,
        prize_claim_deadline: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        if run is not None:
            self.run = run
        if run_id is not None:
            self.run_id = run_id
        self.target_id = target_id
        self.target_type = target_type
        self.entry_id = entry_id
        self.user_id = user_id
        self.method = method
        self.rank = rank
        self.selection_reason = selection_reason
        self.score = score
        self.prize_claim_deadline = prize_claim_deadline
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<WinnerRecord(id={id}, run_id={run}, rank={rank}, user_id={user}, score={score})>".format(
            id=self.id,
            run=self.run_id,
            rank=self.rank,
            user=self.user_id,
            score=self.score,
        )

    @classmethod
    def user_ids_for_target(
        cls, session: Session, target_id: int, *, active_only: bool = False
    ) -> set[int]:
        """Return users holding a winner record for ``target_id``.

        Superseded runs are included unless ``active_only`` is set.
        """

        stmt = select(cls.user_id).where(cls.target_id == target_id)
        if active_only:
            stmt = stmt.join(SelectionRun, SelectionRun.id == cls.run_id).where(
                SelectionRun.is_active.is_(True)
            )
        return set(session.scalars(stmt).all())


__all__ = [
    "SelectionRun",
    "WinnerRecord",
]
