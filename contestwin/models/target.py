"""Contests and giveaways that winners are selected for."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    func,
    select,
    update,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import as_utc
from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .entry import Entry
    from .selection import SelectionRun


class TargetType(str, enum.Enum):
    CONTEST = "contest"
    GIVEAWAY = "giveaway"


class TargetStatus(str, enum.Enum):
    """Lifecycle of a target with respect to winner selection.

    ``open`` accepts entries. ``closed`` no longer accepts entries and is
    waiting for a draw. ``selection-finalized`` has exactly one active
    selection run. ``selection-forced-redo`` had its active run revoked through
    the force path and is waiting for a replacement run.
    """

    OPEN = "open"
    CLOSED = "closed"
    SELECTION_FINALIZED = "selection-finalized"
    SELECTION_FORCED_REDO = "selection-forced-redo"


# Allowed (from, to) pairs. Anything else is rejected before touching storage.
STATUS_TRANSITIONS: frozenset[tuple[TargetStatus, TargetStatus]] = frozenset(
    {
        (TargetStatus.OPEN, TargetStatus.CLOSED),
        (TargetStatus.OPEN, TargetStatus.SELECTION_FINALIZED),
        (TargetStatus.CLOSED, TargetStatus.SELECTION_FINALIZED),
        (TargetStatus.SELECTION_FINALIZED, TargetStatus.SELECTION_FORCED_REDO),
        (TargetStatus.SELECTION_FORCED_REDO, TargetStatus.SELECTION_FINALIZED),
    }
)


class Target(Base):
    """A contest or giveaway whose entries compete for winner slots."""

    __tablename__ = "targets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    """Either ``"contest"`` or ``"giveaway"``."""

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=TargetStatus.OPEN.value
    )
    """Current :class:`TargetStatus` value, changed only through compare-and-set."""

    ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the target stops accepting entries. ``None`` means closed manually."""

    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    active_run_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Id of the selection run currently in force for this target, if any."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    entries: Mapped[list["Entry"]] = relationship(
        back_populates="target", cascade="all, delete-orphan"
    )
    runs: Mapped[list["SelectionRun"]] = relationship(
        back_populates="target", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "target_type IN ('contest','giveaway')", name="target_type_enum"
        ),
        CheckConstraint(
            "status IN ('open','closed','selection-finalized','selection-forced-redo')",
            name="target_status_enum",
        ),
        Index("ix_targets_type_status", "target_type", "status"),
    )

    def __init__(
        self,
        *,
        target_type: TargetType | str,
        title: str,
        status: TargetStatus | str = TargetStatus.OPEN,
        ends_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self.target_type = TargetType(target_type).value
        self.title = title
        self.status = TargetStatus(status).value
        self.ends_at = ends_at
        self.closed_at = closed_at
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Target(id={id}, type={type}, status={status})>".format(
            id=self.id,
            type=self.target_type,
            status=self.status,
        )

    @property
    def type_enum(self) -> TargetType:
        return TargetType(self.target_type)

    @property
    def status_enum(self) -> TargetStatus:
        return TargetStatus(self.status)

    def has_ended(self, now: datetime) -> bool:
        """Return ``True`` when ``ends_at`` is set and not in the future."""

        ends_at = as_utc(self.ends_at)
        if ends_at is None:
            return False
        return ends_at <= now

    def compare_and_set_status(
        self,
        session: Session,
        expected: TargetStatus,
        new: TargetStatus,
        *,
        now: datetime,
        active_run_id: Optional[int] = None,
        clear_active_run: bool = False,
    ) -> bool:
        """Atomically move the row from ``expected`` to ``new``.

        The ``UPDATE`` is guarded by ``status = expected`` so two requests racing
        on the same target cannot both succeed, whichever process they run in.

        Parameters
        ----------
        session : Session
            Session whose transaction the update joins.
        expected : TargetStatus
            Status the row must currently hold.
        new : TargetStatus
            Status to store.
        now : datetime
            Timestamp written to ``updated_at`` (and ``closed_at`` on close).
        active_run_id : Optional[int], default: None
            New value for :attr:`active_run_id` when provided.
        clear_active_run : bool, default: False
            Set :attr:`active_run_id` to ``NULL``.

        Returns
        -------
        bool
            ``True`` when the row was updated, ``False`` when another writer
            changed the status first.

        Raises
        ------
        ValueError
            If ``expected -> new`` is not an allowed transition.
        """

        if (expected, new) not in STATUS_TRANSITIONS:
            raise ValueError(
                f"Illegal target status transition {expected.value!r} -> {new.value!r}"
            )

        values: dict = {"status": new.value, "updated_at": now}
        if expected is TargetStatus.OPEN:
            values["closed_at"] = now
        if active_run_id is not None:
            values["active_run_id"] = active_run_id
        elif clear_active_run:
            values["active_run_id"] = None

        result = session.execute(
            update(Target)
            .where(Target.id == self.id, Target.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        # Reload so the identity-mapped object reflects whichever writer won.
        session.refresh(self)
        return result.rowcount == 1

    @classmethod
    def count_entries(cls, session: Session, target_id: int) -> int:
        """Count the entries of ``target_id`` that are still competing."""

        from .entry import ACTIVE_ENTRY_STATUSES, Entry

        stmt = select(func.count(Entry.id)).where(
            Entry.target_id == target_id,
            Entry.status.in_(sorted(s.value for s in ACTIVE_ENTRY_STATUSES)),
        )
        return int(session.scalar(stmt) or 0)


__all__ = [
    "STATUS_TRANSITIONS",
    "Target",
    "TargetStatus",
    "TargetType",
]
