from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .target import Target
    from .user import User


class EntryStatus(str, enum.Enum):
    """Intake state of an entry.

    Contest submissions become ``submitted`` and giveaway entries ``entered``.
    Only those two states compete for winner slots.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    ENTERED = "entered"
    WITHDRAWN = "withdrawn"
    DISQUALIFIED = "disqualified"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_ENTRY_STATUSES


ACTIVE_ENTRY_STATUSES: frozenset[EntryStatus] = frozenset(
    {EntryStatus.SUBMITTED, EntryStatus.ENTERED}
)


class Entry(Base):
    """A participant's submission to a contest or entry into a giveaway.

    Entries are written by the entry-intake side of the platform. The winner
    selection engine only reads them.
    """

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    target_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("targets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EntryStatus.SUBMITTED.value
    )
    """Current :class:`EntryStatus` value, maintained by the intake side."""

    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Judge-assigned submission quality (0-100). ``None`` until judged."""

    participation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of prior entries and wins by the same user."""

    engagement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Likes and shares collected by the submission."""

    quality_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Optional secondary quality rating (0-100) separate from the judge score."""

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Set by the intake side when the entry already won this target."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    target: Mapped["Target"] = relationship(back_populates="entries")
    user: Mapped["User"] = relationship(back_populates="entries")

    __table_args__ = (
        CheckConstraint(
            "score IS NULL OR (score >= 0 AND score <= 100)", name="entry_score_range"
        ),
        CheckConstraint(
            "participation_count >= 0 AND engagement_count >= 0",
            name="entry_counts_non_negative",
        ),
        CheckConstraint(
            "status IN ('draft','submitted','entered','withdrawn','disqualified')",
            name="entry_status_enum",
        ),
        Index("ix_entries_target_created", "target_id", "created_at", "id"),
    )

    def __init__(
        self,
        *,
        target: Optional["Target"] = None,
        target_id: Optional[int] = None,
        user: Optional["User"] = None,
        user_id: Optional[int] = None,
        status: Union[EntryStatus, str] = EntryStatus.SUBMITTED,
        score: Optional[float] = None,
        participation_count: int = 0,
        engagement_count: int = 0,
        quality_rating: Optional[float] = None,
        is_verified: bool = False,
        is_winner: bool = False,
        created_at: Optional[datetime] = None,
    ) -> None:
        if target is not None:
            self.target = target
        if target_id is not None:
            self.target_id = target_id
        if user is not None:
            self.user = user
        if user_id is not None:
            self.user_id = user_id
        self.status = EntryStatus(status).value
        self.score = score
        self.participation_count = participation_count
        self.engagement_count = engagement_count
        self.quality_rating = quality_rating
        self.is_verified = is_verified
        self.is_winner = is_winner
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Entry(id={id}, target_id={target}, user_id={user}, score={score})>".format(
            id=self.id,
            target=self.target_id,
            user=self.user_id,
            score=self.score,
        )

    @classmethod
    def for_target(cls, session: Session, target_id: int) -> list["Entry"]:
        """Return the target's entries in creation order, ties broken by id."""

        stmt = (
            select(cls)
            .where(cls.target_id == target_id)
            .order_by(cls.created_at.asc(), cls.id.asc())
        )
        return list(session.scalars(stmt).all())

    @property
    def status_enum(self) -> EntryStatus:
        return EntryStatus(self.status)


__all__ = ["ACTIVE_ENTRY_STATUSES", "Entry", "EntryStatus"]
