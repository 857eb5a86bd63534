from __future__ import annotations

import sqlite3
import unittest
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from contestwin.config import SelectionSettings
from contestwin.db.utils import as_utc
from contestwin.models import (
    Base,
    Entry,
    EntryStatus,
    SelectionRun,
    Target,
    TargetStatus,
    TargetType,
    User,
    WinnerRecord,
)
from contestwin.selection import (
    Candidate,
    ConflictError,
    NotFoundError,
    SelectionCriteria,
    SelectionMethod,
    StateError,
    ValidationError,
    WeightingFactors,
    WinnerSelectionEngine,
    select_winners,
)
from contestwin.selection.engine import is_active_run_violation
from contestwin.selection.selector import HYBRID_ZERO_WEIGHTS_FALLBACK
from contestwin import workflows

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
SEED = "0badc0ffee"


class SelectionEngineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _selection_engine(self, session, **kwargs) -> WinnerSelectionEngine:
        kwargs.setdefault("settings", SelectionSettings())
        return WinnerSelectionEngine(session, clock=lambda: NOW, **kwargs)

    def _seed_target(
        self,
        entries: list[dict],
        *,
        target_type: TargetType = TargetType.CONTEST,
        status: TargetStatus = TargetStatus.CLOSED,
        ends_at: Optional[datetime] = None,
    ) -> tuple[int, list[int], list[int]]:
        """Create a target with one user per entry mapping.

        Returns the target id, the user ids and the entry ids in creation order.
        """
        with self.Session.begin() as session:
            target = Target(
                target_type=target_type,
                title=f"Test {target_type.value}",
                status=status,
                ends_at=ends_at,
            )
            session.add(target)
            session.flush()

            user_ids: list[int] = []
            entry_ids: list[int] = []
            for offset, values in enumerate(entries):
                user = User(in_app_id=f"{target_type.value}-{target.id}-{offset}")
                session.add(user)
                session.flush()
                entry = Entry(
                    target=target,
                    user=user,
                    created_at=NOW - timedelta(days=2) + timedelta(minutes=offset),
                    **values,
                )
                session.add(entry)
                session.flush()
                user_ids.append(user.id)
                entry_ids.append(entry.id)
            return target.id, user_ids, entry_ids

    def _count(self, model) -> int:
        with self.Session() as session:
            return int(session.scalar(select(func.count()).select_from(model)) or 0)


class SelectionScenarioTests(SelectionEngineTestCase):
    def test_random_excludes_listed_users(self):
        contest_id, user_ids, _ = self._seed_target([{} for _ in range(10)])
        excluded = set(user_ids[:3])

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(
                    method=SelectionMethod.RANDOM,
                    max_winners=5,
                    exclude_user_ids=excluded,
                ),
            )
            session.commit()

        winner_users = [w.user_id for w in result.winners]
        self.assertEqual(len(winner_users), 5)
        self.assertEqual(len(set(winner_users)), 5)
        self.assertTrue(excluded.isdisjoint(winner_users))
        self.assertEqual(result.eligible_count, 7)
        self.assertEqual(result.shortfall, 0)
        self.assertIsNotNone(result.seed)
        self.assertEqual(result.run.seed, result.seed)
        self.assertEqual([w.rank for w in result.winners], [1, 2, 3, 4, 5])

    def test_score_based_with_min_score(self):
        contest_id, _, entry_ids = self._seed_target(
            [{"score": s} for s in [90, 80, 70, 60, 50]]
        )

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                {"method": "score-based", "maxWinners": 3, "minScore": 65},
            )
            session.commit()

        self.assertEqual([w.score for w in result.winners], [90, 80, 70])
        self.assertEqual([w.entry_id for w in result.winners], entry_ids[:3])
        self.assertEqual(result.eligible_count, 3)
        self.assertEqual(result.shortfall, 0)
        self.assertEqual(result.notes, [])
        self.assertIsNone(result.seed)
        self.assertEqual(result.winners[0].selection_reason, "Ranked #1 with score of 90")

    def test_small_pool_reports_shortfall(self):
        contest_id, _, _ = self._seed_target([{}, {}])

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=5),
            )
            session.commit()

        self.assertEqual(result.selected_count, 2)
        self.assertEqual(result.shortfall, 3)
        self.assertTrue(result.truncated)
        self.assertEqual(len(result.notes), 1)
        self.assertIn("shortfall of 3", result.notes[0])
        self.assertEqual(result.run.shortfall, 3)

    def test_hybrid_zero_weights_matches_random(self):
        contest_id, _, _ = self._seed_target(
            [{"score": 10 * i, "engagement_count": i} for i in range(1, 9)]
        )

        with self.Session() as session:
            candidates = [
                Candidate.from_entry(entry)
                for entry in Entry.for_target(session, contest_id)
            ]
            expected = select_winners(
                candidates,
                SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=3, seed=SEED),
            )

            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(
                    method=SelectionMethod.HYBRID,
                    max_winners=3,
                    seed=SEED,
                    weighting_factors=WeightingFactors(),
                ),
            )
            session.commit()

        self.assertEqual(
            [w.entry_id for w in result.winners],
            [w.entry_id for w in expected.winners],
        )
        self.assertIs(result.method, SelectionMethod.RANDOM)
        self.assertIs(result.requested_method, SelectionMethod.HYBRID)
        self.assertIn(HYBRID_ZERO_WEIGHTS_FALLBACK, result.notes)
        self.assertEqual(result.run.fallback_reason, HYBRID_ZERO_WEIGHTS_FALLBACK)
        self.assertEqual(result.run.method, "random")
        self.assertEqual(result.run.requested_method, "hybrid")

    def test_hybrid_ranks_by_weighted_composite(self):
        contest_id, _, entry_ids = self._seed_target(
            [
                {"score": 90, "engagement_count": 0},
                {"score": 50, "engagement_count": 100},
                {"score": 70, "engagement_count": 50},
            ]
        )

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                {
                    "method": "hybrid",
                    "max_winners": 3,
                    "weighting_factors": {"score": 1, "socialEngagement": 3},
                },
            )
            session.commit()

        self.assertEqual(
            [w.entry_id for w in result.winners],
            [entry_ids[1], entry_ids[2], entry_ids[0]],
        )
        for winner in result.winners:
            self.assertGreaterEqual(winner.score, 0.0)
            self.assertLessEqual(winner.score, 1.0)
            self.assertTrue(winner.selection_reason.startswith(f"Ranked #{winner.rank}"))

    def test_require_verification(self):
        contest_id, _, _ = self._seed_target(
            [{"is_verified": i % 2 == 0} for i in range(6)]
        )

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(
                    method=SelectionMethod.RANDOM,
                    max_winners=6,
                    require_verification=True,
                ),
            )
            session.commit()
            self.assertTrue(all(w.entry.is_verified for w in result.winners))

        self.assertEqual(result.selected_count, 3)

    def test_entries_flagged_as_winners_are_skipped(self):
        contest_id, _, entry_ids = self._seed_target(
            [{"score": 95, "is_winner": True}, {"score": 60}]
        )

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
            )
            session.commit()

        self.assertEqual([w.entry_id for w in result.winners], [entry_ids[1]])

    def test_inactive_entries_never_win(self):
        giveaway_id, _, entry_ids = self._seed_target(
            [
                {"status": EntryStatus.WITHDRAWN},
                {"status": EntryStatus.ENTERED},
                {"status": EntryStatus.DISQUALIFIED},
                {"status": EntryStatus.DRAFT},
            ],
            target_type=TargetType.GIVEAWAY,
        )

        with self.Session() as session:
            status = self._selection_engine(session).draw_status(giveaway_id)
            result = self._selection_engine(session).select_giveaway_winners(
                giveaway_id, {"maxWinners": 4, "seed": SEED}
            )
            session.commit()

        self.assertEqual(status.total_entries, 1)
        self.assertEqual(result.eligible_count, 1)
        self.assertEqual([w.entry_id for w in result.winners], [entry_ids[1]])
        self.assertEqual(result.shortfall, 3)

    def test_records_claim_deadline_and_active_run(self):
        contest_id, _, _ = self._seed_target([{"score": 75}, {"score": 65}])

        with self.Session() as session:
            result = self._selection_engine(
                session, settings=SelectionSettings(claim_window_days=7)
            ).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
            )
            session.commit()

        for winner in result.winners:
            self.assertEqual(
                as_utc(winner.prize_claim_deadline), NOW + timedelta(days=7)
            )
            self.assertEqual(winner.target_type, "contest")
            self.assertEqual(winner.run_id, result.run.id)

        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertEqual(target.status, TargetStatus.SELECTION_FINALIZED.value)
            self.assertEqual(target.active_run_id, result.run.id)
            run = SelectionRun.get_by_run_key(session, result.run_key)
            assert run is not None
            self.assertTrue(run.is_active)
            self.assertFalse(run.forced)
            self.assertEqual(run.criteria["method"], "score-based")
            self.assertEqual([w.rank for w in run.winners], [1, 2])

    def test_result_to_dict(self):
        contest_id, _, _ = self._seed_target([{"score": 80}])

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
            )
            session.commit()

        payload = result.to_dict()
        self.assertEqual(payload["run_key"], result.run_key)
        self.assertEqual(payload["method"], "score-based")
        self.assertEqual(payload["requested_count"], 2)
        self.assertEqual(payload["selected_count"], 1)
        self.assertEqual(payload["shortfall"], 1)
        self.assertEqual(payload["winners"][0]["rank"], 1)
        self.assertEqual(
            payload["winners"][0]["prize_claim_deadline"],
            (NOW + timedelta(days=30)).isoformat(),
        )


class ValidationAndStateTests(SelectionEngineTestCase):
    def test_invalid_criteria_rejected_before_any_write(self):
        contest_id, _, _ = self._seed_target([{}])

        with self.Session() as session:
            with self.assertRaises(ValidationError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    contest_id, {"method": "random", "maxWinners": 0}
                )
            self.assertIn("max_winners", ctx.exception.errors)
            session.rollback()

        self.assertEqual(self._count(SelectionRun), 0)

    def test_settings_limit_applies(self):
        contest_id, _, _ = self._seed_target([{}])

        with self.Session() as session:
            with self.assertRaises(ValidationError):
                self._selection_engine(
                    session, settings=SelectionSettings(max_winners=3)
                ).select_contest_winners(
                    contest_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=5),
                )

    def test_missing_target(self):
        with self.Session() as session:
            with self.assertRaises(NotFoundError):
                self._selection_engine(session).select_contest_winners(
                    404, SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1)
                )

    def test_wrong_target_type_is_not_found(self):
        giveaway_id, _, _ = self._seed_target([{}], target_type=TargetType.GIVEAWAY)

        with self.Session() as session:
            with self.assertRaises(NotFoundError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    giveaway_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
                )
            self.assertEqual(str(ctx.exception), f"Contest {giveaway_id} not found")

    def test_open_target_not_selectable(self):
        contest_id, _, _ = self._seed_target(
            [{}], status=TargetStatus.OPEN, ends_at=NOW + timedelta(days=1)
        )

        with self.Session() as session:
            with self.assertRaises(StateError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    contest_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
                )
            self.assertEqual(ctx.exception.status, "open")

    def test_ended_open_target_is_selectable(self):
        contest_id, _, _ = self._seed_target(
            [{}, {}], status=TargetStatus.OPEN, ends_at=NOW - timedelta(hours=1)
        )

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
            )
            session.commit()

        self.assertEqual(result.selected_count, 1)
        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertEqual(target.status_enum, TargetStatus.SELECTION_FINALIZED)
            self.assertEqual(as_utc(target.closed_at), NOW)


class IdempotencyTests(SelectionEngineTestCase):
    def _first_run(self, contest_id: int):
        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
            )
            session.commit()
        return result

    def test_second_call_conflicts_and_keeps_first_run(self):
        contest_id, _, _ = self._seed_target([{"score": s} for s in [90, 80, 70, 60]])
        first = self._first_run(contest_id)

        with self.Session() as session:
            with self.assertRaises(ConflictError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    contest_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=2),
                )
            self.assertEqual(ctx.exception.run_key, first.run_key)
            session.rollback()

        with self.Session() as session:
            records = session.scalars(
                select(WinnerRecord).order_by(WinnerRecord.rank)
            ).all()
            self.assertEqual(
                [r.entry_id for r in records], [w.entry_id for w in first.winners]
            )
            self.assertEqual(
                session.scalar(select(func.count()).select_from(SelectionRun)), 1
            )

    def test_force_revokes_and_excludes_previous_winners(self):
        contest_id, _, entry_ids = self._seed_target(
            [{"score": s} for s in [90, 80, 70, 60]]
        )
        first = self._first_run(contest_id)

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
                force=True,
            )
            session.commit()

        self.assertEqual([w.entry_id for w in result.winners], entry_ids[2:])
        self.assertTrue(result.run.forced)

        with self.Session() as session:
            old_run = SelectionRun.get_by_run_key(session, first.run_key)
            assert old_run is not None
            self.assertFalse(old_run.is_active)
            self.assertEqual(as_utc(old_run.superseded_at), NOW)
            active = SelectionRun.active_for_target(session, contest_id)
            assert active is not None
            self.assertEqual(active.run_key, result.run_key)
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertEqual(target.active_run_id, active.id)

    def test_force_can_keep_previous_winners_eligible(self):
        contest_id, _, entry_ids = self._seed_target(
            [{"score": s} for s in [90, 80, 70, 60]]
        )
        self._first_run(contest_id)

        with self.Session() as session:
            result = workflows.force_reselect_contest_winners(
                session,
                contest_id,
                {"method": "score-based", "max_winners": 2},
                keep_previous_winners_eligible=True,
                settings=SelectionSettings(),
            )
            session.commit()

        self.assertEqual([w.entry_id for w in result.winners], entry_ids[:2])

    def test_revoke_then_select_without_force(self):
        contest_id, _, _ = self._seed_target([{"score": s} for s in [90, 80, 70]])
        first = self._first_run(contest_id)

        with self.Session() as session:
            revoked = self._selection_engine(session).revoke_selection(contest_id)
            session.commit()
        self.assertEqual(revoked.run_key, first.run_key)
        self.assertFalse(revoked.is_active)

        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertEqual(target.status_enum, TargetStatus.SELECTION_FORCED_REDO)
            self.assertIsNone(target.active_run_id)

        with self.Session() as session:
            result = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
            )
            session.commit()
        self.assertTrue(result.run.forced)
        self.assertEqual(result.selected_count, 1)
        self.assertEqual(result.shortfall, 1)

    def test_actor_recorded_on_selection_and_revocation(self):
        contest_id, _, _ = self._seed_target([{"score": s} for s in [90, 80, 70, 60]])

        with self.Session() as session:
            first = self._selection_engine(session).select_contest_winners(
                contest_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=2),
                actor=" ops-admin ",
            )
            session.commit()
        self.assertEqual(first.run.selected_by, "ops-admin")
        self.assertEqual(first.to_dict()["selected_by"], "ops-admin")

        with self.Session() as session:
            second = workflows.force_reselect_contest_winners(
                session,
                contest_id,
                {"method": "score-based", "max_winners": 2},
                actor="auditor",
                settings=SelectionSettings(),
                clock=lambda: NOW,
            )
            session.commit()

        with self.Session() as session:
            old_run = SelectionRun.get_by_run_key(session, first.run_key)
            new_run = SelectionRun.get_by_run_key(session, second.run_key)
            assert old_run is not None and new_run is not None
            self.assertEqual(old_run.selected_by, "ops-admin")
            self.assertEqual(old_run.revoked_by, "auditor")
            self.assertEqual(new_run.selected_by, "auditor")
            self.assertIsNone(new_run.revoked_by)

    def test_blank_actor_rejected_before_any_write(self):
        contest_id, _, _ = self._seed_target([{}, {}])

        with self.Session() as session:
            with self.assertRaises(ValidationError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    contest_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
                    actor="   ",
                )
            self.assertIn("actor", ctx.exception.errors)
        self.assertEqual(self._count(SelectionRun), 0)

    def test_revoke_requires_finalized_selection(self):
        contest_id, _, _ = self._seed_target([{}])

        with self.Session() as session:
            with self.assertRaises(StateError):
                self._selection_engine(session).revoke_selection(contest_id)


class AtomicityTests(SelectionEngineTestCase):
    def test_lost_status_race_leaves_no_winners(self):
        contest_id, _, _ = self._seed_target([{"score": 90}, {"score": 80}])

        with self.Session() as session:
            with patch.object(Target, "compare_and_set_status", return_value=False):
                with self.assertRaises(ConflictError):
                    self._selection_engine(session).select_contest_winners(
                        contest_id,
                        SelectionCriteria(
                            method=SelectionMethod.SCORE_BASED, max_winners=2
                        ),
                    )
            session.rollback()

        self.assertEqual(self._count(WinnerRecord), 0)
        self.assertEqual(self._count(SelectionRun), 0)
        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertEqual(target.status_enum, TargetStatus.CLOSED)

    def test_concurrent_active_run_is_a_conflict(self):
        contest_id, _, _ = self._seed_target([{}, {}])
        # Another writer already inserted an active run but has not moved the status yet.
        with self.Session.begin() as session:
            session.add(
                SelectionRun(
                    run_key="f" * 32,
                    target_id=contest_id,
                    method="random",
                    max_winners=1,
                )
            )

        with self.Session() as session:
            with self.assertRaises(ConflictError) as ctx:
                self._selection_engine(session).select_contest_winners(
                    contest_id,
                    SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
                )
            self.assertIn(f"target {contest_id}", str(ctx.exception))
            session.rollback()

        self.assertEqual(self._count(WinnerRecord), 0)
        self.assertEqual(self._count(SelectionRun), 1)

    def test_other_integrity_errors_propagate(self):
        contest_id, _, _ = self._seed_target([{}, {}])
        failure = IntegrityError(
            "INSERT INTO winner_records",
            {},
            sqlite3.IntegrityError("FOREIGN KEY constraint failed"),
        )

        with self.Session() as session:
            real_flush = session.flush

            def flush_rejecting_runs(*args, **kwargs):
                if any(isinstance(obj, SelectionRun) for obj in session.new):
                    raise failure
                return real_flush(*args, **kwargs)

            with patch.object(session, "flush", side_effect=flush_rejecting_runs):
                with self.assertRaises(IntegrityError) as ctx:
                    self._selection_engine(session).select_contest_winners(
                        contest_id,
                        SelectionCriteria(method=SelectionMethod.RANDOM, max_winners=1),
                    )
            self.assertIs(ctx.exception, failure)
            session.rollback()

        self.assertEqual(self._count(WinnerRecord), 0)
        self.assertEqual(self._count(SelectionRun), 0)

    def test_active_run_violation_detection(self):
        def violation(message: str) -> IntegrityError:
            return IntegrityError("INSERT", {}, Exception(message))

        self.assertTrue(
            is_active_run_violation(
                violation("UNIQUE constraint failed: selection_runs.target_id")
            )
        )
        self.assertTrue(
            is_active_run_violation(
                violation(
                    'duplicate key value violates unique constraint '
                    '"uq_selection_runs_one_active"'
                )
            )
        )
        self.assertFalse(
            is_active_run_violation(
                violation("UNIQUE constraint failed: winner_records.run_id, winner_records.rank")
            )
        )
        self.assertFalse(
            is_active_run_violation(violation("FOREIGN KEY constraint failed"))
        )
        self.assertEqual(self._count(SelectionRun), 1)


class GiveawayTests(SelectionEngineTestCase):
    def test_giveaway_ignores_requested_method(self):
        giveaway_id, _, _ = self._seed_target(
            [{}, {}, {}], target_type=TargetType.GIVEAWAY
        )

        with self.Session() as session:
            result = workflows.select_giveaway_winners(
                session,
                giveaway_id,
                {
                    "method": "score-based",
                    "maxWinners": 2,
                    "minScore": 99,
                    "weightingFactors": {"score": 1},
                },
                settings=SelectionSettings(),
            )
            session.commit()

        self.assertIs(result.method, SelectionMethod.RANDOM)
        self.assertIs(result.requested_method, SelectionMethod.RANDOM)
        self.assertEqual(result.selected_count, 2)
        self.assertTrue(all(w.method == "random" for w in result.winners))
        self.assertTrue(all(w.target_type == "giveaway" for w in result.winners))

    def test_giveaway_overrides_criteria_object(self):
        giveaway_id, _, _ = self._seed_target([{}, {}], target_type=TargetType.GIVEAWAY)

        with self.Session() as session:
            result = self._selection_engine(session).select_giveaway_winners(
                giveaway_id,
                SelectionCriteria(method=SelectionMethod.SCORE_BASED, max_winners=1),
            )
            session.commit()

        self.assertIs(result.method, SelectionMethod.RANDOM)
        self.assertIsNotNone(result.seed)

    def test_contest_id_is_not_a_giveaway(self):
        contest_id, _, _ = self._seed_target([{}])

        with self.Session() as session:
            with self.assertRaises(NotFoundError):
                self._selection_engine(session).select_giveaway_winners(
                    contest_id, {"maxWinners": 1}
                )


class TargetLifecycleTests(SelectionEngineTestCase):
    def test_close_target(self):
        contest_id, _, _ = self._seed_target([{}], status=TargetStatus.OPEN)

        with self.Session() as session:
            target = self._selection_engine(session).close_target(contest_id)
            session.commit()
        self.assertEqual(target.status_enum, TargetStatus.CLOSED)
        self.assertEqual(as_utc(target.closed_at), NOW)

        with self.Session() as session:
            with self.assertRaises(StateError):
                self._selection_engine(session).close_target(contest_id)

    def test_illegal_transition_rejected(self):
        contest_id, _, _ = self._seed_target([{}], status=TargetStatus.CLOSED)

        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            with self.assertRaises(ValueError):
                target.compare_and_set_status(
                    session, TargetStatus.CLOSED, TargetStatus.OPEN, now=NOW
                )

    def test_stale_expected_status_loses(self):
        contest_id, _, _ = self._seed_target([{}], status=TargetStatus.CLOSED)

        with self.Session() as session:
            target = session.get(Target, contest_id)
            assert target is not None
            self.assertFalse(
                target.compare_and_set_status(
                    session, TargetStatus.OPEN, TargetStatus.CLOSED, now=NOW
                )
            )
            self.assertEqual(target.status_enum, TargetStatus.CLOSED)

    def test_draw_status_lifecycle(self):
        giveaway_id, _, _ = self._seed_target(
            [{}, {}], target_type=TargetType.GIVEAWAY, status=TargetStatus.OPEN,
            ends_at=NOW + timedelta(days=1),
        )

        with self.Session() as session:
            status = workflows.get_draw_status(session, giveaway_id, clock=lambda: NOW)
        self.assertFalse(status.can_draw)
        self.assertFalse(status.is_closed)
        self.assertEqual(status.total_entries, 2)

        with self.Session() as session:
            self._selection_engine(session).close_target(giveaway_id)
            status = self._selection_engine(session).draw_status(giveaway_id)
            session.commit()
        self.assertTrue(status.can_draw)

        with self.Session() as session:
            self._selection_engine(session).select_giveaway_winners(
                giveaway_id, {"maxWinners": 1}
            )
            status = self._selection_engine(session).draw_status(giveaway_id)
            session.commit()
        self.assertFalse(status.can_draw)
        self.assertTrue(status.winners_already_drawn)
        self.assertEqual(status.winners_drawn, 1)
        payload = status.to_dict()
        self.assertEqual(payload["status"], "selection-finalized")
        self.assertFalse(payload["eligibility_check"]["has_ended"])

    def test_draw_status_follows_injected_clock(self):
        giveaway_id, _, _ = self._seed_target(
            [{}], target_type=TargetType.GIVEAWAY, status=TargetStatus.OPEN,
            ends_at=NOW + timedelta(days=1),
        )

        with self.Session() as session:
            before = workflows.get_draw_status(session, giveaway_id, clock=lambda: NOW)
            after = workflows.get_draw_status(
                session, giveaway_id, clock=lambda: NOW + timedelta(days=2)
            )
        self.assertFalse(before.has_ended)
        self.assertFalse(before.can_draw)
        self.assertTrue(after.has_ended)
        self.assertTrue(after.can_draw)

    def test_draw_status_without_entries(self):
        contest_id, _, _ = self._seed_target([])

        with self.Session() as session:
            status = self._selection_engine(session).draw_status(contest_id)
        self.assertTrue(status.is_closed)
        self.assertFalse(status.has_entries)
        self.assertFalse(status.can_draw)


if __name__ == "__main__":
    unittest.main()
