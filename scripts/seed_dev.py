from datetime import datetime, timedelta, timezone
import random

from sqlalchemy.orm import sessionmaker

from contestwin.db.engine import make_engine
from contestwin.models import Base, Entry, Target, TargetStatus, TargetType, User


def main() -> None:
    """Seed the development database with a closed contest and an ended giveaway."""
    engine = make_engine()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    now = datetime.now(timezone.utc)
    # Fixed seed so every developer gets the same sample metrics.
    metrics = random.Random(2026)

    with Session.begin() as session:
        users = [
            User(
                in_app_id=f"user_{i:02d}",
                name=f"Creator {i:02d}",
                email=f"creator{i:02d}@example.com",
                created_at=now,
                updated_at=now,
            )
            for i in range(1, 13)
        ]
        session.add_all(users)
        session.flush()

        contest = Target(
            target_type=TargetType.CONTEST,
            title="Summer Short-Form Video Contest",
            status=TargetStatus.CLOSED,
            ends_at=now - timedelta(days=1),
            closed_at=now - timedelta(days=1),
        )
        giveaway = Target(
            target_type=TargetType.GIVEAWAY,
            title="Camera Kit Giveaway",
            status=TargetStatus.OPEN,
            ends_at=now - timedelta(hours=2),
        )
        session.add_all([contest, giveaway])
        session.flush()

        for offset, user in enumerate(users):
            session.add(
                Entry(
                    target=contest,
                    user=user,
                    score=float(metrics.randint(40, 100)),
                    participation_count=metrics.randint(0, 8),
                    engagement_count=metrics.randint(0, 500),
                    quality_rating=float(metrics.randint(30, 100)),
                    is_verified=offset % 4 != 0,
                    created_at=now - timedelta(days=10, minutes=-offset),
                )
            )
            session.add(
                Entry(
                    target=giveaway,
                    user=user,
                    is_verified=offset % 3 != 0,
                    created_at=now - timedelta(days=5, minutes=-offset),
                )
            )

    print("Seeded 12 users, 1 closed contest and 1 ended giveaway.")


if __name__ == "__main__":
    main()
