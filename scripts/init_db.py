from __future__ import annotations

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from contestwin.db.engine import make_engine

SELECTION_TABLES = ("users", "targets", "entries", "selection_runs", "winner_records")


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def report_tables() -> int:
    """Print the selection tables and return how many are missing."""
    engine = make_engine()
    existing = set(inspect(engine).get_table_names())
    missing = [name for name in SELECTION_TABLES if name not in existing]
    print("Selection tables present:", ", ".join(n for n in SELECTION_TABLES if n in existing))
    if missing:
        print("Missing tables:", ", ".join(missing))
    engine.dispose()
    return len(missing)


def main() -> int:
    parser = argparse.ArgumentParser(description="Migrate the winner selection schema.")
    parser.add_argument("revision", nargs="?", default="head")
    args = parser.parse_args()
    upgrade_db(args.revision)
    return 1 if report_tables() else 0


if __name__ == "__main__":
    raise SystemExit(main())
