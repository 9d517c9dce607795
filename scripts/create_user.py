import argparse
import os
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stagecontrol.database import Database, resolve_database_path
from stagecontrol.errors import ConsoleError


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Insert a user record into the StageControl collection")
    parser.add_argument("full_name", help="Full name shown in the admin console")
    parser.add_argument("email", help="Email address for the user")
    parser.add_argument("role", help="Role label, e.g. Admin, Super Admin or Moderator")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to STAGECONTROL_DB_PATH or data/stagecontrol.sqlite3)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)

    db_env = args.db_path or os.getenv("STAGECONTROL_DB_PATH")
    db_path = resolve_database_path(db_env)

    try:
        with Database(db_path) as database:
            database.initialize()
            user = database.insert(args.full_name, args.email, args.role)
    except ConsoleError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.full_name} <{user.email}> ({user.role})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
