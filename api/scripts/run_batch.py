import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from batch_matcher.config import LOG_LEVEL, MATCHER_LOCK_ID
from batch_matcher.database import SessionLocal, engine
from batch_matcher.models import create_schema
from batch_matcher.services.coordinator import run_batch_cycle
from batch_matcher.services.locks import PostgresAdvisoryLock
from batch_matcher.services.store import SqlPoolStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one batch matching cycle against the pool")
    parser.add_argument("--create-schema", action="store_true", help="create missing tables before running")
    parser.add_argument("--now", type=str, default="", help="ISO timestamp to use as the run clock")
    parser.add_argument("--lock-key", type=int, default=MATCHER_LOCK_ID)
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.create_schema:
        create_schema(engine)

    now = datetime.fromisoformat(args.now) if args.now else None
    result = run_batch_cycle(
        SqlPoolStore(SessionLocal),
        PostgresAdvisoryLock(engine),
        now=now,
        lock_key=args.lock_key,
    )
    print(json.dumps(result.as_dict(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
