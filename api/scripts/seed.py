import argparse
import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from batch_matcher.database import SessionLocal, engine
from batch_matcher.models import create_schema
from batch_matcher.services.seeding import generate_pool_rows, seed_pool


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a dummy matching pool")
    parser.add_argument("--n-users", type=int, default=100)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--romantic-share", type=float, default=0.5)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--create-schema", action="store_true")
    args = parser.parse_args()

    if args.create_schema:
        create_schema(engine)

    rows = generate_pool_rows(args.n_users, seed=args.seed, romantic_share=args.romantic_share)
    with SessionLocal() as db:
        summary = seed_pool(db, rows, reset=args.reset)

    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
