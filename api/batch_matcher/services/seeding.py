import json
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from ..config import INTENTION_VALID_HOURS
from .lifecycle import derived_tier

LOCATIONS = ["palo alto", "sf"]
ACTIVITY_OPTIONS = ["coffee", "live music", "art walk", "dinner", "outdoors"]
TIME_WINDOW_OPTIONS = ["fri evening", "sat daytime", "sat evening", "sun daytime"]
VIBE_OPTIONS = ["low-key", "outgoing", "intellectual", "adventurous"]
GENDER_OPTIONS = ["male", "female", "nonbinary"]
ORIENTATION_OPTIONS = ["straight", "gay / lesbian", "bisexual", "pansexual", "questioning", "prefer not to say"]
GROUP_SIZE_OPTIONS = [
    "one-on-one or small group (2-3 people)",
    "medium group (5-8 people)",
    "large group (8+ people)",
    "i'm flexible; depends on activity",
]


def _seeded_uuid(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def generate_pool_rows(
    n_users: int,
    *,
    seed: int = 42,
    now: datetime | None = None,
    romantic_share: float = 0.5,
    max_wait_hours: int = 24 * 8,
) -> list[dict[str, Any]]:
    """Deterministic dummy pool in the same row shape the store's snapshot returns."""
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    rows: list[dict[str, Any]] = []

    for _ in range(n_users):
        connection = "romantic" if rng.random() < romantic_share else "friends"
        joined_at = now - timedelta(hours=rng.randint(0, max_wait_hours))
        gender = rng.choices(GENDER_OPTIONS, weights=[0.45, 0.45, 0.10], k=1)[0]
        orientation = rng.choices(ORIENTATION_OPTIONS, weights=[0.55, 0.12, 0.15, 0.06, 0.06, 0.06], k=1)[0]
        rows.append(
            {
                "entry_id": _seeded_uuid(rng),
                "intention_id": _seeded_uuid(rng),
                "user_id": _seeded_uuid(rng),
                "tier": derived_tier(joined_at, now),
                "joined_at": joined_at,
                "parsed_json": {
                    "what": {"intention": connection, "activities": rng.sample(ACTIVITY_OPTIONS, k=rng.randint(1, 3))},
                    "when": rng.sample(TIME_WINDOW_OPTIONS, k=rng.randint(1, 2)),
                    "where": rng.choice(LOCATIONS),
                    "vibe": rng.sample(VIBE_OPTIONS, k=1),
                },
                "free_text": "",
                "age": rng.randint(21, 36),
                "gender": gender,
                "survey_responses": [
                    {"question_id": "sexual_orientation", "value": orientation},
                    {"question_id": "group_size", "value": rng.choice(GROUP_SIZE_OPTIONS)},
                    {"question_id": "music_genres", "value": rng.sample(["indie", "hip hop", "jazz", "pop", "edm"], k=2)},
                ],
            }
        )
    return rows


def seed_pool(db, rows: list[dict[str, Any]], *, reset: bool = False) -> dict[str, int]:
    if reset:
        for table in ("match_event", "match_member", "match", "pool_entry", "survey_response", "intention", "user_profile"):
            db.execute(text(f"DELETE FROM {table}"))

    responses = 0
    for row in rows:
        db.execute(
            text(
                """
                INSERT INTO user_profile (user_id, age, gender)
                VALUES (CAST(:user_id AS uuid), :age, :gender)
                ON CONFLICT (user_id) DO UPDATE SET age = EXCLUDED.age, gender = EXCLUDED.gender
                """
            ),
            {"user_id": row["user_id"], "age": row["age"], "gender": row["gender"]},
        )
        db.execute(
            text(
                """
                INSERT INTO intention (id, user_id, text, parsed_json, status, valid_until, created_at)
                VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :text, CAST(:parsed_json AS jsonb), 'active', :valid_until, :created_at)
                """
            ),
            {
                "id": row["intention_id"],
                "user_id": row["user_id"],
                "text": row["free_text"],
                "parsed_json": json.dumps(row["parsed_json"]),
                "valid_until": row["joined_at"] + timedelta(hours=INTENTION_VALID_HOURS),
                "created_at": row["joined_at"],
            },
        )
        db.execute(
            text(
                """
                INSERT INTO pool_entry (id, intention_id, tier, joined_at)
                VALUES (CAST(:id AS uuid), CAST(:intention_id AS uuid), :tier, :joined_at)
                """
            ),
            {"id": row["entry_id"], "intention_id": row["intention_id"], "tier": row["tier"], "joined_at": row["joined_at"]},
        )
        for response in row["survey_responses"]:
            db.execute(
                text(
                    """
                    INSERT INTO survey_response (id, user_id, question_id, value)
                    VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :question_id, CAST(:value AS jsonb))
                    ON CONFLICT (user_id, question_id) DO UPDATE SET value = EXCLUDED.value
                    """
                ),
                {
                    "id": str(uuid.uuid4()),
                    "user_id": row["user_id"],
                    "question_id": response["question_id"],
                    "value": json.dumps(response["value"]),
                },
            )
            responses += 1

    db.commit()
    return {"pool_entries": len(rows), "survey_responses": responses}
