import json
import os
from typing import Any

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/cove")
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# pg advisory lock key shared by every batch matcher instance
MATCHER_LOCK_ID = int(os.getenv("MATCHER_LOCK_ID", "911911"))
BATCH_INTERVAL_HOURS = int(os.getenv("BATCH_INTERVAL_HOURS", "3"))

TIER1_AFTER_HOURS = int(os.getenv("TIER1_AFTER_HOURS", "24"))
TIER2_AFTER_HOURS = int(os.getenv("TIER2_AFTER_HOURS", "48"))
POOL_EXPIRY_DAYS = int(os.getenv("POOL_EXPIRY_DAYS", "7"))
MATCH_EXPIRY_DAYS = int(os.getenv("MATCH_EXPIRY_DAYS", "7"))
INTENTION_VALID_HOURS = int(os.getenv("INTENTION_VALID_HOURS", "72"))

DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "ROMANTIC_MIN_SCORE": float(os.getenv("ROMANTIC_MIN_SCORE", "0.0")),
    "SEED_PAIR_MIN_SCORE": float(os.getenv("SEED_PAIR_MIN_SCORE", "0.30")),
    "GROUP_VIABILITY_MIN_SCORE": float(os.getenv("GROUP_VIABILITY_MIN_SCORE", "0.30")),
    "MAX_MERGE_ITERATIONS": int(os.getenv("MAX_MERGE_ITERATIONS", "10")),
    "MIN_GROUP_SIZE": int(os.getenv("MIN_GROUP_SIZE", "2")),
    "MAX_GROUP_SIZE": int(os.getenv("MAX_GROUP_SIZE", "6")),
    "WAIT_BOOST_BASE": float(os.getenv("WAIT_BOOST_BASE", "1.2")),
    "PARTIAL_INTENT_CREDIT": float(os.getenv("PARTIAL_INTENT_CREDIT", "0.5")),
    "INTENT_RELAX_DAYS": int(os.getenv("INTENT_RELAX_DAYS", "4")),
    "POOL_EXPIRY_DAYS": POOL_EXPIRY_DAYS,
}

if os.getenv("MATCHING_CONFIG_JSON"):
    try:
        DEFAULT_MATCHING_CONFIG.update(json.loads(os.getenv("MATCHING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        pass

# Weight tables keyed by mode, then by waiting-day bucket. Each row sums to 1.0.
SCORE_WEIGHTS: dict[str, dict[str, dict[str, float]]] = {
    "romantic": {
        "fresh": {"intention": 0.25, "activity": 0.15, "age": 0.20, "survey": 0.20, "location": 0.10, "time": 0.10},
        "relaxed": {"intention": 0.20, "activity": 0.15, "age": 0.15, "survey": 0.20, "location": 0.15, "time": 0.15},
        "extended": {"intention": 0.15, "activity": 0.15, "age": 0.10, "survey": 0.20, "location": 0.20, "time": 0.20},
    },
    "friendship": {
        "fresh": {"intention": 0.20, "activity": 0.30, "age": 0.10, "survey": 0.20, "location": 0.10, "time": 0.10},
        "relaxed": {"intention": 0.15, "activity": 0.30, "age": 0.10, "survey": 0.15, "location": 0.15, "time": 0.15},
        "extended": {"intention": 0.10, "activity": 0.25, "age": 0.10, "survey": 0.15, "location": 0.20, "time": 0.20},
    },
}

# (max age gap, sub-score) steps per bucket; anything wider scores AGE_FLOOR_SCORE.
AGE_TOLERANCE_STEPS: dict[str, list[tuple[int, float]]] = {
    "fresh": [(3, 1.0), (6, 0.7), (10, 0.4)],
    "relaxed": [(5, 1.0), (8, 0.7), (12, 0.4)],
    "extended": [(7, 1.0), (10, 0.7), (15, 0.4)],
}
AGE_FLOOR_SCORE = 0.1
AGE_UNKNOWN_SCORE = 0.5
