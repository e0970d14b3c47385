from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from ..config import AGE_FLOOR_SCORE, AGE_TOLERANCE_STEPS, AGE_UNKNOWN_SCORE, DEFAULT_MATCHING_CONFIG, SCORE_WEIGHTS
from .candidates import Candidate

ROMANTIC = "romantic"
FRIENDSHIP = "friendship"
MODES = (ROMANTIC, FRIENDSHIP)

ORIENTATION_QUESTION_ID = "sexual_orientation"
_DAY_SECONDS = 86400.0
_FLUID_ORIENTATIONS = {"bisexual", "pansexual"}
_GENDER_ALIASES = {
    "man": "male",
    "men": "male",
    "m": "male",
    "woman": "female",
    "women": "female",
    "f": "female",
}


def waiting_days(a: Candidate, b: Candidate, now: datetime) -> int:
    """Whole days since the more recent of the two joined the pool."""
    elapsed = (now - max(a.joined_at, b.joined_at)).total_seconds()
    if elapsed <= 0:
        return 0
    return int(math.floor(elapsed / _DAY_SECONDS))


def wait_bucket(days: int) -> str:
    if days <= 1:
        return "fresh"
    if days <= 3:
        return "relaxed"
    return "extended"


def normalize_gender(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    return _GENDER_ALIASES.get(v, v)


def normalize_orientation(value: Any) -> str | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    if "pansexual" in v:
        return "pansexual"
    if "bisexual" in v:
        return "bisexual"
    if "gay" in v or "lesbian" in v or "homosexual" in v:
        return "gay"
    if "straight" in v or "heterosexual" in v:
        return "straight"
    return "other"


def orientation_compatible(a: Candidate, b: Candidate) -> bool:
    gender_a = normalize_gender(a.gender)
    gender_b = normalize_gender(b.gender)
    orient_a = normalize_orientation(a.survey.get(ORIENTATION_QUESTION_ID))
    orient_b = normalize_orientation(b.survey.get(ORIENTATION_QUESTION_ID))
    if not gender_a or not gender_b or not orient_a or not orient_b:
        return False
    if orient_a in _FLUID_ORIENTATIONS or orient_b in _FLUID_ORIENTATIONS:
        return True
    if orient_a == "straight" and orient_b == "straight":
        return gender_a != gender_b
    if orient_a == "gay" and orient_b == "gay":
        return gender_a == gender_b
    return False


def _as_tag_set(value: Any) -> set[str]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return {str(v).strip().lower() for v in value if v is not None}
    return {str(value).strip().lower()}


def jaccard(a: set[str] | frozenset[str], b: set[str] | frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def age_compatibility(age_a: int | None, age_b: int | None, bucket: str) -> float:
    if age_a is None or age_b is None:
        return AGE_UNKNOWN_SCORE
    gap = abs(age_a - age_b)
    for max_gap, score in AGE_TOLERANCE_STEPS[bucket]:
        if gap <= max_gap:
            return score
    return AGE_FLOOR_SCORE


def survey_match_ratio(survey_a: dict[str, Any], survey_b: dict[str, Any]) -> float:
    shared = sorted(set(survey_a) & set(survey_b))
    if not shared:
        return 0.0
    total = 0.0
    for qid in shared:
        va = survey_a[qid]
        vb = survey_b[qid]
        if isinstance(va, (list, tuple)) or isinstance(vb, (list, tuple)):
            total += jaccard(_as_tag_set(va), _as_tag_set(vb))
        elif str(va).strip().lower() == str(vb).strip().lower():
            total += 1.0
    return total / len(shared)


def intention_alignment(a: Candidate, b: Candidate, days: int, cfg: dict[str, Any]) -> float:
    if a.connection_type == b.connection_type:
        return 1.0
    if days >= int(cfg["INTENT_RELAX_DAYS"]):
        return float(cfg["PARTIAL_INTENT_CREDIT"])
    return 0.0


def _zero(mode: str, days: int, gates: list[str]) -> dict[str, Any]:
    return {
        "score_total": 0.0,
        "score_breakdown": {
            "mode": mode,
            "waiting_days": days,
            "gates": gates,
            "components": {},
        },
    }


def compute_compatibility(
    a: Candidate,
    b: Candidate,
    mode: str,
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if mode not in MODES:
        raise ValueError(f"Unknown scoring mode: {mode}")
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    days = waiting_days(a, b, now)

    if not a.intention.location or a.intention.location != b.intention.location:
        return _zero(mode, days, ["location_mismatch"])
    if not (a.intention.time_windows & b.intention.time_windows):
        return _zero(mode, days, ["no_time_overlap"])
    if mode == ROMANTIC and not orientation_compatible(a, b):
        return _zero(mode, days, ["orientation_incompatible"])

    bucket = wait_bucket(days)
    weights = SCORE_WEIGHTS[mode][bucket]
    components = {
        "intention": intention_alignment(a, b, days, cfg),
        "activity": jaccard(a.intention.activities, b.intention.activities),
        "age": age_compatibility(a.age, b.age, bucket),
        "survey": survey_match_ratio(a.survey, b.survey),
        "location": 1.0,
        "time": 1.0,
    }
    base = sum(weights[k] * components[k] for k in weights)
    multiplier = float(cfg["WAIT_BOOST_BASE"]) ** days
    total = max(0.0, min(1.0, base * multiplier))

    return {
        "score_total": round(total, 6),
        "score_breakdown": {
            "mode": mode,
            "waiting_days": days,
            "bucket": bucket,
            "gates": [],
            "components": {k: round(v, 6) for k, v in components.items()},
            "weights": dict(weights),
            "wait_multiplier": round(multiplier, 6),
            "base_score": round(base, 6),
        },
    }


def compatibility_score(a: Candidate, b: Candidate, mode: str, now: datetime, cfg: dict[str, Any] | None = None) -> float:
    return float(compute_compatibility(a, b, mode, now, cfg=cfg)["score_total"])


def build_compatibility_matrix(
    candidates: list[Candidate],
    mode: str,
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> list[list[float]]:
    n = len(candidates)
    matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            score = compatibility_score(candidates[i], candidates[j], mode, now, cfg=cfg)
            matrix[i][j] = score
            matrix[j][i] = score
    return matrix
