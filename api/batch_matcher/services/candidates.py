from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from ..config import DEFAULT_MATCHING_CONFIG
from ..schemas import ConnectionType, Intention

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    entry_id: str
    tier: int
    joined_at: datetime
    intention: Intention
    age: int | None = None
    gender: str | None = None
    survey: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.intention.user_id

    @property
    def intention_id(self) -> str:
        return self.intention.id

    @property
    def connection_type(self) -> ConnectionType:
        return self.intention.connection_type


def as_utc(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"expected a timestamp, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_age(value: Any) -> int | None:
    try:
        if value is None:
            return None
        age = int(value)
    except (TypeError, ValueError):
        return None
    return age if age > 0 else None


def _survey_answers(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return {str(k): v for k, v in raw.items() if v is not None}
    if not isinstance(raw, list):
        return {}
    out: dict[str, Any] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        qid = str(item.get("question_id") or "").strip()
        value = item.get("value")
        if isinstance(value, str) and value[:1] in {"[", "{", '"'}:
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                pass
        if qid and value is not None:
            out[qid] = value
    return out


def build_candidate(row: dict[str, Any]) -> Candidate:
    intention = Intention.from_chips(
        intention_id=row.get("intention_id"),
        user_id=row.get("user_id"),
        chips=row.get("parsed_json"),
        free_text=row.get("free_text"),
    )
    gender = str(row.get("gender") or "").strip() or None
    return Candidate(
        entry_id=str(row["entry_id"]),
        tier=max(0, min(2, int(row.get("tier") or 0))),
        joined_at=as_utc(row["joined_at"]),
        intention=intention,
        age=_to_age(row.get("age")),
        gender=gender,
        survey=_survey_answers(row.get("survey_responses")),
    )


def build_candidates(
    rows: list[dict[str, Any]],
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> tuple[list[Candidate], list[dict[str, str]]]:
    """Turn snapshot rows into candidates, keeping snapshot order.

    Rows whose intent blob fails validation, rows already past the pool
    expiry age, and later rows of a user who already has a candidate are
    reported in the second list and never matched. They stay in the
    snapshot so the tier sweep still sees them.
    """
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    expiry = timedelta(days=int(cfg["POOL_EXPIRY_DAYS"]))
    candidates: list[Candidate] = []
    excluded: list[dict[str, str]] = []
    seen_users: set[str] = set()

    for row in rows:
        entry_id = str(row.get("entry_id"))
        try:
            candidate = build_candidate(row)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("[POOL] excluding entry %s: malformed intent (%s)", entry_id, exc)
            excluded.append({"entry_id": entry_id, "reason": "malformed_intent"})
            continue
        if now - candidate.joined_at >= expiry:
            excluded.append({"entry_id": entry_id, "reason": "expired"})
            continue
        # One candidate per user; rows arrive oldest first so the earliest entry wins.
        if candidate.user_id in seen_users:
            logger.warning("[POOL] excluding entry %s: user %s already has an entry in this run", entry_id, candidate.user_id)
            excluded.append({"entry_id": entry_id, "reason": "duplicate_user"})
            continue
        seen_users.add(candidate.user_id)
        candidates.append(candidate)
    return candidates, excluded


def split_by_connection_type(candidates: list[Candidate]) -> tuple[list[Candidate], list[Candidate]]:
    romantic = [c for c in candidates if c.connection_type == ConnectionType.romantic]
    friends = [c for c in candidates if c.connection_type == ConnectionType.friends]
    return romantic, friends
