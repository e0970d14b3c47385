from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..config import DEFAULT_MATCHING_CONFIG, TIER1_AFTER_HOURS, TIER2_AFTER_HOURS
from .candidates import as_utc

EXPIRED = "expired"


@dataclass
class TierSweep:
    promotions: dict[str, int] = field(default_factory=dict)
    expired: list[str] = field(default_factory=list)
    expired_intentions: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)


def derived_tier(joined_at: datetime, now: datetime) -> int:
    waited = now - joined_at
    if waited >= timedelta(hours=TIER2_AFTER_HOURS):
        return 2
    if waited >= timedelta(hours=TIER1_AFTER_HOURS):
        return 1
    return 0


def transition_entry(
    current_tier: int,
    joined_at: datetime,
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> int | str:
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    if now - joined_at >= timedelta(days=int(cfg["POOL_EXPIRY_DAYS"])):
        return EXPIRED
    return max(int(current_tier), derived_tier(joined_at, now))


def plan_tier_sweep(
    rows: list[dict[str, Any]],
    consumed_entry_ids: set[str],
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> TierSweep:
    """Decide promotions and expiries for every snapshot entry not consumed by a match."""
    sweep = TierSweep()
    for row in rows:
        entry_id = str(row["entry_id"])
        if entry_id in consumed_entry_ids:
            continue
        current = int(row.get("tier") or 0)
        outcome = transition_entry(current, as_utc(row["joined_at"]), now, cfg=cfg)
        if outcome == EXPIRED:
            sweep.expired.append(entry_id)
            if row.get("intention_id"):
                sweep.expired_intentions.append(str(row["intention_id"]))
            continue
        sweep.retained.append(entry_id)
        if outcome != current:
            sweep.promotions[entry_id] = outcome
    return sweep
