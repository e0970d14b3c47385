from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from ..config import BATCH_INTERVAL_HOURS, DEFAULT_MATCHING_CONFIG
from .candidates import as_utc
from .lifecycle import derived_tier


def _percentile(values: list[float], p: float) -> float | None:
    if not values:
        return None
    vals = sorted(values)
    if len(vals) == 1:
        return round(vals[0], 6)
    pos = (len(vals) - 1) * p
    lo = int(pos)
    hi = min(lo + 1, len(vals) - 1)
    frac = pos - lo
    v = vals[lo] * (1 - frac) + vals[hi] * frac
    return round(v, 6)


def percentile_summary(values: list[float]) -> dict[str, float | None]:
    return {
        "p10": _percentile(values, 0.10),
        "p50": _percentile(values, 0.50),
        "p90": _percentile(values, 0.90),
    }


def next_batch_eta(now: datetime, interval_hours: int = BATCH_INTERVAL_HOURS) -> datetime:
    """Next run boundary on the fixed UTC schedule (every interval_hours from midnight)."""
    now = as_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    slot = (now.hour // interval_hours + 1) * interval_hours
    eta = midnight + timedelta(hours=slot)
    if eta <= now:
        eta += timedelta(hours=interval_hours)
    return eta


def pool_status(rows: list[dict[str, Any]], now: datetime, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    by_tier = {0: 0, 1: 0, 2: 0}
    expiring_soon = 0
    oldest: datetime | None = None
    expiry = timedelta(days=int(cfg["POOL_EXPIRY_DAYS"]))

    for row in rows:
        joined_at = as_utc(row["joined_at"])
        tier = min(2, max(int(row.get("tier") or 0), derived_tier(joined_at, now)))
        by_tier[tier] += 1
        if expiry - timedelta(hours=24) <= now - joined_at < expiry:
            expiring_soon += 1
        if oldest is None or joined_at < oldest:
            oldest = joined_at

    return {
        "total": len(rows),
        "by_tier": {str(k): v for k, v in by_tier.items()},
        "expiring_within_24h": expiring_soon,
        "oldest_joined_at": oldest.isoformat() if oldest else None,
        "next_batch_eta": next_batch_eta(now).isoformat(),
    }
