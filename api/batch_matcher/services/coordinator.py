from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import MATCHER_LOCK_ID
from .candidates import as_utc, build_candidates, split_by_connection_type
from .grouping import form_friendship_groups
from .lifecycle import plan_tier_sweep
from .matching import MatchProposal, match_romantic_pool
from .reporting import percentile_summary

logger = logging.getLogger(__name__)


@dataclass
class BatchRunResult:
    success: bool
    duration_ms: int
    skipped: bool = False
    error: str | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "stats": self.stats,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


def _release(lock, key: int) -> None:
    try:
        lock.release(key)
        logger.info("[LOCK] released matcher lock %s", key)
    except Exception:
        logger.exception("[LOCK] failed to release matcher lock %s", key)


def _commit_proposals(store, proposals: list[MatchProposal], now: datetime) -> tuple[set[str], int]:
    claimed: set[str] = set()
    consumed: set[str] = set()
    stale = 0
    for proposal in proposals:
        entry_ids = set(proposal.entry_ids)
        if claimed & entry_ids:
            raise RuntimeError("pool entry proposed for more than one match")
        claimed |= entry_ids
        if store.commit_match(proposal, now) is None:
            stale += 1
            continue
        consumed |= entry_ids
    return consumed, stale


def _run_locked(store, now: datetime, cfg: dict[str, Any] | None) -> dict[str, Any]:
    rows = store.fetch_pool_snapshot()
    candidates, excluded = build_candidates(rows, now, cfg=cfg)
    romantic, friends = split_by_connection_type(candidates)
    logger.info(
        "[BATCH] snapshot entries=%s candidates=%s romantic=%s friends=%s excluded=%s",
        len(rows),
        len(candidates),
        len(romantic),
        len(friends),
        len(excluded),
    )

    romantic_matches = match_romantic_pool(romantic, now, cfg=cfg)
    friend_groups = form_friendship_groups(friends, now, cfg=cfg)
    proposals = romantic_matches + friend_groups

    consumed, stale = _commit_proposals(store, proposals, now)
    sweep = plan_tier_sweep(rows, consumed, now, cfg=cfg)
    sweep_counts = store.apply_tier_sweep(sweep, now)

    return {
        "snapshot_entries": len(rows),
        "candidates": len(candidates),
        "excluded": dict(Counter(e["reason"] for e in excluded)),
        "romantic_pool": len(romantic),
        "friendship_pool": len(friends),
        "romantic_matches": len(romantic_matches),
        "friendship_groups": len(friend_groups),
        "group_sizes": {str(k): v for k, v in sorted(Counter(p.group_size for p in friend_groups).items())},
        "matched_entries": len(consumed),
        "stale_skipped": stale,
        "score_percentiles": percentile_summary([p.score for p in proposals]),
        "tier_sweep": sweep_counts,
    }


def run_batch_cycle(
    store,
    lock,
    *,
    now: datetime | None = None,
    cfg: dict[str, Any] | None = None,
    lock_key: int = MATCHER_LOCK_ID,
) -> BatchRunResult:
    """Run one matching cycle if no other run holds the matcher lock.

    Never raises: lock contention comes back as a skipped success, and any
    failure after the lock is taken comes back as success=False with the
    lock released.
    """
    started = time.monotonic()
    now = as_utc(now or datetime.now(timezone.utc))

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        acquired = lock.try_acquire(lock_key)
    except Exception as exc:
        logger.exception("[BATCH] lock service unavailable")
        return BatchRunResult(success=False, duration_ms=elapsed_ms(), error=str(exc) or exc.__class__.__name__)

    if not acquired:
        logger.info("[BATCH] another matcher run holds lock %s, skipping", lock_key)
        return BatchRunResult(success=True, skipped=True, duration_ms=elapsed_ms())

    logger.info("[BATCH] lock %s acquired, starting batch at %s", lock_key, now.isoformat())
    try:
        stats = _run_locked(store, now, cfg)
    except Exception as exc:
        logger.exception("[BATCH] batch matching failed")
        return BatchRunResult(success=False, duration_ms=elapsed_ms(), error=str(exc) or exc.__class__.__name__)
    finally:
        _release(lock, lock_key)

    result = BatchRunResult(success=True, duration_ms=elapsed_ms(), stats=stats)
    logger.info(
        "[BATCH] complete in %sms: %s romantic match(es), %s group(s)",
        result.duration_ms,
        stats["romantic_matches"],
        stats["friendship_groups"],
    )
    return result
