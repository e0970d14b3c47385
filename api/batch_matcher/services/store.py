from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import text

from ..config import MATCH_EXPIRY_DAYS
from ..database import SessionLocal
from .events import log_match_event
from .lifecycle import TierSweep
from .matching import MatchProposal

logger = logging.getLogger(__name__)


class SqlPoolStore:
    """Pool reader and match writer over SQLAlchemy sessions.

    Each commit_match call is one transaction: match row, member rows,
    intention status, pool-entry deletion and audit events land together
    or not at all.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def fetch_pool_snapshot(self) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT
                      pe.id AS entry_id,
                      pe.intention_id,
                      pe.tier,
                      pe.joined_at,
                      i.user_id,
                      i.parsed_json,
                      i.text AS free_text,
                      up.age,
                      up.gender
                    FROM pool_entry pe
                    JOIN intention i ON i.id = pe.intention_id
                    LEFT JOIN user_profile up ON up.user_id = i.user_id
                    WHERE i.status = 'active'
                    ORDER BY pe.joined_at ASC, pe.id ASC
                    """
                )
            ).mappings().all()
            survey_rows = db.execute(
                text(
                    """
                    SELECT sr.user_id, sr.question_id, sr.value
                    FROM survey_response sr
                    JOIN intention i ON i.user_id = sr.user_id AND i.status = 'active'
                    JOIN pool_entry pe ON pe.intention_id = i.id
                    ORDER BY sr.user_id, sr.question_id
                    """
                )
            ).mappings().all()

        responses: dict[str, list[dict[str, Any]]] = {}
        for r in survey_rows:
            responses.setdefault(str(r["user_id"]), []).append({"question_id": str(r["question_id"]), "value": r["value"]})

        snapshot = []
        for row in rows:
            item = dict(row)
            item["entry_id"] = str(item["entry_id"])
            item["intention_id"] = str(item["intention_id"])
            item["user_id"] = str(item["user_id"])
            item["survey_responses"] = responses.get(item["user_id"], [])
            snapshot.append(item)
        return snapshot

    def commit_match(self, proposal: MatchProposal, now: datetime) -> str | None:
        """Persist one match and consume its pool entries; None when the snapshot went stale."""
        match_id = str(uuid.uuid4())
        expires_at = now + timedelta(days=MATCH_EXPIRY_DAYS)

        with self._session_factory() as db:
            res = db.execute(
                text("DELETE FROM pool_entry WHERE id = ANY(CAST(:entry_ids AS uuid[]))"),
                {"entry_ids": proposal.entry_ids},
            )
            if int(res.rowcount or 0) != proposal.group_size:
                db.rollback()
                logger.warning(
                    "[STORE] skipped %s match: %s of %s pool entries still present",
                    proposal.mode,
                    int(res.rowcount or 0),
                    proposal.group_size,
                )
                return None

            db.execute(
                text(
                    """
                    INSERT INTO match (id, mode, group_size, score, avg_compatibility, tier_used, status, created_at, expires_at)
                    VALUES (:id, :mode, :group_size, :score, :avg_compatibility, :tier_used, 'active', :created_at, :expires_at)
                    """
                ),
                {
                    "id": match_id,
                    "mode": proposal.mode,
                    "group_size": proposal.group_size,
                    "score": proposal.score,
                    "avg_compatibility": proposal.avg_compatibility,
                    "tier_used": proposal.tier_used,
                    "created_at": now,
                    "expires_at": expires_at,
                },
            )
            for user_id, intention_id in proposal.member_keys:
                db.execute(
                    text(
                        """
                        INSERT INTO match_member (id, match_id, user_id, intention_id)
                        VALUES (:id, :match_id, CAST(:user_id AS uuid), CAST(:intention_id AS uuid))
                        """
                    ),
                    {"id": str(uuid.uuid4()), "match_id": match_id, "user_id": user_id, "intention_id": intention_id},
                )
            db.execute(
                text("UPDATE intention SET status = 'matched' WHERE id = ANY(CAST(:intention_ids AS uuid[]))"),
                {"intention_ids": [iid for _, iid in proposal.member_keys]},
            )
            for user_id, _ in proposal.member_keys:
                log_match_event(
                    db,
                    "match_created",
                    match_id=match_id,
                    user_id=user_id,
                    payload={"mode": proposal.mode, "group_size": proposal.group_size, "score": proposal.score, "tier_used": proposal.tier_used},
                )
            db.commit()

        logger.info("[STORE] created %s match %s size=%s score=%.2f", proposal.mode, match_id, proposal.group_size, proposal.score)
        return match_id

    def apply_tier_sweep(self, sweep: TierSweep, now: datetime) -> dict[str, int]:
        counts = {"promoted": 0, "expired": 0, "lapsed_intentions": 0, "lapsed_entries": 0}

        with self._session_factory() as db:
            for tier in (1, 2):
                ids = sorted(eid for eid, t in sweep.promotions.items() if t == tier)
                if not ids:
                    continue
                res = db.execute(
                    text("UPDATE pool_entry SET tier = :tier WHERE id = ANY(CAST(:ids AS uuid[])) AND tier < :tier"),
                    {"tier": tier, "ids": ids},
                )
                counts["promoted"] += int(res.rowcount or 0)

            if sweep.expired:
                res = db.execute(
                    text("DELETE FROM pool_entry WHERE id = ANY(CAST(:ids AS uuid[]))"),
                    {"ids": sweep.expired},
                )
                counts["expired"] = int(res.rowcount or 0)
                db.execute(
                    text("UPDATE intention SET status = 'expired' WHERE id = ANY(CAST(:ids AS uuid[])) AND status = 'active'"),
                    {"ids": sweep.expired_intentions},
                )
                for entry_id in sweep.expired:
                    log_match_event(db, "pool_entry_expired", payload={"entry_id": entry_id})

            # Intentions past valid_until leave the pool too.
            res = db.execute(
                text("UPDATE intention SET status = 'expired' WHERE status = 'active' AND valid_until < :now"),
                {"now": now},
            )
            counts["lapsed_intentions"] = int(res.rowcount or 0)
            res = db.execute(
                text(
                    """
                    DELETE FROM pool_entry pe
                    USING intention i
                    WHERE i.id = pe.intention_id
                      AND i.status = 'expired'
                    """
                )
            )
            counts["lapsed_entries"] = int(res.rowcount or 0)

            if sweep.retained:
                db.execute(
                    text("UPDATE pool_entry SET last_batch_at = :now WHERE id = ANY(CAST(:ids AS uuid[]))"),
                    {"now": now, "ids": sweep.retained},
                )
            db.commit()

        logger.info(
            "[STORE] tier sweep promoted=%s expired=%s lapsed=%s",
            counts["promoted"],
            counts["expired"],
            counts["lapsed_entries"],
        )
        return counts
