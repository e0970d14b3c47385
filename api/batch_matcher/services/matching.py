from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..config import DEFAULT_MATCHING_CONFIG
from .candidates import Candidate
from .scoring import ROMANTIC, build_compatibility_matrix


@dataclass
class MatchProposal:
    mode: str
    members: list[Candidate]
    score: float
    avg_compatibility: float

    @property
    def group_size(self) -> int:
        return len(self.members)

    @property
    def tier_used(self) -> int:
        return min(c.tier for c in self.members)

    @property
    def member_keys(self) -> list[tuple[str, str]]:
        return [(c.user_id, c.intention_id) for c in self.members]

    @property
    def entry_ids(self) -> list[str]:
        return [c.entry_id for c in self.members]


def candidate_pairs(matrix: list[list[float]], min_score: float = 0.0) -> list[tuple[int, int, float]]:
    """Unordered pairs scoring strictly above min_score, in (i, j) order."""
    out: list[tuple[int, int, float]] = []
    n = len(matrix)
    for i in range(n):
        for j in range(i + 1, n):
            if matrix[i][j] > min_score:
                out.append((i, j, matrix[i][j]))
    return out


def select_disjoint_pairs(matrix: list[list[float]], min_score: float = 0.0) -> list[tuple[int, int, float]]:
    # Greedy approximation of max-weight matching; ties keep candidate order.
    claimed: set[int] = set()
    selected: list[tuple[int, int, float]] = []
    for i, j, score in sorted(candidate_pairs(matrix, min_score), key=lambda p: (-p[2], p[0], p[1])):
        if i in claimed or j in claimed:
            continue
        claimed.add(i)
        claimed.add(j)
        selected.append((i, j, score))
    return selected


def match_romantic_pool(
    candidates: list[Candidate],
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> list[MatchProposal]:
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    if len(candidates) < 2:
        return []
    matrix = build_compatibility_matrix(candidates, ROMANTIC, now, cfg=cfg)
    return [
        MatchProposal(
            mode=ROMANTIC,
            members=[candidates[i], candidates[j]],
            score=score,
            avg_compatibility=score,
        )
        for i, j, score in select_disjoint_pairs(matrix, float(cfg["ROMANTIC_MIN_SCORE"]))
    ]
