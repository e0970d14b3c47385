from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from itertools import combinations
from typing import Any

from ..config import DEFAULT_MATCHING_CONFIG
from .candidates import Candidate
from .matching import MatchProposal, select_disjoint_pairs
from .scoring import FRIENDSHIP, build_compatibility_matrix

logger = logging.getLogger(__name__)

GROUP_SIZE_QUESTION_ID = "group_size"
DEFAULT_PREFERRED_SIZE = 2


@dataclass
class MatchGroup:
    members: frozenset[int]
    score: float
    avg_compatibility: float

    @property
    def size(self) -> int:
        return len(self.members)


def preferred_group_size(value: Any) -> int | None:
    """Map a group_size survey answer to a size; flexible answers cast no vote."""
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(2, min(6, int(value)))
    v = str(value).strip().lower()
    if "one-on-one" in v or "small" in v:
        return 2
    if "medium" in v:
        return 4
    if "large" in v:
        return 6
    return None


def avg_pairwise(members: frozenset[int], matrix: list[list[float]]) -> float:
    pairs = list(combinations(sorted(members), 2))
    if not pairs:
        return 0.0
    return sum(matrix[i][j] for i, j in pairs) / len(pairs)


def all_pairs_viable(members: frozenset[int], matrix: list[list[float]], min_score: float) -> bool:
    return all(matrix[i][j] >= min_score for i, j in combinations(sorted(members), 2))


def modal_preferred_size(members: frozenset[int], preferred: list[int | None]) -> int:
    votes = Counter(preferred[k] for k in members if preferred[k] is not None)
    if not votes:
        return DEFAULT_PREFERRED_SIZE
    top = max(votes.values())
    return min(size for size, count in votes.items() if count == top)


def group_priority(members: frozenset[int], preferred: list[int | None]) -> float:
    size = len(members)
    target = modal_preferred_size(members, preferred)
    priority = 1.0
    if size == target:
        priority += 0.5
    elif size > target:
        priority += 0.2
    priority += 0.1 * max(0, size - 2)
    return priority


def score_group(members: frozenset[int], matrix: list[list[float]], preferred: list[int | None]) -> MatchGroup:
    avg = avg_pairwise(members, matrix)
    return MatchGroup(
        members=members,
        score=avg * group_priority(members, preferred) * len(members),
        avg_compatibility=avg,
    )


def _simulate_merge(
    members: frozenset[int],
    matrix: list[list[float]],
    preferred: list[int | None],
    cfg: dict[str, Any],
) -> MatchGroup | None:
    if len(members) > int(cfg["MAX_GROUP_SIZE"]):
        return None
    if not all_pairs_viable(members, matrix, float(cfg["GROUP_VIABILITY_MIN_SCORE"])):
        return None
    return score_group(members, matrix, preferred)


def merge_groups(
    groups: list[MatchGroup],
    singles: list[int],
    matrix: list[list[float]],
    preferred: list[int | None],
    cfg: dict[str, Any] | None = None,
) -> list[MatchGroup]:
    """Agglomerate groups, applying the single best positive-benefit merge per iteration."""
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}
    groups = list(groups)
    singles = list(singles)

    for iteration in range(int(cfg["MAX_MERGE_ITERATIONS"])):
        best_benefit = 0.0
        best: tuple[MatchGroup, set[int], int | None] | None = None

        for gi, gj in combinations(range(len(groups)), 2):
            a, b = groups[gi], groups[gj]
            if a.members & b.members:
                continue
            merged = _simulate_merge(a.members | b.members, matrix, preferred, cfg)
            if merged is None:
                continue
            benefit = merged.score - a.score - b.score
            if benefit > best_benefit:
                best_benefit = benefit
                best = (merged, {gi, gj}, None)

        for gi, group in enumerate(groups):
            for single in singles:
                merged = _simulate_merge(group.members | {single}, matrix, preferred, cfg)
                if merged is None:
                    continue
                benefit = merged.score - group.score
                if benefit > best_benefit:
                    best_benefit = benefit
                    best = (merged, {gi}, single)

        if best is None:
            logger.debug("[GROUPS] no positive merge after %s iteration(s)", iteration)
            break

        merged, consumed, absorbed = best
        groups = [g for idx, g in enumerate(groups) if idx not in consumed]
        groups.append(merged)
        if absorbed is not None:
            singles.remove(absorbed)

    return groups


def form_friendship_groups(
    candidates: list[Candidate],
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> list[MatchProposal]:
    cfg = {**DEFAULT_MATCHING_CONFIG, **(cfg or {})}

    viable = [c for c in candidates if c.intention.has_viable_intent()]
    if len(viable) < len(candidates):
        logger.info("[GROUPS] dropped %s friendship candidate(s) without location/time/activities", len(candidates) - len(viable))
    if len(viable) < 2:
        return []

    matrix = build_compatibility_matrix(viable, FRIENDSHIP, now, cfg=cfg)
    preferred = [preferred_group_size(c.survey.get(GROUP_SIZE_QUESTION_ID)) for c in viable]

    seeds = select_disjoint_pairs(matrix, float(cfg["SEED_PAIR_MIN_SCORE"]))
    groups = [score_group(frozenset((i, j)), matrix, preferred) for i, j, _ in seeds]
    seeded = {k for g in groups for k in g.members}
    singles = [k for k in range(len(viable)) if k not in seeded]

    groups = merge_groups(groups, singles, matrix, preferred, cfg)

    proposals: list[MatchProposal] = []
    for group in groups:
        if group.size < int(cfg["MIN_GROUP_SIZE"]):
            continue
        avg = round(avg_pairwise(group.members, matrix), 6)
        proposals.append(
            MatchProposal(
                mode=FRIENDSHIP,
                members=[viable[k] for k in sorted(group.members)],
                score=avg,
                avg_compatibility=avg,
            )
        )
    return proposals
