from itertools import combinations

from sqlalchemy.exc import OperationalError

from batch_matcher.config import MATCHER_LOCK_ID
from batch_matcher.services.candidates import build_candidate
from batch_matcher.services.coordinator import run_batch_cycle
from batch_matcher.services.locks import InMemoryLock
from batch_matcher.services.scoring import compatibility_score, orientation_compatible
from batch_matcher.services.seeding import generate_pool_rows
from fakes import NOW, InMemoryPoolStore, pool_row


def _run(rows, **kwargs):
    store = InMemoryPoolStore(rows)
    lock = InMemoryLock()
    result = run_batch_cycle(store, lock, now=NOW, **kwargs)
    return result, store, lock


def test_two_friends_in_same_city_are_matched():
    result, store, _ = _run([pool_row("a"), pool_row("b")])
    assert result.success is True
    assert result.skipped is False
    assert result.stats["friendship_groups"] == 1
    assert result.stats["group_sizes"] == {"2": 1}
    assert len(store.matches) == 1
    assert store.matches[0]["group_size"] == 2
    assert store.matches[0]["status"] == "active"
    assert store.rows == []


def test_friends_in_different_cities_stay_in_pool():
    result, store, _ = _run([pool_row("a", location="Austin"), pool_row("b", location="Dallas")])
    assert result.success is True
    assert store.matches == []
    assert {r["entry_id"] for r in store.rows} == {"a", "b"}


def test_two_straight_men_are_not_matched():
    rows = [
        pool_row("a", intention="romantic", gender="male", survey={"sexual_orientation": "straight"}),
        pool_row("b", intention="romantic", gender="male", survey={"sexual_orientation": "straight"}),
    ]
    result, store, _ = _run(rows)
    assert result.stats["romantic_matches"] == 0
    assert store.matches == []


def test_groups_form_per_city():
    rows = [pool_row(k, location="Austin") for k in "abc"] + [pool_row(k, location="Dallas") for k in "de"]
    result, store, _ = _run(rows)
    assert result.stats["group_sizes"] == {"2": 1, "3": 1}
    assert sorted(m["group_size"] for m in store.matches) == [2, 3]


def test_entries_past_seven_days_expire_instead_of_matching():
    rows = [pool_row("a", hours_waiting=24 * 8, tier=1), pool_row("b", hours_waiting=24 * 8, tier=2)]
    result, store, _ = _run(rows)
    assert store.matches == []
    assert store.rows == []
    assert result.stats["excluded"] == {"expired": 2}
    assert result.stats["tier_sweep"]["expired"] == 2


def test_unmatched_entries_are_promoted():
    result, store, _ = _run([pool_row("a", hours_waiting=30, location="Austin"), pool_row("b", hours_waiting=50, location="Dallas")])
    assert {r["entry_id"]: r["tier"] for r in store.rows} == {"a": 1, "b": 2}
    assert result.stats["tier_sweep"]["promoted"] == 2


def test_malformed_entries_are_skipped_but_still_swept():
    broken = pool_row("broken", hours_waiting=30)
    broken["parsed_json"] = {"what": {"intention": "??"}}
    result, store, _ = _run([broken, pool_row("a"), pool_row("b")])
    assert result.success is True
    assert result.stats["excluded"] == {"malformed_intent": 1}
    assert [r["entry_id"] for r in store.rows] == ["broken"]
    assert store.rows[0]["tier"] == 1


def test_run_is_skipped_while_lock_is_held():
    store = InMemoryPoolStore([pool_row("a"), pool_row("b")])
    lock = InMemoryLock()
    assert lock.try_acquire(MATCHER_LOCK_ID)

    result = run_batch_cycle(store, lock, now=NOW)
    assert result.success is True
    assert result.skipped is True
    assert store.fetch_calls == 0
    assert "error" not in result.as_dict()


def test_store_failure_is_reported_and_lock_released():
    store = InMemoryPoolStore([pool_row("a"), pool_row("b")])
    store.fail_fetch = OperationalError("SELECT 1", {}, Exception("connection refused"))
    lock = InMemoryLock()

    result = run_batch_cycle(store, lock, now=NOW)
    assert result.success is False
    assert "connection refused" in result.error
    assert result.as_dict()["error"] == result.error
    assert lock.try_acquire(MATCHER_LOCK_ID) is True


def test_commit_failure_releases_lock():
    store = InMemoryPoolStore([pool_row("a"), pool_row("b")])
    store.fail_commit = RuntimeError("disk full")
    lock = InMemoryLock()

    result = run_batch_cycle(store, lock, now=NOW)
    assert result.success is False
    assert result.error == "disk full"
    assert lock.try_acquire(MATCHER_LOCK_ID) is True


def test_lock_service_failure_is_reported():
    class BrokenLock:
        def try_acquire(self, key):
            raise OSError("lock service down")

        def release(self, key):
            raise AssertionError("release must not be called")

    result = run_batch_cycle(InMemoryPoolStore([]), BrokenLock(), now=NOW)
    assert result.success is False
    assert result.error == "lock service down"


def test_runs_are_deterministic_for_the_same_snapshot():
    rows = generate_pool_rows(60, seed=3, now=NOW)
    first, s1, _ = _run(rows)
    second, s2, _ = _run(rows)
    assert first.stats == second.stats
    assert [m["entry_ids"] for m in s1.matches] == [m["entry_ids"] for m in s2.matches]


def test_seeded_pool_matches_respect_hard_constraints():
    rows = generate_pool_rows(80, seed=21, now=NOW, max_wait_hours=24 * 6)
    by_id = {r["entry_id"]: build_candidate(r) for r in rows}
    result, store, _ = _run(rows)

    assert result.success is True
    assert store.matches
    seen = [eid for m in store.matches for eid in m["entry_ids"]]
    assert len(seen) == len(set(seen))
    assert result.stats["matched_entries"] == len(seen)

    for match in store.matches:
        members = [by_id[eid] for eid in match["entry_ids"]]
        assert len({c.user_id for c in members}) == len(members)
        assert 0.0 <= match["score"] <= 1.0
        assert match["tier_used"] == min(c.tier for c in members)
        if match["mode"] == "romantic":
            assert match["group_size"] == 2
            assert orientation_compatible(*members)
        else:
            assert 2 <= match["group_size"] <= 6
        for a, b in combinations(members, 2):
            assert a.intention.location == b.intention.location
            assert a.intention.time_windows & b.intention.time_windows
            assert compatibility_score(a, b, match["mode"], NOW) > 0.0


def test_user_with_two_entries_is_matched_at_most_once():
    rows = [pool_row("a1", user_id="user-a"), pool_row("a2", user_id="user-a"), pool_row("b")]
    result, store, _ = _run(rows)
    assert result.stats["excluded"] == {"duplicate_user": 1}
    assert [m["entry_ids"] for m in store.matches] == [["a1", "b"]]
    assert [r["entry_id"] for r in store.rows] == ["a2"]


def test_user_is_never_paired_with_themselves():
    survey = {"sexual_orientation": "bisexual"}
    rows = [
        pool_row("x1", intention="romantic", gender="female", survey=survey, user_id="user-x"),
        pool_row("x2", intention="romantic", gender="female", survey=survey, user_id="user-x"),
    ]
    result, store, _ = _run(rows)
    assert result.stats["romantic_matches"] == 0
    assert store.matches == []


def test_expiry_override_applies_to_candidates_and_sweep():
    rows = [pool_row("a", hours_waiting=24 * 4), pool_row("b", hours_waiting=24 * 4)]
    result, store, _ = _run(rows, cfg={"POOL_EXPIRY_DAYS": 3})
    assert result.stats["excluded"] == {"expired": 2}
    assert result.stats["tier_sweep"]["expired"] == 2
    assert store.matches == []
    assert store.rows == []
