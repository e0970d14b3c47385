from batch_matcher.services.candidates import build_candidates
from batch_matcher.services.seeding import generate_pool_rows, seed_pool
from fakes import NOW, FakeSession


def test_generated_pool_is_deterministic_per_seed():
    assert generate_pool_rows(20, seed=5, now=NOW) == generate_pool_rows(20, seed=5, now=NOW)
    assert generate_pool_rows(20, seed=5, now=NOW) != generate_pool_rows(20, seed=6, now=NOW)


def test_generated_rows_parse_as_candidates():
    rows = generate_pool_rows(50, seed=1, now=NOW, max_wait_hours=24 * 6)
    candidates, excluded = build_candidates(rows, NOW)
    assert excluded == []
    assert len(candidates) == 50
    assert {c.connection_type.value for c in candidates} == {"romantic", "friends"}
    assert all(c.intention.has_viable_intent() for c in candidates)


def test_romantic_share_controls_connection_mix():
    rows = generate_pool_rows(10, seed=2, now=NOW, romantic_share=0.0)
    assert {r["parsed_json"]["what"]["intention"] for r in rows} == {"friends"}


def test_seed_pool_inserts_profile_intention_entry_and_survey_rows():
    rows = generate_pool_rows(3, seed=9, now=NOW)
    db = FakeSession()
    counts = seed_pool(db, rows, reset=True)

    assert counts == {"pool_entries": 3, "survey_responses": 9}
    assert len(db.statements("DELETE FROM")) == 7
    assert len(db.statements("INSERT INTO user_profile")) == 3
    assert len(db.statements("INSERT INTO intention")) == 3
    assert len(db.statements("INSERT INTO pool_entry")) == 3
    assert len(db.statements("INSERT INTO survey_response")) == 9
    assert db.commits == 1
