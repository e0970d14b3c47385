import json

import pytest
from pydantic import ValidationError

from batch_matcher.schemas import ConnectionType, Intention
from batch_matcher.services.candidates import build_candidate, build_candidates, split_by_connection_type
from fakes import NOW, pool_row


def test_intention_from_chips_normalizes_tags():
    intent = Intention.from_chips(
        intention_id="i1",
        user_id="u1",
        chips={
            "what": {"intention": "Dating", "activities": ["Coffee", " coffee ", "Live Music"]},
            "when": ["Sat Evening"],
            "where": "  Austin ",
            "vibe": ["low-key"],
        },
    )
    assert intent.connection_type == ConnectionType.romantic
    assert intent.activities == frozenset({"coffee", "live music"})
    assert intent.time_windows == frozenset({"sat evening"})
    assert intent.location == "Austin"
    assert intent.has_viable_intent()


def test_intention_accepts_json_blob():
    blob = json.dumps({"what": {"intention": "friends", "activities": ["coffee"]}, "when": [], "where": "sf"})
    intent = Intention.from_chips(intention_id="i1", user_id="u1", chips=blob)
    assert intent.connection_type == ConnectionType.friends
    assert not intent.has_viable_intent()


@pytest.mark.parametrize(
    "chips",
    [
        {"what": {"intention": "business"}, "where": "sf", "when": ["sat evening"]},
        {"where": "sf", "when": ["sat evening"]},
        {"what": {"intention": "friends", "activities": 5}, "where": "sf"},
    ],
)
def test_intention_rejects_malformed_chips(chips):
    with pytest.raises(ValidationError):
        Intention.from_chips(intention_id="i1", user_id="u1", chips=chips)


def test_build_candidate_reads_profile_and_survey():
    row = pool_row(
        "e1",
        age="29",
        gender=" female ",
        tier=5,
        survey={"sexual_orientation": "bisexual", "music": '["indie", "jazz"]'},
    )
    c = build_candidate(row)
    assert c.entry_id == "e1"
    assert c.user_id == "user-e1"
    assert c.intention_id == "int-e1"
    assert c.age == 29
    assert c.gender == "female"
    assert c.tier == 2
    assert c.survey == {"sexual_orientation": "bisexual", "music": ["indie", "jazz"]}


def test_build_candidates_excludes_malformed_and_expired_rows():
    good = pool_row("good")
    broken = pool_row("broken")
    broken["parsed_json"] = {"what": {"intention": "??"}}
    unparsable = pool_row("unparsable")
    unparsable["parsed_json"] = "{not json"
    stale = pool_row("stale", hours_waiting=24 * 7)

    candidates, excluded = build_candidates([good, broken, unparsable, stale], NOW)
    assert [c.entry_id for c in candidates] == ["good"]
    assert excluded == [
        {"entry_id": "broken", "reason": "malformed_intent"},
        {"entry_id": "unparsable", "reason": "malformed_intent"},
        {"entry_id": "stale", "reason": "expired"},
    ]


def test_split_by_connection_type_keeps_order():
    rows = [
        pool_row("a", intention="romantic"),
        pool_row("b", intention="friends"),
        pool_row("c", intention="romantic"),
    ]
    candidates, _ = build_candidates(rows, NOW)
    romantic, friends = split_by_connection_type(candidates)
    assert [c.entry_id for c in romantic] == ["a", "c"]
    assert [c.entry_id for c in friends] == ["b"]


def test_build_candidates_keeps_one_entry_per_user():
    rows = [
        pool_row("stale", user_id="user-a", hours_waiting=24 * 8),
        pool_row("first", user_id="user-a", hours_waiting=5),
        pool_row("second", user_id="user-a", hours_waiting=1),
        pool_row("other"),
    ]
    candidates, excluded = build_candidates(rows, NOW)
    assert [c.entry_id for c in candidates] == ["first", "other"]
    assert excluded == [
        {"entry_id": "stale", "reason": "expired"},
        {"entry_id": "second", "reason": "duplicate_user"},
    ]
