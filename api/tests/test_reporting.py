from datetime import datetime, timedelta, timezone

from batch_matcher.services.reporting import next_batch_eta, percentile_summary, pool_status
from fakes import NOW, pool_row


def test_percentile_summary():
    out = percentile_summary([0.1, 0.2, 0.3, 0.4, 0.5])
    assert out["p50"] == 0.3
    assert out["p10"] == 0.14
    assert out["p90"] == 0.46
    assert percentile_summary([]) == {"p10": None, "p50": None, "p90": None}


def test_next_batch_eta_lands_on_three_hour_boundaries():
    utc = timezone.utc
    assert next_batch_eta(datetime(2026, 3, 1, 4, 30, tzinfo=utc)) == datetime(2026, 3, 1, 6, 0, tzinfo=utc)
    assert next_batch_eta(datetime(2026, 3, 1, 3, 0, tzinfo=utc)) == datetime(2026, 3, 1, 6, 0, tzinfo=utc)
    assert next_batch_eta(datetime(2026, 3, 1, 22, 15, tzinfo=utc)) == datetime(2026, 3, 2, 0, 0, tzinfo=utc)


def test_pool_status_counts_by_effective_tier():
    rows = [
        pool_row("a", hours_waiting=1),
        pool_row("b", hours_waiting=30, tier=0),
        pool_row("c", hours_waiting=10, tier=2),
        pool_row("d", hours_waiting=24 * 6 + 5),
    ]
    status = pool_status(rows, NOW)
    assert status["total"] == 4
    assert status["by_tier"] == {"0": 1, "1": 1, "2": 2}
    assert status["expiring_within_24h"] == 1
    assert status["oldest_joined_at"] == (NOW - timedelta(hours=24 * 6 + 5)).isoformat()
    assert status["next_batch_eta"] == "2026-03-07T15:00:00+00:00"


def test_pool_status_of_empty_pool():
    status = pool_status([], NOW)
    assert status["total"] == 0
    assert status["oldest_joined_at"] is None


def test_pool_status_uses_configured_expiry():
    rows = [pool_row("a", hours_waiting=24 * 2 + 5)]
    assert pool_status(rows, NOW)["expiring_within_24h"] == 0
    assert pool_status(rows, NOW, cfg={"POOL_EXPIRY_DAYS": 3})["expiring_within_24h"] == 1
