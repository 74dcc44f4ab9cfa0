from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from creatorai.features.usage.service import list_usage, record_usage, summarize_usage


def test_record_and_list_newest_first(make_user):
    make_user("user_1")
    base = datetime(2026, 3, 1, tzinfo=timezone.utc)
    record_usage("user_1", "hooks", "hook_generator", 1, occurred_at=base)
    record_usage("user_1", "thumbnail", "image_generation", 5, {"title": "x"}, occurred_at=base + timedelta(minutes=1))

    entries = list_usage("user_1")
    assert [e.feature for e in entries] == ["image_generation", "hook_generator"]
    assert entries[0].metadata == {"title": "x"}
    assert entries[0].created_at == base + timedelta(minutes=1)


def test_list_filters_and_clamps(make_user):
    make_user("user_1")
    for _ in range(3):
        record_usage("user_1", "chat", "ai_chat", 1)
    record_usage("user_1", "hooks", "hook_generator", 1)

    assert len(list_usage("user_1", feature="ai_chat")) == 3
    assert len(list_usage("user_1", limit=2)) == 2
    assert len(list_usage("user_1", limit=0)) == 1


def test_entries_are_private_to_user(make_user):
    make_user("user_1")
    make_user("user_2")
    record_usage("user_1", "chat", "ai_chat", 1)
    assert list_usage("user_2") == []


def test_record_failure_is_swallowed(caplog):
    with patch("creatorai.features.usage.service.get_db_session", side_effect=RuntimeError("db down")):
        assert record_usage("user_1", "chat", "ai_chat", 1) is None
    assert any("record failed" in r.getMessage() for r in caplog.records)


def test_summary_nets_refunds(make_user):
    make_user("user_1")
    record_usage("user_1", "niche", "niche_analyzer", 2)
    record_usage("user_1", "refund", "niche_analyzer", -2)
    record_usage("user_1", "thumbnail", "image_generation", 5)

    summary = summarize_usage("user_1")
    assert summary["totalTokens"] == 5
    assert summary["totalActions"] == 3
    assert summary["byFeature"]["niche_analyzer"] == {"actions": 2, "tokens": 0}


def test_summary_since(make_user):
    make_user("user_1")
    now = datetime(2026, 3, 10, tzinfo=timezone.utc)
    record_usage("user_1", "old", "ai_chat", 1, occurred_at=now - timedelta(days=40))
    record_usage("user_1", "new", "ai_chat", 1, occurred_at=now)

    assert summarize_usage("user_1", since=now - timedelta(days=30))["totalTokens"] == 1
