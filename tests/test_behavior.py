from datetime import datetime, timezone

import pytest

from app.recommendation.behavior import log_user_behavior
from app.recommendation.models import BehaviorType, ContentType
from app.recommendation.profile import profile_cache_key

USER = "user-1"


def _seed_cached_profile(db):
    db.seed("key_value_store", [{
        "key": profile_cache_key(USER),
        "value": "{}",
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }])


@pytest.mark.asyncio
async def test_event_is_appended_with_rounded_duration(supabase_mock):
    ok = await log_user_behavior(
        supabase_mock, USER, BehaviorType.VIEW, "r1", ContentType.REEL,
        metadata={"completion_rate": 0.3}, duration=1.6,
    )

    assert ok is True
    [row] = supabase_mock.tables["user_behavior_logs"]
    assert row["user_id"] == USER
    assert row["behavior_type"] == "view"
    assert row["content_type"] == "reel"
    assert row["duration"] == 2
    assert row["metadata"] == {"completion_rate": 0.3}
    assert row["timestamp"]


@pytest.mark.asyncio
@pytest.mark.parametrize("behavior_type", [
    BehaviorType.LIKE, BehaviorType.SAVE, BehaviorType.FOLLOW, BehaviorType.SHARE,
])
async def test_strong_signals_invalidate_cached_profile(supabase_mock, behavior_type):
    _seed_cached_profile(supabase_mock)

    await log_user_behavior(supabase_mock, USER, behavior_type, "p1", ContentType.POST)

    assert supabase_mock.tables["key_value_store"] == []


@pytest.mark.asyncio
async def test_views_keep_cached_profile(supabase_mock):
    _seed_cached_profile(supabase_mock)

    await log_user_behavior(supabase_mock, USER, BehaviorType.VIEW, "p1", ContentType.POST)

    assert len(supabase_mock.tables["key_value_store"]) == 1


@pytest.mark.asyncio
async def test_store_failure_returns_false(supabase_mock):
    supabase_mock.failing.add("user_behavior_logs")

    ok = await log_user_behavior(supabase_mock, USER, BehaviorType.LIKE, "p1", ContentType.POST)

    assert ok is False


@pytest.mark.asyncio
async def test_invalidation_failure_still_reports_success(supabase_mock):
    supabase_mock.failing.add("key_value_store")

    ok = await log_user_behavior(supabase_mock, USER, BehaviorType.LIKE, "p1", ContentType.POST)

    assert ok is True
    assert len(supabase_mock.tables["user_behavior_logs"]) == 1


@pytest.mark.asyncio
async def test_invalid_event_returns_false(supabase_mock):
    ok = await log_user_behavior(supabase_mock, USER, "poke", "p1", ContentType.POST)

    assert ok is False
    assert supabase_mock.tables["user_behavior_logs"] == []
