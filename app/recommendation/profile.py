"""Interest profile builder for the recommendation pipeline."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from supabase import Client

from app.core.config import settings
from app.recommendation import cache
from app.recommendation.models import (
    DEFAULT_CONTENT_TYPES,
    DEFAULT_ENGAGEMENT_PATTERNS,
    BehaviorType,
    ContentType,
    CreatorInterest,
    InterestProfile,
    TopicInterest,
)
from app.recommendation.schemas import (
    content_owners,
    parse_timestamp,
    recent_behaviors,
    user_interest_rows,
    utcnow,
)

logger = logging.getLogger(__name__)

PROFILE_CACHE_PREFIX = "user-interests:"
PROFILE_EVENT_LIMIT = 500
MAX_CREATORS = 50
CREATOR_SIGNALS = {BehaviorType.LIKE.value, BehaviorType.SAVE.value, BehaviorType.FOLLOW.value}


def profile_cache_key(user_id: str) -> str:
    return f"{PROFILE_CACHE_PREFIX}{user_id}"


def frequency_distribution(values: Iterable[str], keys: Iterable[str] = ()) -> Dict[str, float]:
    """
    Share of each value among all values.

    Every key in `keys` is present in the result even when it never occurs.
    Returns an empty dict when there are no values.
    """
    counts = Counter(values)
    total = sum(counts.values())
    if total == 0:
        return {}
    distribution = {key: 0.0 for key in keys}
    for value, count in counts.items():
        distribution[value] = count / total
    return distribution


async def get_or_build_interest_profile(
    db: Client,
    user_id: str,
    now: Optional[datetime] = None,
) -> InterestProfile:
    """
    Return the cached interest profile, rebuilding it when stale.

    A cached profile younger than PROFILE_CACHE_TTL_HOURS is returned as-is.
    Otherwise the profile is rebuilt from the 500 most recent behavior events
    plus explicit topic interests and written back to the cache.

    Never raises: any failure while building yields `InterestProfile.default()`.
    """
    now = now or utcnow()
    cache_key = profile_cache_key(user_id)

    try:
        entry = await cache.get_entry(db, cache_key)
    except Exception as e:
        logger.warning(f"Interest profile cache read failed for {user_id}: {str(e)}")
        entry = None

    if entry is not None:
        age = entry.age_seconds(now)
        ttl = timedelta(hours=settings.PROFILE_CACHE_TTL_HOURS).total_seconds()
        if age is not None and age < ttl:
            try:
                return InterestProfile.model_validate_json(entry.value)
            except ValueError as e:
                logger.warning(f"Discarding unreadable cached profile for {user_id}: {str(e)}")

    try:
        profile = await build_interest_profile(db, user_id)
    except Exception as e:
        logger.error(f"Error building user interest profile for {user_id}: {str(e)}", exc_info=True)
        return InterestProfile.default()

    try:
        await cache.set_entry(db, cache_key, profile.model_dump_json())
    except Exception as e:
        logger.error(f"Failed to cache interest profile for {user_id}: {str(e)}")

    return profile


async def build_interest_profile(db: Client, user_id: str) -> InterestProfile:
    interest_rows = await user_interest_rows(db, user_id)
    behaviors = await recent_behaviors(db, user_id, limit=PROFILE_EVENT_LIMIT)

    topics = [
        TopicInterest(
            id=str(row["topic_id"]),
            name=(row.get("topic") or {}).get("name", ""),
            weight=1.0,
            last_engagement=parse_timestamp(row.get("created_at")),
        )
        for row in interest_rows
    ]

    content_types = frequency_distribution(
        (b["content_type"] for b in behaviors),
        keys=(c.value for c in ContentType),
    ) or dict(DEFAULT_CONTENT_TYPES)

    engagement_patterns = frequency_distribution(
        (b["behavior_type"] for b in behaviors),
        keys=(t.value for t in BehaviorType),
    ) or dict(DEFAULT_ENGAGEMENT_PATTERNS)

    hours = []
    for behavior in behaviors:
        timestamp = parse_timestamp(behavior.get("timestamp"))
        if timestamp is not None:
            hours.append(f"{timestamp.hour:02d}")
    time_patterns = frequency_distribution(hours)

    creators = await _creator_weights(db, behaviors)

    return InterestProfile(
        topics=topics,
        creators=creators,
        content_types=content_types,
        engagement_patterns=engagement_patterns,
        time_patterns=time_patterns,
    )


async def _creator_weights(db: Client, behaviors: List[Dict]) -> List[CreatorInterest]:
    signals = [b for b in behaviors if b["behavior_type"] in CREATOR_SIGNALS]
    if not signals:
        return []

    owners: Dict[str, str] = {}
    for content_type in (ContentType.POST, ContentType.REEL):
        ids = list({b["content_id"] for b in signals if b["content_type"] == content_type.value})
        if ids:
            owners.update(await content_owners(db, content_type, ids))

    creator_counts: Counter = Counter()
    for behavior in signals:
        if behavior["content_type"] == ContentType.USER.value:
            creator_id = behavior["content_id"]
        else:
            creator_id = owners.get(behavior["content_id"])
        if creator_id:
            creator_counts[creator_id] += 1

    total = sum(creator_counts.values())
    if total == 0:
        return []
    return [
        CreatorInterest(id=creator_id, weight=count / total)
        for creator_id, count in creator_counts.most_common(MAX_CREATORS)
    ]
