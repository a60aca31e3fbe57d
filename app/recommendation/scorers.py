"""
Recommendation scorers.

Each scorer returns RecommendationItems sorted by descending score and
truncated to `limit`. Scores are only meaningful within one scorer.

Every scorer except `ai_personalized_recommendations` swallows upstream
failures and returns an empty list. The AI scorer raises AIResponseError
when the model output cannot be parsed; callers isolate it.
"""
import json
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from supabase import Client

from app.core.ai import AIClient, AIResponseError, extract_json_array
from app.recommendation.models import (
    AIPersonalizedMetadata,
    BehaviorType,
    CollaborativeMetadata,
    ContentBasedMetadata,
    ContentType,
    InterestBasedMetadata,
    RecommendationItem,
    RecommendationReason,
    RecommendationSource,
    Timeframe,
    TrendingMetadata,
)
from app.recommendation.profile import get_or_build_interest_profile
from app.recommendation.schemas import (
    CONTENT_TABLES,
    CREATOR_SELECT,
    behaviors_for_content,
    behaviors_of_users,
    behaviors_since,
    content_by_ids,
    group_posts_since,
    interest_rows_for_topics,
    parse_timestamp,
    recent_behaviors,
    recent_content,
    reels_since,
    split_topics,
    user_interest_rows,
    utcnow,
)

logger = logging.getLogger(__name__)

# Collaborative filtering
COLLABORATIVE_HISTORY_LIMIT = 100
SIMILAR_USER_LIMIT = 20
RECENCY_DECAY_DAYS = 30
LIKE_WEIGHT = 1.5
SAVE_WEIGHT = 2.0

# Content based
POSITIVE_BEHAVIORS = (BehaviorType.LIKE, BehaviorType.COMMENT, BehaviorType.SAVE)
CONTENT_HISTORY_LIMIT = 20
CONTENT_CANDIDATE_LIMIT = 100

# Trending
TIMEFRAME_DAYS = {Timeframe.DAY: 1, Timeframe.WEEK: 7}
POST_TRENDING_DIVISOR = 10
GROUP_TRENDING_DIVISOR = 20
REEL_VIEW_WEIGHT = 0.6
REEL_LIKE_WEIGHT = 0.4

# AI personalized
AI_HISTORY_LIMIT = 50
AI_CANDIDATE_LIMIT = 50
AI_REASONS = {
    "similar_content": RecommendationReason.SIMILAR_CONTENT,
    "based_on_interests": RecommendationReason.BASED_ON_INTERESTS,
    "based_on_history": RecommendationReason.BASED_ON_HISTORY,
    "trending_now": RecommendationReason.TRENDING_NOW,
    "complementary_content": RecommendationReason.COMPLEMENTARY_CONTENT,
    "new_but_relevant": RecommendationReason.NEW_BUT_RELEVANT,
}

AI_PROMPT = """\
You are an AI-powered recommendation system. Based on the user profile and available content,
recommend the most relevant content items for this user.

USER PROFILE:
{profile}

AVAILABLE CONTENT:
{content}

Generate personalized recommendations by matching content to the user's interests and behavior patterns.
Explain why each item is recommended.

Return your response as a JSON array with exactly {limit} recommendations, each containing:
- id (string): The content ID
- score (number between 0-1): Relevance score
- reason (string): One of: {reasons}
- explanation (string): Brief explanation of why this content was recommended

Example format:
[
  {{
    "id": "content123",
    "score": 0.92,
    "reason": "based_on_interests",
    "explanation": "This content discusses AI, which is one of your top interests."
  }}
]"""


def _sorted(items: List[RecommendationItem], limit: int) -> List[RecommendationItem]:
    return sorted(items, key=lambda item: item.score, reverse=True)[:limit]


async def collaborative_recommendations(
    db: Client,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[RecommendationItem]:
    """
    Content engaged with by users whose history overlaps the user's.

    score = recency * similarity * like_weight * save_weight where recency
    decays linearly to 0 over 30 days and similarity is the similar user's
    overlap count divided by the largest overlap count.
    """
    now = now or utcnow()
    try:
        interactions = await recent_behaviors(
            db, user_id, limit=COLLABORATIVE_HISTORY_LIMIT, content_type=content_type
        )
        if not interactions:
            return []

        user_content_ids = list(dict.fromkeys(row["content_id"] for row in interactions))

        overlapping = await behaviors_for_content(db, user_content_ids, content_type, exclude_user_id=user_id)
        overlap_counts = Counter(row["user_id"] for row in overlapping if row["user_id"] != user_id)
        similar_users = dict(overlap_counts.most_common(SIMILAR_USER_LIMIT))
        if not similar_users:
            return []
        max_overlap = max(similar_users.values())

        candidates = await behaviors_of_users(
            db, list(similar_users), content_type, exclude_content_ids=user_content_ids
        )

        best: Dict[str, Dict[str, Any]] = {}
        engaged_users: Dict[str, set] = defaultdict(set)
        seen = set(user_content_ids)
        for row in candidates:
            content_id = row["content_id"]
            if content_id in seen or row["user_id"] not in similar_users:
                continue
            engaged_users[content_id].add(row["user_id"])

            timestamp = parse_timestamp(row.get("timestamp")) or now
            days_since = (now - timestamp).total_seconds() / 86400
            recency = max(0.0, 1 - days_since / RECENCY_DECAY_DAYS)
            similarity = similar_users[row["user_id"]] / max_overlap
            behavior = row.get("behavior_type")
            score = recency * similarity \
                * (LIKE_WEIGHT if behavior == BehaviorType.LIKE.value else 1) \
                * (SAVE_WEIGHT if behavior == BehaviorType.SAVE.value else 1)

            if content_id not in best or best[content_id]["score"] < score:
                best[content_id] = {"score": score, "timestamp": timestamp}

        items = [
            RecommendationItem(
                id=content_id,
                content_type=content_type,
                score=entry["score"],
                reason=RecommendationReason.FRIENDS_ENGAGED,
                source=RecommendationSource.COLLABORATIVE_FILTERING,
                timestamp=entry["timestamp"],
                metadata=CollaborativeMetadata(similar_user_count=len(engaged_users[content_id])),
            )
            for content_id, entry in best.items()
        ]
        return _sorted(items, limit)
    except Exception as e:
        logger.error(f"Error generating collaborative recommendations: {str(e)}", exc_info=True)
        return []


async def content_based_recommendations(
    db: Client,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 10,
) -> List[RecommendationItem]:
    """
    Recent content whose AI topics overlap the topics of content the user liked,
    commented on or saved.

    Topic weight is the number of the user's positive interactions whose
    content carried that topic; an item's score is the weight of its matching
    topics over the total weight.
    """
    if content_type not in CONTENT_TABLES:
        return []
    try:
        interactions = await recent_behaviors(
            db,
            user_id,
            limit=CONTENT_HISTORY_LIMIT,
            content_type=content_type,
            behavior_types=POSITIVE_BEHAVIORS,
        )
        if not interactions:
            return []

        user_content_ids = list(dict.fromkeys(row["content_id"] for row in interactions))
        engaged = await content_by_ids(db, content_type, user_content_ids, columns="id, ai_topics")
        topics_by_content = {row["id"]: split_topics(row.get("ai_topics")) for row in engaged}

        topic_weights: Counter = Counter()
        for interaction in interactions:
            for topic in topics_by_content.get(interaction["content_id"], []):
                topic_weights[topic] += 1
        if not topic_weights:
            return []
        total_weight = sum(topic_weights.values())

        candidates = await recent_content(
            db,
            content_type,
            limit=CONTENT_CANDIDATE_LIMIT,
            exclude_ids=user_content_ids,
            require_topics=True,
            columns="id, ai_topics, created_at",
        )

        items = []
        for content in candidates:
            matching = [t for t in split_topics(content.get("ai_topics")) if t in topic_weights]
            if not matching:
                continue
            score = sum(topic_weights[t] for t in matching) / total_weight
            items.append(RecommendationItem(
                id=content["id"],
                content_type=content_type,
                score=score,
                reason=RecommendationReason.SIMILAR_CONTENT,
                source=RecommendationSource.CONTENT_BASED,
                timestamp=parse_timestamp(content.get("created_at")) or utcnow(),
                metadata=ContentBasedMetadata(matching_topics=matching),
            ))
        return _sorted(items, limit)
    except Exception as e:
        logger.error(f"Error generating content-based recommendations: {str(e)}", exc_info=True)
        return []


async def trending_recommendations(
    db: Client,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 10,
    timeframe: Timeframe = Timeframe.DAY,
    now: Optional[datetime] = None,
) -> List[RecommendationItem]:
    """
    Content with the most engagement inside the timeframe window.

    Posts score engagement count / 10 (not clamped), reels mix normalised
    view and like counters 0.6 / 0.4, groups score min(new group posts / 20, 1).
    Content the user interacted with inside the window is excluded.
    """
    now = now or utcnow()
    since = now - timedelta(days=TIMEFRAME_DAYS[Timeframe(timeframe)])
    try:
        seen_rows = await recent_behaviors(db, user_id, content_type=content_type, since=since)
        seen = list(dict.fromkeys(row["content_id"] for row in seen_rows))
        seen_set = set(seen)

        trending: List[Dict[str, Any]] = []
        if content_type == ContentType.POST:
            rows = await behaviors_since(db, ContentType.POST, since)
            counts = Counter(row["content_id"] for row in rows if row["content_id"] not in seen_set)
            top = counts.most_common(limit * 2)
            created = {
                row["id"]: parse_timestamp(row.get("created_at"))
                for row in await content_by_ids(db, ContentType.POST, [cid for cid, _ in top], columns="id, created_at")
            }
            trending = [
                {"id": cid, "score": count / POST_TRENDING_DIVISOR, "created_at": created.get(cid) or now}
                for cid, count in top
            ]
        elif content_type == ContentType.REEL:
            reels = await reels_since(db, since, seen, limit * 2)
            max_views = max((r.get("view_count") or 0 for r in reels), default=0) or 1
            max_likes = max((r.get("like_count") or 0 for r in reels), default=0) or 1
            trending = [
                {
                    "id": reel["id"],
                    "score": REEL_VIEW_WEIGHT * ((reel.get("view_count") or 0) / max_views)
                    + REEL_LIKE_WEIGHT * ((reel.get("like_count") or 0) / max_likes),
                    "created_at": parse_timestamp(reel.get("created_at")) or now,
                }
                for reel in reels
            ]
        elif content_type == ContentType.GROUP:
            rows = await group_posts_since(db, since)
            counts = Counter(row["group_id"] for row in rows if row["group_id"] not in seen_set)
            top = counts.most_common(limit * 2)
            created = {
                row["id"]: parse_timestamp(row.get("created_at"))
                for row in await content_by_ids(db, ContentType.GROUP, [gid for gid, _ in top], columns="id, created_at")
            }
            trending = [
                {"id": gid, "score": min(count / GROUP_TRENDING_DIVISOR, 1.0), "created_at": created.get(gid) or now}
                for gid, count in top
            ]

        items = [
            RecommendationItem(
                id=entry["id"],
                content_type=content_type,
                score=entry["score"],
                reason=RecommendationReason.TRENDING_NOW,
                source=RecommendationSource.TRENDING,
                timestamp=entry["created_at"],
                metadata=TrendingMetadata(timeframe=Timeframe(timeframe)),
            )
            for entry in trending
        ]
        return _sorted(items, limit)
    except Exception as e:
        logger.error(f"Error generating trending recommendations: {str(e)}", exc_info=True)
        return []


def _format_candidate(content: Dict[str, Any], content_type: ContentType) -> Dict[str, Any]:
    creator = content.get("user") or {}
    formatted = {
        "id": content["id"],
        "type": content_type.value,
        "creator": creator.get("username") or creator.get("name") or "Unknown",
        "created_at": content.get("created_at"),
        "topics": [],
        "text_content": content.get("content") or content.get("caption") or "",
    }
    if content_type == ContentType.POST:
        formatted["topics"] = split_topics(content.get("ai_topics"))
        formatted["sentiment"] = content.get("ai_sentiment")
        formatted["entities"] = content.get("ai_entities")
    elif content_type == ContentType.REEL:
        formatted["topics"] = list(content.get("hashtags") or [])
    return formatted


async def ai_personalized_recommendations(
    db: Client,
    ai: AIClient,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 10,
    model: Optional[str] = None,
) -> List[RecommendationItem]:
    """
    Ask the generative model to pick and justify items for the user.

    Raises:
        AIResponseError: If the model response has no parseable JSON array.
            Store failures are logged and yield an empty list.
    """
    if content_type not in (ContentType.POST, ContentType.REEL):
        return []
    try:
        profile = await get_or_build_interest_profile(db, user_id)
        activities = await recent_behaviors(db, user_id, limit=AI_HISTORY_LIMIT)
        interests = await user_interest_rows(db, user_id)

        user_profile = {
            "interests": [(row.get("topic") or {}).get("name") for row in interests],
            "behaviors": [
                {
                    "type": a["behavior_type"],
                    "content_type": a["content_type"],
                    "timestamp": a.get("timestamp"),
                }
                for a in activities
            ],
            "preferred_content_types": [
                ct for ct, _ in sorted(profile.content_types.items(), key=lambda kv: kv[1], reverse=True)
            ],
            "engagement_patterns": profile.engagement_patterns,
        }

        candidates = await recent_content(
            db,
            content_type,
            limit=AI_CANDIDATE_LIMIT,
            exclude_owner=user_id,
            columns=f"*, {CREATOR_SELECT}",
        )
    except Exception as e:
        logger.error(f"Error preparing AI-personalized recommendations: {str(e)}", exc_info=True)
        return []

    formatted = [_format_candidate(c, content_type) for c in candidates]
    if not formatted:
        return []

    prompt = AI_PROMPT.format(
        profile=json.dumps(user_profile, indent=2, default=str),
        content=json.dumps(formatted, indent=2, default=str),
        limit=limit,
        reasons=", ".join(f'"{r}"' for r in AI_REASONS),
    )
    response_text = await ai.complete(prompt, model=model)
    recommendations = extract_json_array(response_text)

    candidate_ids = {c["id"] for c in formatted}
    now = utcnow()
    items = []
    for entry in recommendations:
        if not isinstance(entry, dict) or str(entry.get("id")) not in candidate_ids:
            continue
        try:
            score = min(max(float(entry.get("score", 0)), 0.0), 1.0)
        except (TypeError, ValueError) as e:
            raise AIResponseError(f"Invalid score in AI response: {entry.get('score')!r}") from e
        items.append(RecommendationItem(
            id=str(entry["id"]),
            content_type=content_type,
            score=score,
            reason=AI_REASONS.get(entry.get("reason"), RecommendationReason.SIMILAR_CONTENT),
            source=RecommendationSource.AI_PERSONALIZED,
            timestamp=now,
            metadata=AIPersonalizedMetadata(explanation=str(entry.get("explanation") or "")),
        ))
    return _sorted(items, limit)


async def find_similar_users(db: Client, user_id: str, limit: int = 10) -> List[RecommendationItem]:
    """Users who declared the same topic interests, scored by shared-topic ratio."""
    try:
        own_rows = await user_interest_rows(db, user_id)
        topic_ids = list(dict.fromkeys(str(row["topic_id"]) for row in own_rows))
        if not topic_ids:
            return []

        rows = await interest_rows_for_topics(db, topic_ids, exclude_user_id=user_id)
        matches: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            match = matches.setdefault(row["user_id"], {"count": 0, "user": row.get("user") or {}, "topics": set()})
            match["count"] += 1
            match["topics"].add(str(row["topic_id"]))

        items = [
            RecommendationItem(
                id=other_id,
                content_type=ContentType.USER,
                score=match["count"] / len(topic_ids),
                reason=RecommendationReason.SIMILAR_USERS,
                source=RecommendationSource.INTEREST_BASED,
                timestamp=parse_timestamp(match["user"].get("created_at")) or utcnow(),
                metadata=InterestBasedMetadata(
                    username=match["user"].get("username"),
                    name=match["user"].get("name"),
                    matching_topic_count=match["count"],
                    matching_topics=sorted(match["topics"]),
                ),
            )
            for other_id, match in matches.items()
        ]
        return _sorted(items, limit)
    except Exception as e:
        logger.error(f"Error finding similar users: {str(e)}", exc_info=True)
        return []
