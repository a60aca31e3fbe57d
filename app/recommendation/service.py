"""Feed-level recommendation operations used by the API layer."""
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAIError
from supabase import Client

from app.core.ai import AIClient, AIResponseError
from app.recommendation.behavior import log_user_behavior
from app.recommendation.blender import personalized_feed
from app.recommendation.models import (
    BehaviorType,
    ContentType,
    FeedSources,
    RecommendationItem,
    RecommendationSource,
)
from app.recommendation.schemas import (
    CREATOR_SELECT,
    REEL_LIKES_TABLE,
    REEL_VIEWS_TABLE,
    REELS_TABLE,
    USER_RECOMMENDATIONS_TABLE,
    run,
    utcnow,
)
from app.recommendation.scorers import (
    ai_personalized_recommendations,
    collaborative_recommendations,
    content_based_recommendations,
    find_similar_users,
    trending_recommendations,
)

logger = logging.getLogger(__name__)


class UnsupportedRecommendationRequest(ValueError):
    """The requested source cannot serve the requested content type."""


async def personalized_feed_with_fallback(
    db: Client,
    ai: AIClient,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 20,
) -> List[RecommendationItem]:
    """Blended feed, or the trending list when the blend comes back empty."""
    feed = await personalized_feed(db, ai, user_id, content_type, limit)
    if feed:
        return feed
    logger.info(f"Empty blended feed for {user_id}, falling back to trending")
    return await trending_recommendations(db, user_id, content_type, limit)


async def recommendations_by_source(
    db: Client,
    ai: AIClient,
    user_id: str,
    source: RecommendationSource,
    content_type: ContentType = ContentType.POST,
    limit: int = 10,
) -> List[RecommendationItem]:
    """
    Run a single scorer.

    Raises:
        UnsupportedRecommendationRequest: For sources without a scorer, or
            interest_based with a content type other than user.
    """
    if source == RecommendationSource.COLLABORATIVE_FILTERING:
        return await collaborative_recommendations(db, user_id, content_type, limit)
    if source == RecommendationSource.CONTENT_BASED:
        return await content_based_recommendations(db, user_id, content_type, limit)
    if source == RecommendationSource.TRENDING:
        return await trending_recommendations(db, user_id, content_type, limit)
    if source == RecommendationSource.AI_PERSONALIZED:
        try:
            return await ai_personalized_recommendations(db, ai, user_id, content_type, limit)
        except (AIResponseError, OpenAIError) as e:
            logger.error(f"AI-personalized recommendations unavailable: {str(e)}")
            return []
    if source == RecommendationSource.INTEREST_BASED:
        if content_type != ContentType.USER:
            raise UnsupportedRecommendationRequest(
                "Interest-based recommendations only available for users"
            )
        return await find_similar_users(db, user_id, limit)
    raise UnsupportedRecommendationRequest("Unsupported recommendation source")


async def record_shown_recommendations(db: Client, user_id: str, items: List[RecommendationItem]) -> None:
    """Audit the items served to a user. Failures are logged only."""
    if not items:
        return
    now = utcnow().isoformat()
    rows = [
        {
            "user_id": user_id,
            "content_id": item.id,
            "content_type": item.content_type.value,
            "score": item.score,
            "reason": item.reason.value,
            "source": item.source.value,
            "is_viewed": True,
            "is_clicked": False,
            "metadata": item.metadata.model_dump(mode="json"),
            "created_at": now,
        }
        for item in items
    ]
    try:
        await run(db.table(USER_RECOMMENDATIONS_TABLE).insert(rows))
    except Exception as e:
        logger.error(f"Failed to record shown recommendations for {user_id}: {str(e)}")


async def _liked_reel_ids(db: Client, user_id: str, reel_ids: List[str]) -> set:
    if not reel_ids:
        return set()
    rows = await run(
        db.table(REEL_LIKES_TABLE).select("reel_id").eq("user_id", user_id).in_("reel_id", reel_ids)
    )
    return {row["reel_id"] for row in rows}


async def recommended_reels_page(
    db: Client,
    ai: AIClient,
    user_id: str,
    limit: int = 10,
    sources: Optional[FeedSources] = None,
) -> Dict[str, Any]:
    """
    One page of the for-you reel stream.

    Reels keep the blended order and carry the reason/source that put them
    in the feed. next_cursor is the id of the last reel, or None when the
    page is empty.
    """
    items = await personalized_feed(db, ai, user_id, ContentType.REEL, limit, sources)
    if not items:
        return {"reels": [], "next_cursor": None}

    reel_ids = [item.id for item in items]
    rows = await run(
        db.table(REELS_TABLE)
        .select(f"*, {CREATOR_SELECT}")
        .in_("id", reel_ids)
        .eq("is_published", True)
    )
    by_id = {row["id"]: row for row in rows}
    liked = await _liked_reel_ids(db, user_id, reel_ids)
    await record_shown_recommendations(db, user_id, items)

    reels = []
    for item in items:
        reel = by_id.get(item.id)
        if reel is None:
            continue
        reels.append({
            **reel,
            "is_liked_by_user": reel["id"] in liked,
            "recommendation": {
                "reason": item.reason.value,
                "source": item.source.value,
                "score": item.score,
            },
        })

    return {"reels": reels, "next_cursor": reels[-1]["id"] if reels else None}


async def latest_reels_page(
    db: Client,
    user_id: str,
    limit: int = 10,
    cursor: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Non-personalized reel stream, newest first, paginated by reel id.

    Reels after the cursor reel in (created_at, id) descending order are
    returned.
    """
    query = db.table(REELS_TABLE).select(f"*, {CREATOR_SELECT}").eq("is_published", True)
    if cursor:
        anchor = await run(db.table(REELS_TABLE).select("id, created_at").eq("id", cursor).limit(1))
        if not anchor:
            return {"reels": [], "next_cursor": None}
        created_at, anchor_id = anchor[0]["created_at"], anchor[0]["id"]
        query = query.or_(
            f'created_at.lt."{created_at}",and(created_at.eq."{created_at}",id.lt."{anchor_id}")'
        )

    rows = await run(query.order("created_at", desc=True).order("id", desc=True).limit(limit + 1))
    page, extra = rows[:limit], rows[limit:]
    liked = await _liked_reel_ids(db, user_id, [row["id"] for row in page])

    reels = [{**row, "is_liked_by_user": row["id"] in liked} for row in page]
    return {"reels": reels, "next_cursor": page[-1]["id"] if extra and page else None}


async def get_reel(db: Client, reel_id: str) -> Optional[Dict[str, Any]]:
    rows = await run(db.table(REELS_TABLE).select("*").eq("id", reel_id).limit(1))
    return rows[0] if rows else None


async def log_reel_view(
    db: Client,
    user_id: str,
    reel: Dict[str, Any],
    watch_duration: float,
    completion_rate: float,
) -> None:
    """
    Record a finished reel view.

    Writes the reel_views row, marks a matching served recommendation as
    clicked, appends a view behavior event and bumps the reel's view counter.
    """
    reel_id = reel["id"]
    now = utcnow().isoformat()
    await run(db.table(REEL_VIEWS_TABLE).insert({
        "reel_id": reel_id,
        "user_id": user_id,
        "watch_duration": watch_duration,
        "completion_rate": completion_rate,
        "created_at": now,
    }))

    served = await run(
        db.table(USER_RECOMMENDATIONS_TABLE)
        .select("id, metadata")
        .eq("user_id", user_id)
        .eq("content_id", reel_id)
        .eq("content_type", ContentType.REEL.value)
        .eq("is_viewed", True)
        .eq("is_clicked", False)
        .limit(1)
    )
    if served:
        await run(
            db.table(USER_RECOMMENDATIONS_TABLE)
            .update({
                "is_clicked": True,
                "clicked_at": now,
                "metadata": {
                    **(served[0].get("metadata") or {}),
                    "completion_rate": completion_rate,
                    "watch_duration": watch_duration,
                },
            })
            .eq("id", served[0]["id"])
        )

    await log_user_behavior(
        db,
        user_id,
        BehaviorType.VIEW,
        reel_id,
        ContentType.REEL,
        metadata={"completion_rate": completion_rate, "from_recommendation": bool(served)},
        duration=watch_duration,
    )

    await run(
        db.table(REELS_TABLE)
        .update({"view_count": (reel.get("view_count") or 0) + 1})
        .eq("id", reel_id)
    )


async def toggle_reel_like(db: Client, user_id: str, reel: Dict[str, Any]) -> Dict[str, Any]:
    """Like or unlike a reel. Returns the new like state and count."""
    reel_id = reel["id"]
    existing = await run(
        db.table(REEL_LIKES_TABLE).select("*").eq("reel_id", reel_id).eq("user_id", user_id)
    )
    like_count = reel.get("like_count") or 0
    if existing:
        await run(db.table(REEL_LIKES_TABLE).delete().eq("reel_id", reel_id).eq("user_id", user_id))
        like_count = max(0, like_count - 1)
        liked = False
    else:
        await run(db.table(REEL_LIKES_TABLE).insert({
            "reel_id": reel_id,
            "user_id": user_id,
            "created_at": utcnow().isoformat(),
        }))
        like_count += 1
        liked = True
        await log_user_behavior(db, user_id, BehaviorType.LIKE, reel_id, ContentType.REEL)

    await run(db.table(REELS_TABLE).update({"like_count": like_count}).eq("id", reel_id))
    return {"liked": liked, "like_count": like_count}


async def share_reel(db: Client, user_id: str, reel: Dict[str, Any], platform: str = "INTERNAL") -> Dict[str, Any]:
    reel_id = reel["id"]
    share_count = (reel.get("share_count") or 0) + 1
    await run(db.table(REELS_TABLE).update({"share_count": share_count}).eq("id", reel_id))
    await log_user_behavior(
        db, user_id, BehaviorType.SHARE, reel_id, ContentType.REEL, metadata={"platform": platform}
    )
    return {"share_count": share_count}
