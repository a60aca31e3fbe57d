"""Feed blender: merges the four scorers into one bounded, shuffled feed."""
import asyncio
import logging
import math
import random
from typing import Awaitable, Dict, List, Optional

from supabase import Client

from app.core.ai import AIClient
from app.core.config import settings
from app.recommendation.models import (
    ContentType,
    FeedSources,
    RecommendationItem,
    RecommendationSource,
)
from app.recommendation.scorers import (
    ai_personalized_recommendations,
    collaborative_recommendations,
    content_based_recommendations,
    trending_recommendations,
)

logger = logging.getLogger(__name__)

# Percent of the feed reserved for each source, in slice order
SOURCE_ALLOCATION = (
    (RecommendationSource.AI_PERSONALIZED, 35),
    (RecommendationSource.COLLABORATIVE_FILTERING, 25),
    (RecommendationSource.CONTENT_BASED, 20),
    (RecommendationSource.TRENDING, 20),
)


def allocate_slots(total_items: int) -> Dict[RecommendationSource, int]:
    """Floor of each source's share of total_items. May sum to less than total_items."""
    return {source: total_items * percent // 100 for source, percent in SOURCE_ALLOCATION}


def weighted_shuffle(items: List[RecommendationItem], rng: Optional[random.Random] = None) -> List[RecommendationItem]:
    """
    Score-biased Fisher-Yates shuffle.

    For each position i (last to first) a partner j is drawn uniformly from
    [0, i], then pulled back towards i: the distance i - j is scaled by
    (1 - s * 0.5), where s is the higher score of the two items (clamped to
    [0, 1]), and stochastically rounded. Low-scored pairs shuffle freely;
    a pair containing a 1.0 item moves at most half as far.
    """
    rng = rng or random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = math.floor(rng.random() * (i + 1))
        score = max(_clamp(shuffled[i].score), _clamp(shuffled[j].score))
        distance = (i - j) * (1 - score * 0.5)
        j = i - math.floor(distance + rng.random())
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def _clamp(score: float) -> float:
    return min(max(score, 0.0), 1.0)


def blend(
    results: Dict[RecommendationSource, List[RecommendationItem]],
    limit: int,
    rng: Optional[random.Random] = None,
) -> List[RecommendationItem]:
    """
    Fill min(limit, FEED_MAX_ITEMS) slots from per-source ranked lists.

    Each source contributes the head of its list up to its allocation. Slots
    lost to floor rounding are filled from the pooled leftovers of every
    source, best score first. An id already taken by an earlier source is
    skipped, so every content item appears at most once. The result is then
    passed through `weighted_shuffle`.
    """
    total_items = max(0, min(limit, settings.FEED_MAX_ITEMS))
    allocation = allocate_slots(total_items)

    selected: List[RecommendationItem] = []
    taken = set()
    leftovers: List[RecommendationItem] = []
    for source, _ in SOURCE_ALLOCATION:
        count = allocation[source]
        for item in results.get(source) or []:
            if item.id in taken:
                continue
            if count > 0:
                selected.append(item)
                taken.add(item.id)
                count -= 1
            else:
                leftovers.append(item)

    remaining_slots = total_items - sum(allocation.values())
    leftovers.sort(key=lambda item: item.score, reverse=True)
    for item in leftovers:
        if remaining_slots <= 0:
            break
        if item.id in taken:
            continue
        selected.append(item)
        taken.add(item.id)
        remaining_slots -= 1

    return weighted_shuffle(selected, rng)


async def _isolated(source: RecommendationSource, call: Awaitable[List[RecommendationItem]], timeout: float) -> List[RecommendationItem]:
    """Await one scorer; any error or timeout becomes an empty contribution."""
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Scorer {source.value} timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Scorer {source.value} failed: {str(e)}", exc_info=True)
    return []


async def _disabled() -> List[RecommendationItem]:
    return []


async def personalized_feed(
    db: Client,
    ai: AIClient,
    user_id: str,
    content_type: ContentType = ContentType.POST,
    limit: int = 20,
    sources: Optional[FeedSources] = None,
    rng: Optional[random.Random] = None,
    model: Optional[str] = None,
) -> List[RecommendationItem]:
    """
    Run all enabled scorers concurrently and blend their output.

    Never raises; returns [] if everything fails.
    """
    sources = sources or FeedSources()
    timeout = settings.SCORER_TIMEOUT_SECONDS
    try:
        calls = {
            RecommendationSource.AI_PERSONALIZED: (
                ai_personalized_recommendations(db, ai, user_id, content_type, limit, model)
                if sources.include_ai else _disabled()
            ),
            RecommendationSource.COLLABORATIVE_FILTERING: (
                collaborative_recommendations(db, user_id, content_type, limit)
                if sources.include_collaborative else _disabled()
            ),
            RecommendationSource.CONTENT_BASED: (
                content_based_recommendations(db, user_id, content_type, limit)
                if sources.include_content_based else _disabled()
            ),
            RecommendationSource.TRENDING: (
                trending_recommendations(db, user_id, content_type, limit)
                if sources.include_trending else _disabled()
            ),
        }
        outputs = await asyncio.gather(
            *(_isolated(source, call, timeout) for source, call in calls.items())
        )
        results = dict(zip(calls.keys(), outputs))
        feed = blend(results, limit, rng)
        logger.info(
            f"Blended feed for {user_id} ({content_type.value}): {len(feed)} items from "
            + ", ".join(f"{s.value}={len(r)}" for s, r in results.items())
        )
        return feed
    except Exception as e:
        logger.error(f"Error generating personalized feed: {str(e)}", exc_info=True)
        return []
