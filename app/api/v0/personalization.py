import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.deps import get_ai_client, get_current_user, get_supabase
from app.recommendation.behavior import log_user_behavior
from app.recommendation.models import (
    ContentType,
    InterestProfile,
    LogBehaviorRequest,
    RecommendationItem,
    RecommendationSource,
)
from app.recommendation.profile import get_or_build_interest_profile
from app.recommendation.scorers import find_similar_users
from app.recommendation.service import (
    UnsupportedRecommendationRequest,
    personalized_feed_with_fallback,
    recommendations_by_source,
)
from app.schemas.users import CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(tags=["personalization"])


@router.post(
    "/behavior",
    status_code=status.HTTP_201_CREATED,
    summary="Log a user behavior event",
)
async def log_behavior(
    payload: LogBehaviorRequest,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    """
    Append a behavior event for the current user.

    Raises:
        HTTPException: 500 if the event could not be stored
    """
    ok = await log_user_behavior(
        supabase,
        current_user.id,
        payload.behavior_type,
        payload.content_id,
        payload.content_type,
        metadata=payload.metadata,
        duration=payload.duration,
    )
    if not ok:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to log user behavior")
    return {"success": True}


@router.get(
    "/interests",
    response_model=InterestProfile,
    summary="Current user's interest profile",
)
async def get_interests(
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    return await get_or_build_interest_profile(supabase, current_user.id)


@router.get(
    "/feed",
    response_model=List[RecommendationItem],
    summary="Blended personalized feed",
)
async def get_personalized_feed(
    content_type: ContentType = Query(ContentType.POST),
    limit: int = Query(20, ge=1, le=50),
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
    ai=Depends(get_ai_client),
):
    """
    Blend all scorers into one feed of at most 20 items.
    Falls back to trending content when nothing could be blended.
    """
    try:
        return await personalized_feed_with_fallback(supabase, ai, current_user.id, content_type, limit)
    except Exception as e:
        logger.error(f"Error serving personalized feed: {str(e)}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to get personalized feed: {str(e)}")


@router.get(
    "/sources/{source}",
    response_model=List[RecommendationItem],
    summary="Recommendations from a single source",
)
async def get_recommendations_by_source(
    source: RecommendationSource,
    content_type: ContentType = Query(ContentType.POST),
    limit: int = Query(10, ge=1, le=50),
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
    ai=Depends(get_ai_client),
):
    """
    Raises:
        HTTPException: 400 if the source cannot serve the content type
    """
    try:
        return await recommendations_by_source(supabase, ai, current_user.id, source, content_type, limit)
    except UnsupportedRecommendationRequest as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))


@router.get(
    "/similar-users",
    response_model=List[RecommendationItem],
    summary="Users with overlapping topic interests",
)
async def get_similar_users(
    limit: int = Query(10, ge=1, le=50),
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    return await find_similar_users(supabase, current_user.id, limit)
