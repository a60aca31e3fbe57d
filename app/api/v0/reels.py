import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.deps import get_ai_client, get_current_user, get_supabase
from app.recommendation.models import FeedSources, ReelPageOut, ReelShareCreate, ReelViewCreate
from app.recommendation.service import (
    get_reel,
    latest_reels_page,
    log_reel_view,
    recommended_reels_page,
    share_reel,
    toggle_reel_like,
)
from app.schemas.users import CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reels"])


async def _reel_or_404(supabase, reel_id: str) -> dict:
    reel = await get_reel(supabase, reel_id)
    if not reel:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Reel not found")
    return reel


@router.get(
    "/recommended",
    response_model=ReelPageOut,
    summary="For-you reel stream",
)
async def get_recommended_reels(
    limit: int = Query(10, ge=1, le=20),
    include_ai: bool = True,
    include_collaborative: bool = True,
    include_content_based: bool = True,
    include_trending: bool = True,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
    ai=Depends(get_ai_client),
):
    """
    A page of blended reel recommendations for the current user.

    Each reel carries `recommendation.reason` and `recommendation.source`
    describing why it was picked. The include_* flags switch individual
    scorers off.
    """
    sources = FeedSources(
        include_ai=include_ai,
        include_collaborative=include_collaborative,
        include_content_based=include_content_based,
        include_trending=include_trending,
    )
    try:
        return await recommended_reels_page(supabase, ai, current_user.id, limit, sources)
    except Exception as e:
        logger.error(f"Error serving recommended reels: {str(e)}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to get recommended reels: {str(e)}")


@router.get(
    "/",
    response_model=ReelPageOut,
    summary="Newest reels",
)
async def get_reels(
    limit: int = Query(10, ge=1, le=50),
    cursor: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    """
    Newest published reels, paginated by reel id.

    Pass the previous page's `next_cursor` to continue; it is null on the
    last page.
    """
    try:
        return await latest_reels_page(supabase, current_user.id, limit, cursor)
    except Exception as e:
        logger.error(f"Error listing reels: {str(e)}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to get reels: {str(e)}")


@router.post(
    "/{reel_id}/views",
    status_code=status.HTTP_201_CREATED,
    summary="Log a reel view",
)
async def create_reel_view(
    reel_id: str,
    payload: ReelViewCreate,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    reel = await _reel_or_404(supabase, reel_id)
    try:
        await log_reel_view(supabase, current_user.id, reel, payload.watch_duration, payload.completion_rate)
    except Exception as e:
        logger.error(f"Error logging view of reel {reel_id}: {str(e)}", exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to log reel view: {str(e)}")
    return {"success": True}


@router.post(
    "/{reel_id}/like",
    summary="Like or unlike a reel",
)
async def like_reel(
    reel_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    reel = await _reel_or_404(supabase, reel_id)
    try:
        return await toggle_reel_like(supabase, current_user.id, reel)
    except Exception as e:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to like reel: {str(e)}")


@router.post(
    "/{reel_id}/share",
    summary="Share a reel",
)
async def create_reel_share(
    reel_id: str,
    payload: Optional[ReelShareCreate] = None,
    current_user: CurrentUser = Depends(get_current_user),
    supabase=Depends(get_supabase),
):
    reel = await _reel_or_404(supabase, reel_id)
    platform = payload.platform if payload else "INTERNAL"
    try:
        return await share_reel(supabase, current_user.id, reel, platform)
    except Exception as e:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to share reel: {str(e)}")
