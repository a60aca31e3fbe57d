"""Behavior log sink."""
import logging
from typing import Any, Dict, Optional

from supabase import Client

from app.recommendation import cache
from app.recommendation.models import BehaviorEvent, BehaviorType, ContentType
from app.recommendation.profile import profile_cache_key
from app.recommendation.schemas import insert_behavior_event, utcnow

logger = logging.getLogger(__name__)

# Interactions strong enough to invalidate the cached interest profile
PROFILE_INVALIDATING_BEHAVIORS = {
    BehaviorType.LIKE,
    BehaviorType.SAVE,
    BehaviorType.FOLLOW,
    BehaviorType.SHARE,
}


async def log_user_behavior(
    db: Client,
    user_id: str,
    behavior_type: BehaviorType,
    content_id: str,
    content_type: ContentType,
    metadata: Optional[Dict[str, Any]] = None,
    duration: Optional[float] = None,
) -> bool:
    """
    Append a behavior event for a user.

    Like, save, follow and share events also drop the user's cached interest
    profile so the next feed request rebuilds it.

    Returns:
        bool: True if the event was written. Failures are logged, never raised.
    """
    try:
        event = BehaviorEvent(
            user_id=user_id,
            behavior_type=behavior_type,
            content_id=content_id,
            content_type=content_type,
            timestamp=utcnow(),
            duration=round(duration) if duration is not None else None,
            metadata=metadata,
        )
        await insert_behavior_event(db, event.model_dump(mode="json"))
    except Exception as e:
        logger.error(f"Error logging user behavior for {user_id}: {str(e)}", exc_info=True)
        return False

    if behavior_type in PROFILE_INVALIDATING_BEHAVIORS:
        try:
            await cache.delete_entry(db, profile_cache_key(user_id))
        except Exception as e:
            logger.warning(f"Failed to invalidate interest profile for {user_id}: {str(e)}")

    return True
