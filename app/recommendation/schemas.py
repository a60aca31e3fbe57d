"""Table names and store access for the recommendation pipeline."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from app.core.config import settings
from app.recommendation.models import BehaviorType, ContentType

logger = logging.getLogger(__name__)

# Tables
USER_BEHAVIOR_LOGS_TABLE = "user_behavior_logs"
KEY_VALUE_STORE_TABLE = "key_value_store"
USER_INTERESTS_TABLE = "user_interests"
POSTS_TABLE = "posts"
REELS_TABLE = "reels"
GROUPS_TABLE = "groups"
GROUP_POSTS_TABLE = "group_posts"
REEL_VIEWS_TABLE = "reel_views"
REEL_LIKES_TABLE = "reel_likes"
USER_RECOMMENDATIONS_TABLE = "user_recommendations"

CONTENT_TABLES = {
    ContentType.POST: POSTS_TABLE,
    ContentType.REEL: REELS_TABLE,
    ContentType.GROUP: GROUPS_TABLE,
}

# Embedded creator for content rows
CREATOR_SELECT = "user:users(id, username, name)"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable timestamp {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def split_topics(raw: Optional[str]) -> List[str]:
    """Turn a comma-separated topic string into a de-duplicated list."""
    if not raw:
        return []
    topics = [t.strip() for t in raw.split(",")]
    return list(dict.fromkeys(t for t in topics if t))


async def run(query) -> List[Dict[str, Any]]:
    """Execute a PostgREST query off the event loop and return its rows."""
    result = await asyncio.to_thread(query.execute)
    return result.data or []


async def run_all(build_query, page_size: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Execute a query page by page with `.range()` until a short page comes back.

    `build_query` returns a fresh, stably ordered query for every page.
    """
    page_size = page_size or settings.STORE_PAGE_SIZE
    rows: List[Dict[str, Any]] = []
    start = 0
    while True:
        page = await run(build_query().range(start, start + page_size - 1))
        rows.extend(page)
        if len(page) < page_size:
            return rows
        start += page_size


# ─── Behavior log ─────────────────────────────────────────────────────────────

async def insert_behavior_event(db: Client, data: Dict[str, Any]) -> Optional[Dict]:
    rows = await run(db.table(USER_BEHAVIOR_LOGS_TABLE).insert(data))
    return rows[0] if rows else None


async def recent_behaviors(
    db: Client,
    user_id: str,
    limit: Optional[int] = None,
    content_type: Optional[ContentType] = None,
    behavior_types: Optional[Iterable[BehaviorType]] = None,
    since: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Most recent behavior rows for one user, newest first."""
    query = db.table(USER_BEHAVIOR_LOGS_TABLE).select("*").eq("user_id", user_id)
    if content_type is not None:
        query = query.eq("content_type", content_type.value)
    if behavior_types is not None:
        query = query.in_("behavior_type", [b.value for b in behavior_types])
    if since is not None:
        query = query.gte("timestamp", since.isoformat())
    query = query.order("timestamp", desc=True)
    if limit is not None:
        query = query.limit(limit)
    return await run(query)


async def behaviors_for_content(
    db: Client,
    content_ids: List[str],
    content_type: ContentType,
    exclude_user_id: str,
) -> List[Dict[str, Any]]:
    """Other users' interactions with any of the given content items."""
    if not content_ids:
        return []
    return await run_all(lambda: db.table(USER_BEHAVIOR_LOGS_TABLE)
                         .select("*")
                         .neq("user_id", exclude_user_id)
                         .in_("content_id", content_ids)
                         .eq("content_type", content_type.value)
                         .order("timestamp", desc=True)
                         .order("id"))


async def behaviors_of_users(
    db: Client,
    user_ids: List[str],
    content_type: ContentType,
    exclude_content_ids: List[str],
) -> List[Dict[str, Any]]:
    """Interactions by the given users, minus content the caller has already seen."""
    if not user_ids:
        return []

    def build():
        query = db.table(USER_BEHAVIOR_LOGS_TABLE)\
            .select("*")\
            .in_("user_id", user_ids)\
            .eq("content_type", content_type.value)
        if exclude_content_ids:
            query = query.not_.in_("content_id", exclude_content_ids)
        return query.order("timestamp", desc=True).order("id")

    return await run_all(build)


async def behaviors_since(db: Client, content_type: ContentType, since: datetime) -> List[Dict[str, Any]]:
    return await run_all(lambda: db.table(USER_BEHAVIOR_LOGS_TABLE)
                         .select("content_id, timestamp")
                         .eq("content_type", content_type.value)
                         .gte("timestamp", since.isoformat())
                         .order("id"))


# ─── Explicit interests ───────────────────────────────────────────────────────

async def user_interest_rows(db: Client, user_id: str) -> List[Dict[str, Any]]:
    query = db.table(USER_INTERESTS_TABLE)\
        .select("topic_id, created_at, topic:topics(name)")\
        .eq("user_id", user_id)\
        .order("created_at", desc=True)
    return await run(query)


async def interest_rows_for_topics(db: Client, topic_ids: List[str], exclude_user_id: str) -> List[Dict[str, Any]]:
    if not topic_ids:
        return []
    return await run_all(lambda: db.table(USER_INTERESTS_TABLE)
                         .select("user_id, topic_id, user:users(id, username, name, created_at)")
                         .in_("topic_id", topic_ids)
                         .neq("user_id", exclude_user_id)
                         .order("user_id")
                         .order("topic_id"))


# ─── Content reads ────────────────────────────────────────────────────────────

async def content_by_ids(
    db: Client,
    content_type: ContentType,
    ids: List[str],
    columns: str = "*",
) -> List[Dict[str, Any]]:
    table = CONTENT_TABLES.get(content_type)
    if table is None or not ids:
        return []
    return await run(db.table(table).select(columns).in_("id", ids))


async def recent_content(
    db: Client,
    content_type: ContentType,
    limit: int,
    exclude_ids: Optional[List[str]] = None,
    exclude_owner: Optional[str] = None,
    require_topics: bool = False,
    columns: str = "*",
) -> List[Dict[str, Any]]:
    """Newest content rows of one type, with optional exclusions."""
    table = CONTENT_TABLES.get(content_type)
    if table is None:
        return []
    query = db.table(table).select(columns)
    if exclude_ids:
        query = query.not_.in_("id", exclude_ids)
    if exclude_owner is not None:
        query = query.neq("user_id", exclude_owner)
    if require_topics:
        query = query.not_.is_("ai_topics", "null")
    query = query.order("created_at", desc=True).limit(limit)
    return await run(query)


async def content_owners(db: Client, content_type: ContentType, ids: List[str]) -> Dict[str, str]:
    """Map content id to owning user id."""
    rows = await content_by_ids(db, content_type, ids, columns="id, user_id")
    return {row["id"]: row["user_id"] for row in rows if row.get("user_id")}


async def reels_since(
    db: Client,
    since: datetime,
    exclude_ids: List[str],
    limit: int,
) -> List[Dict[str, Any]]:
    query = db.table(REELS_TABLE)\
        .select("id, view_count, like_count, created_at")\
        .gte("created_at", since.isoformat())
    if exclude_ids:
        query = query.not_.in_("id", exclude_ids)
    query = query.order("view_count", desc=True)\
        .order("like_count", desc=True)\
        .limit(limit)
    return await run(query)


async def group_posts_since(db: Client, since: datetime) -> List[Dict[str, Any]]:
    return await run_all(lambda: db.table(GROUP_POSTS_TABLE)
                         .select("group_id, created_at")
                         .gte("created_at", since.isoformat())
                         .order("id"))
