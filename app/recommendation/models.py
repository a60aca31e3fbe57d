from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class BehaviorType(str, Enum):
    """Kinds of user interaction recorded in the behavior log."""
    VIEW = "view"
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    SAVE = "save"
    CLICK = "click"
    FOLLOW = "follow"
    DWELL_TIME = "dwell_time"
    SEARCH = "search"


class ContentType(str, Enum):
    POST = "post"
    REEL = "reel"
    GROUP = "group"
    EVENT = "event"
    USER = "user"
    TOPIC = "topic"
    STORY = "story"


class RecommendationSource(str, Enum):
    """Which scorer produced a recommendation."""
    COLLABORATIVE_FILTERING = "collaborative_filtering"
    CONTENT_BASED = "content_based"
    TRENDING = "trending"
    SOCIAL_GRAPH = "social_graph"
    AI_PERSONALIZED = "ai_personalized"
    INTEREST_BASED = "interest_based"
    LOCATION_BASED = "location_based"


class RecommendationReason(str, Enum):
    """User-facing explanation attached to a recommendation."""
    SIMILAR_CONTENT = "similar_content"
    FRIENDS_ENGAGED = "friends_engaged"
    TRENDING_NOW = "trending_now"
    BASED_ON_INTERESTS = "based_on_interests"
    BASED_ON_HISTORY = "based_on_history"
    BASED_ON_LOCATION = "based_on_location"
    SIMILAR_USERS = "similar_users"
    COMPLEMENTARY_CONTENT = "complementary_content"
    NEW_BUT_RELEVANT = "new_but_relevant"


class Timeframe(str, Enum):
    DAY = "day"
    WEEK = "week"


class BehaviorEvent(BaseModel):
    """A single logged user interaction. Rows are append-only."""
    user_id: str
    behavior_type: BehaviorType
    content_id: str
    content_type: ContentType
    timestamp: datetime
    duration: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


# ─── Interest profile ─────────────────────────────────────────────────────────

class TopicInterest(BaseModel):
    id: str
    name: str
    weight: float = Field(1.0, ge=0, le=1)
    last_engagement: Optional[datetime] = None


class CreatorInterest(BaseModel):
    id: str
    weight: float = Field(..., ge=0, le=1)


DEFAULT_CONTENT_TYPES: Dict[str, float] = {
    ContentType.POST.value: 0.5,
    ContentType.REEL.value: 0.3,
    ContentType.GROUP.value: 0.1,
    ContentType.EVENT.value: 0.05,
    ContentType.USER.value: 0.02,
    ContentType.TOPIC.value: 0.02,
    ContentType.STORY.value: 0.01,
}

DEFAULT_ENGAGEMENT_PATTERNS: Dict[str, float] = {
    BehaviorType.VIEW.value: 0.7,
    BehaviorType.LIKE.value: 0.2,
    BehaviorType.COMMENT.value: 0.05,
    BehaviorType.SHARE.value: 0.02,
    BehaviorType.SAVE.value: 0.01,
    BehaviorType.CLICK.value: 0.01,
    BehaviorType.FOLLOW.value: 0.005,
    BehaviorType.DWELL_TIME.value: 0.0,
    BehaviorType.SEARCH.value: 0.005,
}


class InterestProfile(BaseModel):
    """
    Weighted summary of what a user engages with.

    content_types, engagement_patterns and time_patterns are frequency
    distributions keyed by enum value (zero-padded hour for time_patterns).
    Each sums to 1.0, or holds the fixed defaults when there is no history.
    """
    topics: List[TopicInterest] = Field(default_factory=list)
    creators: List[CreatorInterest] = Field(default_factory=list)
    content_types: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_CONTENT_TYPES))
    engagement_patterns: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ENGAGEMENT_PATTERNS))
    time_patterns: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "InterestProfile":
        return cls()


# ─── Recommendation items ────────────────────────────────────────────────────

class CollaborativeMetadata(BaseModel):
    source: Literal["collaborative_filtering"] = "collaborative_filtering"
    similar_user_count: int = 0


class ContentBasedMetadata(BaseModel):
    source: Literal["content_based"] = "content_based"
    matching_topics: List[str] = Field(default_factory=list)


class TrendingMetadata(BaseModel):
    source: Literal["trending"] = "trending"
    timeframe: Timeframe = Timeframe.DAY


class AIPersonalizedMetadata(BaseModel):
    source: Literal["ai_personalized"] = "ai_personalized"
    explanation: str = ""


class InterestBasedMetadata(BaseModel):
    source: Literal["interest_based"] = "interest_based"
    username: Optional[str] = None
    name: Optional[str] = None
    matching_topic_count: int = 0
    matching_topics: List[str] = Field(default_factory=list)


RecommendationMetadata = Annotated[
    Union[
        CollaborativeMetadata,
        ContentBasedMetadata,
        TrendingMetadata,
        AIPersonalizedMetadata,
        InterestBasedMetadata,
    ],
    Field(discriminator="source"),
]


class RecommendationItem(BaseModel):
    """
    One scored candidate produced by a scorer.

    Scores are only comparable within a single source; the blender's slot
    allocation is what makes sources commensurable.
    """
    id: str
    content_type: ContentType
    score: float
    reason: RecommendationReason
    source: RecommendationSource
    timestamp: datetime
    metadata: RecommendationMetadata


# ─── API payloads ─────────────────────────────────────────────────────────────

class LogBehaviorRequest(BaseModel):
    behavior_type: BehaviorType
    content_id: str = Field(..., min_length=1)
    content_type: ContentType
    duration: Optional[float] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class FeedSources(BaseModel):
    """Per-scorer toggles for the blended feed."""
    include_ai: bool = True
    include_collaborative: bool = True
    include_content_based: bool = True
    include_trending: bool = True


class ReelViewCreate(BaseModel):
    watch_duration: float = Field(..., ge=0)
    completion_rate: float = Field(..., ge=0, le=1)


class ReelShareCreate(BaseModel):
    platform: str = "INTERNAL"


class ReelPageOut(BaseModel):
    reels: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
