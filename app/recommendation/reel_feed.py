"""
Reel feed session.

Client-side state for a vertically scrolling reel feed: the loaded reels,
the focused index, per-reel view timers and the pagination cursor of the
active feed mode. All I/O is injected so a session can be driven by a UI
event loop or by tests with a fake clock.
"""
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.recommendation.models import FeedSources

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_DURATION = 10.0
MIN_VIEW_SECONDS = 1.0
LOAD_MORE_THRESHOLD = 2


class FeedMode(str, Enum):
    FOR_YOU = "foryou"
    FOLLOWING = "following"
    TRENDING = "trending"


@dataclass
class ViewLogEntry:
    start_time: float
    logged: bool = False
    watch_duration: Optional[float] = None
    completion_rate: Optional[float] = None


@dataclass
class ReelPage:
    reels: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None


# fetch_page(mode, cursor, sources) -> ReelPage
FetchPage = Callable[[FeedMode, Optional[str], FeedSources], Awaitable[ReelPage]]
# log_view(reel_id, watch_duration, completion_rate)
LogView = Callable[[str, float, float], Awaitable[Any]]
ReelAction = Callable[[str], Awaitable[Any]]


class ReelFeedSession:
    """
    State machine over FeedMode.

    for-you pages come from the blended recommendation stream filtered by
    `sources`; following and trending pages come from the plain newest-first
    query. Which one is called is up to `fetch_page`, which receives the mode.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        log_view: LogView,
        video_duration: Optional[Callable[[str], Optional[float]]] = None,
        like_reel: Optional[ReelAction] = None,
        share_reel: Optional[ReelAction] = None,
        clock: Callable[[], float] = time.monotonic,
        mode: FeedMode = FeedMode.FOR_YOU,
        sources: Optional[FeedSources] = None,
    ):
        self._fetch_page = fetch_page
        self._log_view = log_view
        self._video_duration = video_duration
        self._like_reel = like_reel
        self._share_reel = share_reel
        self._clock = clock
        self.mode = FeedMode(mode)
        self.sources = sources or FeedSources()
        self._generation = 0
        self._reset()

    def _reset(self) -> None:
        self.reels: List[Dict[str, Any]] = []
        self.current_index = 0
        self.view_logs: Dict[str, ViewLogEntry] = {}
        self.cursor: Optional[str] = None
        self.has_more = True
        self.loading = False

    @property
    def current_reel(self) -> Optional[Dict[str, Any]]:
        if 0 <= self.current_index < len(self.reels):
            return self.reels[self.current_index]
        return None

    async def load_initial(self) -> None:
        """Fetch the first page of the active mode and start timing the first reel."""
        generation = self._generation
        await self.load_more()
        if generation == self._generation and self.current_reel is not None:
            self._start_view(self.current_reel["id"])

    async def change_mode(self, mode: FeedMode) -> None:
        """Switch modes. All local state is dropped, in-flight fetches are discarded."""
        self.mode = FeedMode(mode)
        self._generation += 1
        self._reset()
        await self.load_initial()

    async def on_scroll(self, scroll_top: float, viewport_height: float) -> None:
        if viewport_height <= 0 or not self.reels:
            return
        new_index = math.floor(scroll_top / viewport_height + 0.5)
        new_index = min(max(new_index, 0), len(self.reels) - 1)
        if new_index == self.current_index:
            return

        self._start_view(self.reels[new_index]["id"])
        previous = self.current_reel
        self.current_index = new_index
        if previous is not None:
            await self._finish_view(previous["id"])

        if self.current_index >= len(self.reels) - LOAD_MORE_THRESHOLD:
            await self.load_more()

    def _start_view(self, reel_id: str) -> None:
        entry = self.view_logs.get(reel_id)
        if entry is None or not entry.logged:
            self.view_logs[reel_id] = ViewLogEntry(start_time=self._clock())

    async def _finish_view(self, reel_id: str) -> None:
        entry = self.view_logs.get(reel_id)
        if entry is None or entry.logged:
            return

        elapsed = self._clock() - entry.start_time
        if elapsed < MIN_VIEW_SECONDS:
            return

        duration = self._video_duration(reel_id) if self._video_duration else None
        if not duration or duration <= 0:
            duration = DEFAULT_VIDEO_DURATION
        completion_rate = min(1.0, elapsed / duration)

        entry.logged = True
        entry.watch_duration = elapsed
        entry.completion_rate = completion_rate
        try:
            await self._log_view(reel_id, elapsed, completion_rate)
        except Exception as e:
            logger.error(f"Error logging reel view for {reel_id}: {str(e)}")

    async def load_more(self) -> None:
        """Fetch the next page unless a fetch is in flight or the stream is exhausted."""
        if self.loading or not self.has_more:
            return
        generation = self._generation
        self.loading = True
        try:
            page = await self._fetch_page(self.mode, self.cursor, self.sources)
        except Exception as e:
            logger.error(f"Error loading {self.mode.value} reels: {str(e)}")
            if generation == self._generation:
                self.loading = False
            return

        if generation != self._generation:
            return
        known = {reel["id"] for reel in self.reels}
        fresh = []
        for reel in page.reels:
            if reel["id"] not in known:
                known.add(reel["id"])
                fresh.append(reel)
        self.reels.extend(fresh)
        self.cursor = page.next_cursor
        # re-blended pages can repeat; a page with nothing new ends the stream
        self.has_more = page.next_cursor is not None and bool(fresh)
        self.loading = False

    def _find(self, reel_id: str) -> Optional[Dict[str, Any]]:
        for reel in self.reels:
            if reel["id"] == reel_id:
                return reel
        return None

    async def like(self, reel_id: str) -> None:
        reel = self._find(reel_id)
        if reel is None:
            return
        liked = not reel.get("is_liked_by_user", False)
        reel["is_liked_by_user"] = liked
        reel["like_count"] = max(0, (reel.get("like_count") or 0) + (1 if liked else -1))
        if self._like_reel:
            try:
                await self._like_reel(reel_id)
            except Exception as e:
                logger.error(f"Error liking reel {reel_id}: {str(e)}")

    async def share(self, reel_id: str) -> None:
        reel = self._find(reel_id)
        if reel is None:
            return
        reel["share_count"] = (reel.get("share_count") or 0) + 1
        if self._share_reel:
            try:
                await self._share_reel(reel_id)
            except Exception as e:
                logger.error(f"Error sharing reel {reel_id}: {str(e)}")

    def on_comment_added(self, reel_id: str) -> None:
        """Called once the comment has been posted successfully."""
        reel = self._find(reel_id)
        if reel is not None:
            reel["comment_count"] = (reel.get("comment_count") or 0) + 1
