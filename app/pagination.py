# app/pagination.py
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from fastapi import Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.config import settings

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class PageLabels:
    docs: str
    total: str


VIDEOS = PageLabels("videos", "totalVideos")
COMMENTS = PageLabels("comments", "totalComments")
TWEETS = PageLabels("tweets", "totalTweets")
PLAYLISTS = PageLabels("playlists", "totalPlaylists")
LIKED_VIDEOS = PageLabels("likedVideos", "totalLikedVideos")
SUBSCRIBERS = PageLabels("subscribers", "totalSubscribers")
SUBSCRIBED_CHANNELS = PageLabels("subscribedChannels", "totalSubscribedChannels")
WATCH_HISTORY = PageLabels("watchHistory", "totalWatchHistory")


def coerce_positive_int(value: Any, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class PageParams:
    """Query-string dependency: ``?page=&limit=`` with lenient coercion."""

    def __init__(self, page: Optional[str] = Query(None), limit: Optional[str] = Query(None)):
        self.page = coerce_positive_int(page, DEFAULT_PAGE)
        self.limit = min(coerce_positive_int(limit, DEFAULT_LIMIT), settings.max_page_limit)


def build_page(items: List[Any], total: int, page: int, limit: int, labels: PageLabels) -> Dict[str, Any]:
    total_pages = max(1, math.ceil(total / limit))
    has_next = page < total_pages
    has_prev = page > 1
    return {
        labels.docs: items,
        labels.total: total,
        "limit": limit,
        "totalPages": total_pages,
        "currentPage": page,
        "hasNextPage": has_next,
        "hasPrevPage": has_prev,
        "nextPage": page + 1 if has_next else None,
        "prevPage": page - 1 if has_prev else None,
    }


async def paginate(
    db: AsyncSession,
    statement: Select,
    page: int,
    limit: int,
    labels: PageLabels,
    transform: Optional[Callable[[List[Any]], List[Any]]] = None,
) -> Dict[str, Any]:
    """Run ``statement`` windowed to one page, counting over the same filter."""
    page = coerce_positive_int(page, DEFAULT_PAGE)
    limit = coerce_positive_int(limit, DEFAULT_LIMIT)

    count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar_one()

    rows = (await db.execute(statement.offset((page - 1) * limit).limit(limit))).all()
    items = transform(rows) if transform else list(rows)
    return build_page(items, total, page, limit, labels)
