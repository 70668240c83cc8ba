"""
Lock reasons for a video, one entry per requested category.

Lock rows are fetched once per video and filtered in memory. Display names of
the locking users come from a single batched lookup over the distinct user
ids, so the number of identity queries never grows with the number of locks.
Categories without a lock get an explicit unlocked placeholder.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import bindparam, text

from config import CATEGORY_LIST
from errors import InvalidRequestError
from utils.database import Database

logger = logging.getLogger(__name__)

USER_NAMES_QUERY = text(
    'SELECT "userName", "userID" FROM "userNames" WHERE "userID" IN :user_ids LIMIT :limit'
).bindparams(bindparam("user_ids", expanding=True))


class LockResult(BaseModel):
    """Lock state of one category on one video."""

    category: str
    locked: int
    reason: str
    userID: str
    userName: str

    @classmethod
    def unlocked(cls, category: str) -> "LockResult":
        return cls(category=category, locked=0, reason="", userID="", userName="")


def select_categories(categories: Optional[List[Any]]) -> List[str]:
    """
    Keep configured categories only, de-duplicated in requested order.

    An empty result (nothing requested, or nothing valid) means every
    configured category.
    """
    selected = [
        category
        for category in (categories or [])
        if isinstance(category, str) and category in CATEGORY_LIST
    ]
    return list(dict.fromkeys(selected)) or list(CATEGORY_LIST)


async def fetch_user_names(db: Database, user_ids: List[str]) -> Dict[str, str]:
    """Display names for user_ids in one query; ids without a name are absent."""
    if not user_ids:
        return {}
    rows = await db.fetch_all(USER_NAMES_QUERY, {"user_ids": user_ids, "limit": len(user_ids)})
    return {row["userID"]: row["userName"] for row in rows}


async def get_lock_reasons(
    db: Database,
    video_id: Optional[str],
    categories: Optional[List[Any]] = None,
) -> List[LockResult]:
    """
    Build the lock report for video_id.

    Algorithm:
        1. Validate video_id and normalize the category list
        2. Fetch every lock row for the video
        3. Batch-fetch display names for the distinct locking users
        4. Emit one result per category in requested order

    Args:
        db: Store client
        video_id: Video to report on (required)
        categories: Requested categories; None/empty means all configured

    Returns:
        Exactly one LockResult per selected category

    Raises:
        InvalidRequestError: If video_id is missing
        StoreError: If a store query fails
    """
    if not video_id:
        raise InvalidRequestError("Missing videoID parameter")

    search_categories = select_categories(categories)

    rows = await db.fetch_all(
        'SELECT "category", "reason", "userID" FROM "lockCategories" WHERE "videoID" = :video_id',
        {"video_id": video_id},
    )
    # At most one lock per (video, category)
    locks = {row["category"]: row for row in rows}

    user_ids = list(dict.fromkeys(row["userID"] for row in rows if row["userID"]))
    user_names = await fetch_user_names(db, user_ids)

    results = []
    for category in search_categories:
        lock = locks.get(category)
        if lock is None:
            results.append(LockResult.unlocked(category))
            continue
        user_id = lock["userID"] or ""
        results.append(
            LockResult(
                category=category,
                locked=1,
                reason=lock["reason"] or "",
                userID=user_id,
                userName=user_names.get(user_id, ""),
            )
        )

    logger.debug(f"Lock reasons for {video_id}: {len(rows)} locks, {len(results)} results")
    return results
