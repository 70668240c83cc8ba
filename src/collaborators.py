"""
Collaborators the user statistics depend on but do not own.

VIP lookup is a plain store query. Reputation scoring and category submission
rules live outside this service; they are injected as coroutine functions on
Collaborators so deployments can plug in the real implementations. The
defaults keep the service usable on their own.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from errors import StoreError
from utils.database import Database

logger = logging.getLogger(__name__)

ReputationFn = Callable[[Database, str], Awaitable[float]]
CanSubmitFn = Callable[[Database, "Collaborators", str, str], Awaitable[bool]]


async def is_user_vip(db: Database, user_id: str) -> bool:
    """True when user_id is listed in vipUsers; store faults read as False."""
    try:
        row = await db.fetch_one(
            'SELECT count(*) as "userCount" FROM "vipUsers" WHERE "userID" = :user_id LIMIT 1',
            {"user_id": user_id},
        )
        return bool(row and row["userCount"] > 0)
    except StoreError as e:
        logger.error(f"Couldn't check VIP status for user {user_id}: {e}")
        return False


async def neutral_reputation(db: Database, user_id: str) -> float:
    return 0.0


async def default_can_submit(
    db: Database, collaborators: "Collaborators", user_id: str, category: str
) -> bool:
    """Chapters need VIP or positive reputation; every other category is open."""
    if category != "chapter":
        return True
    if await is_user_vip(db, user_id):
        return True
    return await collaborators.reputation(db, user_id) > 0


@dataclass
class Collaborators:
    reputation: ReputationFn = field(default=neutral_reputation)
    can_submit: CanSubmitFn = field(default=default_can_submit)
