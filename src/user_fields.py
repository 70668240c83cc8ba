"""
User statistic fields: fetchers, the field registry and the per-request resolver.

Every requestable field is a UserField member. The registry maps each member
to exactly one producer:

    Echo      - the subject id itself, known at dispatch time
    Fetch     - a coroutine function run lazily with the request context
    Grouped   - owned by a FieldGroup; the whole group is computed by one
                query and written after all individual fields

Fetchers absorb their own store faults: each logs, bumps the fallback
counter and returns its documented fallback value, so one failing field never
aborts the others.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from collaborators import Collaborators, is_user_vip
from config import (
    CATEGORY_LIST,
    FREE_CHAPTERS_EARLY_CUTOFF,
    FREE_CHAPTERS_REPUTABLE_CUTOFF,
    MAX_REWARD_TIME_PER_SEGMENT_IN_SECONDS,
)
from errors import StoreError
from utils.database import Database
from utils.metrics_utils import FIELD_FALLBACKS
from utils.race import first_truthy

logger = logging.getLogger(__name__)

DEFAULT_FIELD_VALUE = ""

# Segments that count towards a user's stats
QUALIFYING = '"votes" > -2 AND "shadowHidden" != 1'
IGNORED = '( "votes" <= -2 OR "shadowHidden" = 1 )'


class UserField(str, Enum):
    USER_ID = "userID"
    USER_NAME = "userName"
    MINUTES_SAVED = "minutesSaved"
    SEGMENT_COUNT = "segmentCount"
    IGNORED_SEGMENT_COUNT = "ignoredSegmentCount"
    VIEW_COUNT = "viewCount"
    IGNORED_VIEW_COUNT = "ignoredViewCount"
    WARNINGS = "warnings"
    WARNING_REASON = "warningReason"
    REPUTATION = "reputation"
    VIP = "vip"
    LAST_SEGMENT_ID = "lastSegmentID"
    BANNED = "banned"
    PERMISSIONS = "permissions"
    FREE_CHAPTERS_ACCESS = "freeChaptersAccess"

    @classmethod
    def parse(cls, name: Any) -> Optional["UserField"]:
        try:
            return cls(name)
        except ValueError:
            return None


class FieldGroup(str, Enum):
    SEGMENT_SUMMARY = "segmentSummary"


DEFAULT_FIELDS: List[UserField] = [
    UserField.USER_ID,
    UserField.USER_NAME,
    UserField.MINUTES_SAVED,
    UserField.SEGMENT_COUNT,
    UserField.IGNORED_SEGMENT_COUNT,
    UserField.VIEW_COUNT,
    UserField.IGNORED_VIEW_COUNT,
    UserField.WARNINGS,
    UserField.WARNING_REASON,
    UserField.REPUTATION,
    UserField.VIP,
    UserField.LAST_SEGMENT_ID,
]

ALL_FIELDS: List[UserField] = DEFAULT_FIELDS + [
    UserField.BANNED,
    UserField.PERMISSIONS,
    UserField.FREE_CHAPTERS_ACCESS,
]


@dataclass(frozen=True)
class FieldContext:
    """Everything a fetcher may use for one request."""

    user_id: str
    db: Database
    collaborators: Collaborators


def _fallback(field: UserField, value: Any, error: Exception, log_error: bool = True) -> Any:
    FIELD_FALLBACKS.labels(field=field.value).inc()
    if log_error:
        logger.error(f"Couldn't get {field.value}: {error}. Returning {value!r}")
    return value


# ============================================================================
# Fetchers
# ============================================================================


async def fetch_user_name(ctx: FieldContext) -> Union[str, bool]:
    try:
        row = await ctx.db.fetch_one(
            'SELECT "userName" FROM "userNames" WHERE "userID" = :user_id',
            {"user_id": ctx.user_id},
        )
        return row["userName"] if row and row["userName"] is not None else ctx.user_id
    except StoreError as e:
        return _fallback(UserField.USER_NAME, False, e)


async def fetch_ignored_segment_count(ctx: FieldContext) -> Optional[int]:
    try:
        row = await ctx.db.fetch_one(
            f'SELECT COUNT(*) as "ignoredSegmentCount" FROM "sponsorTimes" '
            f'WHERE "userID" = :user_id AND {IGNORED}',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("ignoredSegmentCount") or 0
    except StoreError as e:
        return _fallback(UserField.IGNORED_SEGMENT_COUNT, None, e)


async def fetch_view_count(ctx: FieldContext) -> Union[int, bool]:
    try:
        row = await ctx.db.fetch_one(
            f'SELECT SUM("views") as "viewCount" FROM "sponsorTimes" '
            f'WHERE "userID" = :user_id AND {QUALIFYING}',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("viewCount") or 0
    except StoreError as e:
        return _fallback(UserField.VIEW_COUNT, False, e)


async def fetch_ignored_view_count(ctx: FieldContext) -> Union[int, bool]:
    try:
        row = await ctx.db.fetch_one(
            f'SELECT SUM("views") as "ignoredViewCount" FROM "sponsorTimes" '
            f'WHERE "userID" = :user_id AND {IGNORED}',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("ignoredViewCount") or 0
    except StoreError as e:
        return _fallback(UserField.IGNORED_VIEW_COUNT, False, e)


async def fetch_warnings(ctx: FieldContext) -> int:
    try:
        row = await ctx.db.fetch_one(
            'SELECT COUNT(*) as total FROM "warnings" WHERE "userID" = :user_id AND "enabled" = 1',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("total") or 0
    except StoreError as e:
        return _fallback(UserField.WARNINGS, 0, e)


async def fetch_warning_reason(ctx: FieldContext) -> str:
    try:
        row = await ctx.db.fetch_one(
            'SELECT "reason" FROM "warnings" WHERE "userID" = :user_id AND "enabled" = 1 '
            'ORDER BY "issueTime" DESC LIMIT 1',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("reason") or ""
    except StoreError as e:
        return _fallback(UserField.WARNING_REASON, "", e)


async def fetch_last_segment_id(ctx: FieldContext) -> Optional[str]:
    try:
        row = await ctx.db.fetch_one(
            'SELECT "UUID" FROM "sponsorTimes" WHERE "userID" = :user_id '
            'ORDER BY "timeSubmitted" DESC LIMIT 1',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return (row or {}).get("UUID")
    except StoreError as e:
        return _fallback(UserField.LAST_SEGMENT_ID, None, e)


async def fetch_banned(ctx: FieldContext) -> bool:
    try:
        row = await ctx.db.fetch_one(
            'SELECT count(*) as "userCount" FROM "shadowBannedUsers" WHERE "userID" = :user_id LIMIT 1',
            {"user_id": ctx.user_id},
            use_replica=True,
        )
        return bool(row and row["userCount"] > 0)
    except StoreError as e:
        return _fallback(UserField.BANNED, False, e)


async def fetch_reputation(ctx: FieldContext) -> float:
    try:
        return await ctx.collaborators.reputation(ctx.db, ctx.user_id)
    except StoreError as e:
        return _fallback(UserField.REPUTATION, 0, e)


async def fetch_vip(ctx: FieldContext) -> bool:
    return await is_user_vip(ctx.db, ctx.user_id)


async def fetch_permissions(ctx: FieldContext) -> Dict[str, bool]:
    async def can_submit(category: str) -> bool:
        try:
            return bool(await ctx.collaborators.can_submit(ctx.db, ctx.collaborators, ctx.user_id, category))
        except StoreError as e:
            return _fallback(UserField.PERMISSIONS, False, e)

    results = await asyncio.gather(*(can_submit(category) for category in CATEGORY_LIST))
    return dict(zip(CATEGORY_LIST, results))


async def _has_submission_before(ctx: FieldContext, cutoff: int, reputable_only: bool) -> bool:
    reputation_filter = '"reputation" > 0 AND ' if reputable_only else ""
    row = await ctx.db.fetch_one(
        f'SELECT "timeSubmitted" FROM "sponsorTimes" WHERE {reputation_filter}'
        f'"timeSubmitted" < :cutoff AND "userID" = :user_id LIMIT 1',
        {"cutoff": cutoff, "user_id": ctx.user_id},
        use_replica=True,
    )
    return row is not None


async def fetch_free_chapters_access(ctx: FieldContext) -> bool:
    """
    True when any eligibility check passes; the first positive answer wins.

    Checks run concurrently: VIP, a reputable submission before the
    reputable cutoff, or any submission before the early cutoff.
    """
    result = await first_truthy(
        lambda: is_user_vip(ctx.db, ctx.user_id),
        lambda: _has_submission_before(ctx, FREE_CHAPTERS_REPUTABLE_CUTOFF, reputable_only=True),
        lambda: _has_submission_before(ctx, FREE_CHAPTERS_EARLY_CUTOFF, reputable_only=False),
    )
    return bool(result)


# ============================================================================
# Field groups
# ============================================================================


@dataclass(frozen=True)
class SegmentSummary:
    minutes_saved: float
    segment_count: int

    def as_fields(self) -> Dict[UserField, Any]:
        return {
            UserField.MINUTES_SAVED: self.minutes_saved,
            UserField.SEGMENT_COUNT: self.segment_count,
        }


async def fetch_segment_summary(ctx: FieldContext) -> Dict[UserField, Any]:
    """
    minutesSaved and segmentCount from one scan so they always agree.

    Chapters save no time; each segment's duration is capped at the max
    reward time before being weighted by its views.
    """
    try:
        row = await ctx.db.fetch_one(
            'SELECT SUM(CASE WHEN "actionType" = \'chapter\' THEN 0 ELSE '
            '((CASE WHEN "endTime" - "startTime" > :max_reward THEN :max_reward '
            'ELSE "endTime" - "startTime" END) / 60) * "views" END) as "minutesSaved", '
            f'count(*) as "segmentCount" FROM "sponsorTimes" WHERE "userID" = :user_id AND {QUALIFYING}',
            {"max_reward": MAX_REWARD_TIME_PER_SEGMENT_IN_SECONDS, "user_id": ctx.user_id},
            use_replica=True,
        )
    except StoreError as e:
        FIELD_FALLBACKS.labels(field=FieldGroup.SEGMENT_SUMMARY.value).inc()
        logger.error(f"Couldn't get segment summary for user {ctx.user_id}: {e}")
        return SegmentSummary(0, 0).as_fields()

    if row is None or row["minutesSaved"] is None:
        return SegmentSummary(0, 0).as_fields()
    return SegmentSummary(row["minutesSaved"], row["segmentCount"]).as_fields()


GROUP_FETCHERS: Dict[FieldGroup, Callable[[FieldContext], Awaitable[Dict[UserField, Any]]]] = {
    FieldGroup.SEGMENT_SUMMARY: fetch_segment_summary,
}


# ============================================================================
# Registry
# ============================================================================


@dataclass(frozen=True)
class Echo:
    """The subject id itself."""


@dataclass(frozen=True)
class Fetch:
    fetcher: Callable[[FieldContext], Awaitable[Any]]


@dataclass(frozen=True)
class Grouped:
    group: FieldGroup


Producer = Union[Echo, Fetch, Grouped]

FIELD_REGISTRY: Dict[UserField, Producer] = {
    UserField.USER_ID: Echo(),
    UserField.USER_NAME: Fetch(fetch_user_name),
    UserField.MINUTES_SAVED: Grouped(FieldGroup.SEGMENT_SUMMARY),
    UserField.SEGMENT_COUNT: Grouped(FieldGroup.SEGMENT_SUMMARY),
    UserField.IGNORED_SEGMENT_COUNT: Fetch(fetch_ignored_segment_count),
    UserField.VIEW_COUNT: Fetch(fetch_view_count),
    UserField.IGNORED_VIEW_COUNT: Fetch(fetch_ignored_view_count),
    UserField.WARNINGS: Fetch(fetch_warnings),
    UserField.WARNING_REASON: Fetch(fetch_warning_reason),
    UserField.REPUTATION: Fetch(fetch_reputation),
    UserField.VIP: Fetch(fetch_vip),
    UserField.LAST_SEGMENT_ID: Fetch(fetch_last_segment_id),
    UserField.BANNED: Fetch(fetch_banned),
    UserField.PERMISSIONS: Fetch(fetch_permissions),
    UserField.FREE_CHAPTERS_ACCESS: Fetch(fetch_free_chapters_access),
}

_unregistered = set(UserField) - set(FIELD_REGISTRY)
if _unregistered:
    raise RuntimeError(f"Fields without a producer: {sorted(f.value for f in _unregistered)}")


class FieldResolver:
    """
    Request-scoped resolver; each field and each group is computed at most once.

    The first request for a field starts its producer as a task, later
    requests await the same task.
    """

    def __init__(self, ctx: FieldContext):
        self.ctx = ctx
        self._tasks: Dict[Union[UserField, FieldGroup], "asyncio.Task[Any]"] = {}

    def _task(self, key: Union[UserField, FieldGroup], factory: Callable[[], Awaitable[Any]]) -> "asyncio.Task[Any]":
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
        return task

    async def resolve(self, field: UserField) -> Any:
        producer = FIELD_REGISTRY[field]
        if isinstance(producer, Echo):
            return self.ctx.user_id
        if isinstance(producer, Fetch):
            return await self._task(field, lambda: producer.fetcher(self.ctx))
        group_values = await self.resolve_group(producer.group)
        return group_values[field]

    async def resolve_group(self, group: FieldGroup) -> Dict[UserField, Any]:
        return await self._task(group, lambda: GROUP_FETCHERS[group](self.ctx))

    async def dispatch(self, name: str) -> Any:
        """Resolve a raw field name; unknown names get DEFAULT_FIELD_VALUE."""
        field = UserField.parse(name)
        if field is None:
            return DEFAULT_FIELD_VALUE
        return await self.resolve(field)

    async def cancel_pending(self):
        """Cancel unfinished producers and wait until they have unwound."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
