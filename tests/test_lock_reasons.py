"""
Lock reason aggregation tests.

Runs against a seeded SQLite store; CountingDatabase records every query so
the batched identity lookup can be checked.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from config import CATEGORY_LIST
from errors import InvalidRequestError, StoreError
from helpers import seed
from lock_reasons import get_lock_reasons, select_categories

USER_NAMES_FRAGMENT = 'FROM "userNames"'


def _unlocked(category):
    return {"category": category, "locked": 0, "reason": "", "userID": "", "userName": ""}


def _dump(results):
    return [r.model_dump() for r in results]


class TestSelectCategories:
    """Tests for category normalization."""

    def test_keeps_valid_in_requested_order(self):
        assert select_categories(["intro", "bogus", "sponsor"]) == ["intro", "sponsor"]

    def test_deduplicates(self):
        assert select_categories(["intro", "intro", "sponsor", "intro"]) == ["intro", "sponsor"]

    def test_empty_or_missing_means_all(self):
        assert select_categories(None) == CATEGORY_LIST
        assert select_categories([]) == CATEGORY_LIST

    def test_nothing_valid_means_all(self):
        assert select_categories(["bogus", 7, None]) == CATEGORY_LIST


class TestGetLockReasons:
    """Tests for get_lock_reasons."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_locked_and_unlocked_categories(self, store, db):
        """
        One lock on sponsor by u1 ("Alice"), intro unlocked.

        Algorithm:
            1. Seed the lock and the identity row
            2. Request ["sponsor", "intro"]
            3. Verify the exact ordered result
        """
        path, _ = store
        seed(path, "lockCategories", [{"videoID": "abc", "userID": "u1", "category": "sponsor", "reason": "ad"}])
        seed(path, "userNames", [{"userID": "u1", "userName": "Alice"}])

        results = await get_lock_reasons(db, "abc", ["sponsor", "intro"])

        assert _dump(results) == [
            {"category": "sponsor", "locked": 1, "reason": "ad", "userID": "u1", "userName": "Alice"},
            _unlocked("intro"),
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_no_locks_gives_placeholders_in_requested_order(self, db):
        """Zero lock rows and K categories -> K unlocked results, same order, no identity query."""
        requested = ["outro", "sponsor", "filler"]

        results = await get_lock_reasons(db, "no_locks", requested)

        assert _dump(results) == [_unlocked(c) for c in requested]
        assert db.count(USER_NAMES_FRAGMENT) == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_omitted_categories_report_every_configured_category(self, store, db):
        path, _ = store
        seed(path, "lockCategories", [{"videoID": "abc", "userID": "u1", "category": "chapter", "reason": "r"}])

        results = await get_lock_reasons(db, "abc")

        assert [r.category for r in results] == CATEGORY_LIST
        assert [r.locked for r in results] == [1 if c == "chapter" else 0 for c in CATEGORY_LIST]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_output_follows_request_not_row_order(self, store, db):
        path, _ = store
        seed(path, "lockCategories", [
            {"videoID": "abc", "userID": "u1", "category": "sponsor", "reason": "first"},
            {"videoID": "abc", "userID": "u2", "category": "outro", "reason": "second"},
        ])

        results = await get_lock_reasons(db, "abc", ["outro", "intro", "sponsor"])

        assert [(r.category, r.locked, r.reason) for r in results] == [
            ("outro", 1, "second"),
            ("intro", 0, ""),
            ("sponsor", 1, "first"),
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_same_user_identity_fetched_once(self, store, db):
        """
        Two categories locked by the same user -> one identity query.

        Algorithm:
            1. Seed three locks, two by u1 and one by u2
            2. Request all categories
            3. Verify exactly one userNames query ran and names are joined
        """
        path, _ = store
        seed(path, "lockCategories", [
            {"videoID": "abc", "userID": "u1", "category": "sponsor", "reason": "a"},
            {"videoID": "abc", "userID": "u1", "category": "intro", "reason": "b"},
            {"videoID": "abc", "userID": "u2", "category": "outro", "reason": "c"},
        ])
        seed(path, "userNames", [
            {"userID": "u1", "userName": "Alice"},
            {"userID": "u2", "userName": "Bob"},
        ])

        results = await get_lock_reasons(db, "abc", ["sponsor", "intro", "outro"])

        assert db.count(USER_NAMES_FRAGMENT) == 1
        assert [r.userName for r in results] == ["Alice", "Alice", "Bob"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_identity_has_empty_name(self, store, db):
        path, _ = store
        seed(path, "lockCategories", [{"videoID": "abc", "userID": "ghost", "category": "sponsor", "reason": "x"}])

        results = await get_lock_reasons(db, "abc", ["sponsor"])

        assert _dump(results) == [
            {"category": "sponsor", "locked": 1, "reason": "x", "userID": "ghost", "userName": ""}
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_other_videos_are_ignored(self, store, db):
        path, _ = store
        seed(path, "lockCategories", [{"videoID": "other", "userID": "u1", "category": "sponsor", "reason": "x"}])

        results = await get_lock_reasons(db, "abc", ["sponsor"])

        assert _dump(results) == [_unlocked("sponsor")]

    @pytest.mark.asyncio
    async def test_missing_video_id_is_client_error(self, db):
        with pytest.raises(InvalidRequestError):
            await get_lock_reasons(db, None, ["sponsor"])
        with pytest.raises(InvalidRequestError):
            await get_lock_reasons(db, "", ["sponsor"])
        assert db.queries == []

    @pytest.mark.asyncio
    async def test_store_fault_propagates(self, broken_db):
        with pytest.raises(StoreError):
            await get_lock_reasons(broken_db, "abc", ["sponsor"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
