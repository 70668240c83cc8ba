"""
Test helper functions for building and seeding a SQLite copy of the store.

Simple, reusable functions - no classes beyond the two Database doubles.
"""

import sqlite3
import sys
import os
from typing import Any, Dict, List

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from errors import StoreError
from utils.database import Database


SCHEMA = [
    """CREATE TABLE "sponsorTimes" (
        "videoID" TEXT NOT NULL,
        "startTime" REAL NOT NULL,
        "endTime" REAL NOT NULL,
        "votes" INTEGER NOT NULL DEFAULT 0,
        "UUID" TEXT NOT NULL UNIQUE,
        "userID" TEXT NOT NULL,
        "timeSubmitted" INTEGER NOT NULL,
        "views" INTEGER NOT NULL DEFAULT 0,
        "category" TEXT NOT NULL DEFAULT 'sponsor',
        "actionType" TEXT NOT NULL DEFAULT 'skip',
        "shadowHidden" INTEGER NOT NULL DEFAULT 0,
        "reputation" REAL NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE "userNames" (
        "userID" TEXT NOT NULL PRIMARY KEY,
        "userName" TEXT NOT NULL,
        "locked" INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE "lockCategories" (
        "videoID" TEXT NOT NULL,
        "userID" TEXT NOT NULL,
        "actionType" TEXT NOT NULL DEFAULT 'skip',
        "category" TEXT NOT NULL,
        "reason" TEXT NOT NULL DEFAULT '',
        UNIQUE ("videoID", "category")
    )""",
    """CREATE TABLE "warnings" (
        "userID" TEXT NOT NULL,
        "issueTime" INTEGER NOT NULL,
        "issuerUserID" TEXT NOT NULL,
        "enabled" INTEGER NOT NULL,
        "reason" TEXT NOT NULL DEFAULT ''
    )""",
    """CREATE TABLE "shadowBannedUsers" ("userID" TEXT NOT NULL PRIMARY KEY)""",
    """CREATE TABLE "vipUsers" ("userID" TEXT NOT NULL PRIMARY KEY)""",
]


def create_store(path: str) -> str:
    """
    Create an empty store at path.

    Returns:
        SQLAlchemy async URL for the file
    """
    with sqlite3.connect(path) as conn:
        for statement in SCHEMA:
            conn.execute(statement)
    return f"sqlite+aiosqlite:///{path}"


def seed(path: str, table: str, rows: List[Dict[str, Any]]):
    """
    Insert rows into table.

    Args:
        path: SQLite file created by create_store
        table: Table name, e.g. 'lockCategories'
        rows: One dict per row, keys are column names
    """
    with sqlite3.connect(path) as conn:
        for row in rows:
            columns = ", ".join(f'"{c}"' for c in row)
            placeholders = ", ".join("?" for _ in row)
            conn.execute(
                f'INSERT INTO "{table}" ({columns}) VALUES ({placeholders})',
                list(row.values()),
            )


_segment_counter = 0


def segment(user_id: str, **overrides) -> Dict[str, Any]:
    """Build a sponsorTimes row with sensible defaults and a unique UUID."""
    global _segment_counter
    _segment_counter += 1
    row = {
        "videoID": "video_1",
        "startTime": 0,
        "endTime": 60,
        "votes": 0,
        "UUID": f"uuid_{_segment_counter:06d}",
        "userID": user_id,
        "timeSubmitted": 1700000000000,
        "views": 0,
        "category": "sponsor",
        "actionType": "skip",
        "shadowHidden": 0,
        "reputation": 0,
    }
    row.update(overrides)
    return row


class CountingDatabase(Database):
    """Database that records the SQL text of every query it runs."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.queries: List[str] = []

    async def _execute(self, statement, params, use_replica):
        self.queries.append(str(statement))
        return await super()._execute(statement, params, use_replica)

    def count(self, fragment: str) -> int:
        return sum(1 for q in self.queries if fragment in q)


class BrokenDatabase(Database):
    """Database whose every query fails like a lost connection."""

    async def _execute(self, statement, params, use_replica):
        raise StoreError("connection refused")
