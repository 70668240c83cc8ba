"""
Async relational store access with primary/replica routing.

This module wraps two SQLAlchemy async engines:
- primary: every write and any read that must see the latest state
- replica: optional, serves read-mostly statistics queries that pass
  use_replica=True; falls back to the primary when not configured

Queries are plain SQL (sqlalchemy.text) with named parameters and rows are
returned as dicts, so callers never hold a connection between awaits.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.elements import TextClause

from errors import StoreError

logger = logging.getLogger(__name__)

Statement = Union[str, TextClause]


class Database:
    """
    Async store client with a primary engine and an optional read replica.

    Algorithm:
    1. Create engines lazily connected by SQLAlchemy's pool
    2. Route each query to replica or primary by its use_replica hint
    3. Run it on a short-lived connection and materialize rows as dicts
    4. Wrap driver failures in StoreError so callers handle one type
    """

    def __init__(
        self,
        primary_url: str,
        replica_url: Optional[str] = None,
        **engine_kwargs,
    ):
        """
        Initialize engines for the primary and (optionally) the replica.

        Args:
            primary_url: SQLAlchemy async URL of the primary store
            replica_url: SQLAlchemy async URL of a read replica (optional)
            **engine_kwargs: Extra create_async_engine options (pool settings)
        """
        self.primary: AsyncEngine = create_async_engine(primary_url, **engine_kwargs)
        self.replica: Optional[AsyncEngine] = (
            create_async_engine(replica_url, **engine_kwargs) if replica_url else None
        )

        logger.info(
            f"Initialized Database: primary={self.primary.url.render_as_string(hide_password=True)}, "
            f"replica={'yes' if self.replica else 'no'}"
        )

    def _engine(self, use_replica: bool) -> AsyncEngine:
        if use_replica and self.replica is not None:
            return self.replica
        return self.primary

    async def _execute(
        self,
        statement: Statement,
        params: Optional[Mapping[str, Any]],
        use_replica: bool,
    ) -> List[Dict[str, Any]]:
        if isinstance(statement, str):
            statement = text(statement)

        try:
            async with self._engine(use_replica).connect() as conn:
                result = await conn.execute(statement, dict(params or {}))
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Query failed: {e}") from e

    async def fetch_one(
        self,
        statement: Statement,
        params: Optional[Mapping[str, Any]] = None,
        use_replica: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Run a query and return its first row, or None when it has no rows.

        Raises:
            StoreError: If the query fails
        """
        rows = await self._execute(statement, params, use_replica)
        return rows[0] if rows else None

    async def fetch_all(
        self,
        statement: Statement,
        params: Optional[Mapping[str, Any]] = None,
        use_replica: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Run a query and return all rows.

        Raises:
            StoreError: If the query fails
        """
        return await self._execute(statement, params, use_replica)

    async def ping(self) -> bool:
        """Check the primary answers a trivial query."""
        try:
            await self.fetch_one("SELECT 1")
            return True
        except StoreError as e:
            logger.error(f"Database ping failed: {e}")
            return False

    async def close(self):
        """Dispose both engines and their pools."""
        await self.primary.dispose()
        if self.replica is not None:
            await self.replica.dispose()
        logger.info("Database engines disposed")
