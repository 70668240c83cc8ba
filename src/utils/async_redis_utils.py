"""
Async Redis client backing the user id hash cache.

The service is optional: callers treat every Redis failure as a cache miss,
so this class only has to connect, report health and pass get/set through.
"""

import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError

logger = logging.getLogger(__name__)


class AsyncRedisService:
    """
    Pooled async Redis client.

    Algorithm:
    1. connect() builds the client (its pool is owned by the client) and pings it
    2. get/set are plain pass-throughs for the hash cache
    3. close() closes the client together with its pool
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        ssl_enabled: bool = False,
        max_connections: int = 50,
        socket_timeout: float = 5,
    ):
        """
        Args:
            host: Redis host
            port: Redis port
            password: Redis password (optional)
            ssl_enabled: Connect over TLS (managed Redis)
            max_connections: Pool size per worker
            socket_timeout: Per-command timeout in seconds
        """
        self.host = host
        self.port = port
        self.password = password
        self.ssl_enabled = ssl_enabled
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout

        # Set by connect()
        self.client: Optional[Redis] = None

    async def connect(self) -> Redis:
        """
        Create the client and verify it answers.

        Raises:
            ConnectionError: If the initial ping fails
        """
        self.client = Redis(
            host=self.host,
            port=self.port,
            password=self.password,
            ssl=self.ssl_enabled,
            ssl_cert_reqs="none" if self.ssl_enabled else "required",
            max_connections=self.max_connections,
            socket_connect_timeout=self.socket_timeout,
            socket_timeout=self.socket_timeout,
            decode_responses=True,
        )
        try:
            await self.client.ping()
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise ConnectionError(f"Cannot connect to Redis at {self.host}:{self.port}: {e}") from e

        logger.info(f"Connected to Redis at {self.host}:{self.port} (tls={self.ssl_enabled})")
        return self.client

    async def close(self):
        """Close the client and its connection pool."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Closed Redis client")

    async def verify_connection(self) -> bool:
        """True when the client exists and answers PING."""
        if not self.client:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Connection verification failed: {e}")
            return False

    async def get(self, key: str) -> Any:
        return await self.client.get(key)

    async def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        return await self.client.set(key, value, ex=ex)
