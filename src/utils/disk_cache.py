"""
Fail-open client for the remote disk cache service.

Protocol:
    POST {base}/api/v1/item   body {"key": ..., "value": ...}  -> 200 stored
    GET  {base}/api/v1/item?key=...                            -> 200 body is the value
                                                               -> 404 not present

Every failure degrades to "miss" / "not stored". A 404 is an ordinary miss and
is not logged; anything else (other status, transport error, timeout) is
logged. Callers must always have a correct path for a miss.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from config import DISK_CACHE_GET_TIMEOUT, DISK_CACHE_SET_TIMEOUT
from utils.metrics_utils import DISK_CACHE_REQUESTS

logger = logging.getLogger(__name__)

ITEM_PATH = "/api/v1/item"


class DiskCache:
    """
    Advisory key/value cache over HTTP.

    Algorithm:
    1. Without a base URL both operations return immediately (no network)
    2. set POSTs the pair and reports True only on HTTP 200
    3. get is bounded by get_timeout as a whole, returns the JSON body on 200
    4. Errors are classified (404 silent, others logged) and swallowed
    """

    def __init__(
        self,
        base_url: Optional[str],
        get_timeout: float = DISK_CACHE_GET_TIMEOUT,
        set_timeout: float = DISK_CACHE_SET_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Service root, e.g. http://disk-cache:8080; falsy disables the client
            get_timeout: Upper bound in seconds for a whole get call
            set_timeout: HTTP timeout in seconds for set calls
            client: Shared httpx client (tests inject a MockTransport-backed one)
        """
        self.base_url = (base_url or "").rstrip("/")
        self.get_timeout = get_timeout
        self.set_timeout = set_timeout
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    @staticmethod
    def _is_not_found(error: Exception) -> bool:
        return (
            isinstance(error, httpx.HTTPStatusError)
            and error.response.status_code == 404
        )

    async def set(self, key: str, value: Any) -> bool:
        """
        Store value under key.

        Returns:
            True if the service confirmed the write, False otherwise
        """
        if not self.enabled:
            return False

        try:
            response = await self._get_client().post(
                f"{self.base_url}{ITEM_PATH}",
                json={"key": key, "value": value},
                timeout=self.set_timeout,
            )
            response.raise_for_status()
            stored = response.status_code == 200
            DISK_CACHE_REQUESTS.labels(operation="set", outcome="stored" if stored else "not_stored").inc()
            return stored
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            if not self._is_not_found(e):
                logger.error(f"DiskCache: Error setting key {key}: {e!r}")
            DISK_CACHE_REQUESTS.labels(operation="set", outcome="error").inc()
            return False

    async def get(self, key: str) -> Any:
        """
        Fetch the value stored under key.

        Returns:
            Decoded JSON value, or None on miss, timeout or any failure
        """
        if not self.enabled:
            return None

        try:
            response = await asyncio.wait_for(
                self._get_client().get(
                    f"{self.base_url}{ITEM_PATH}",
                    params={"key": key},
                    timeout=self.get_timeout,
                ),
                timeout=self.get_timeout,
            )
            response.raise_for_status()
            if response.status_code != 200:
                DISK_CACHE_REQUESTS.labels(operation="get", outcome="miss").inc()
                return None
            DISK_CACHE_REQUESTS.labels(operation="get", outcome="hit").inc()
            return response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            if self._is_not_found(e):
                DISK_CACHE_REQUESTS.labels(operation="get", outcome="miss").inc()
            else:
                logger.error(f"DiskCache: Error getting key {key}: {e!r}")
                DISK_CACHE_REQUESTS.labels(operation="get", outcome="error").inc()
            return None

    async def aclose(self):
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
