"""
Redis client for the ephemeral SSO state store.

Wraps a lazily created ``redis.asyncio`` connection with explicit connect and
socket timeouts. Connection failures are logged and reported as ``None`` so
callers decide how to fail; the state store fails closed.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Async Redis client with connection management.

    One instance is shared by every store helper in the process.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
    ) -> None:
        """
        Initialize RedisClient.

        Args:
            redis_url: Redis connection URL
            socket_timeout: Timeout in seconds for each command
            connect_timeout: Timeout in seconds for establishing a connection
        """
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.connect_timeout = connect_timeout
        self._client: Optional[redis.Redis] = None
        self._connection_error: Optional[str] = None

    async def get_client(self) -> Optional[redis.Redis]:
        """
        Get or create a Redis client instance.

        Returns:
            Redis client if available, None if connection failed.
        """
        if self._client is None:
            try:
                client = redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=self.connect_timeout,
                    socket_timeout=self.socket_timeout,
                )
            except ValueError as e:
                # Malformed URL; there is no connection to close
                self._connection_error = f"Invalid Redis URL: {e}"
                logger.error(self._connection_error)
                return None

            try:
                await client.ping()
            except RedisError as e:
                self._connection_error = f"Redis connection failed: {e}"
                logger.warning(self._connection_error)
                await client.aclose()
                return None

            self._client = client
            self._connection_error = None
            logger.info("Redis connection established successfully")

        return self._client

    async def close(self) -> None:
        """Close the Redis connection and cleanup resources."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._client = None

    async def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            Dictionary with health status information.
        """
        client = await self.get_client()
        if client is None:
            return {
                "status": "unavailable",
                "connected": False,
                "error": self._connection_error or "Redis not configured",
            }

        try:
            await client.ping()
        except RedisError as e:
            self._connection_error = str(e)
            return {
                "status": "unhealthy",
                "connected": False,
                "error": f"Connection error: {e}",
            }

        return {"status": "healthy", "connected": True}
