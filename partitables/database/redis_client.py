"""
Redis Connection Management
==========================

Connection pooling and lifecycle for the Redis partition store.

Features:
- Pool built from the configured Redis URL
- Connection test on connect
- Process-wide shared client with explicit close
"""

import asyncio
from typing import Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from partitables.config.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class RedisConnectionManager:
    """
    Redis connection manager owning one pool and one client
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize connection manager

        Args:
            settings: Library settings (uses the cached settings if None)
        """
        self.settings = settings or get_settings()
        self.client: Optional[Redis] = None
        self.pool: Optional[ConnectionPool] = None
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> Redis:
        """
        Establish connection to Redis

        Returns:
            Redis client instance

        Raises:
            ConnectionError: If connection cannot be established
        """
        async with self._connection_lock:
            if self.client is None:
                try:
                    logger.info(
                        "Connecting to Redis",
                        max_connections=self.settings.REDIS_MAX_CONNECTIONS
                    )
                    self.pool = ConnectionPool.from_url(
                        self.settings.REDIS_URL,
                        max_connections=self.settings.REDIS_MAX_CONNECTIONS,
                        socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                        socket_connect_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                        decode_responses=True,
                    )
                    self.client = Redis(connection_pool=self.pool)
                    await self.client.ping()
                    logger.info("Successfully connected to Redis")

                except Exception as e:
                    logger.error("Failed to connect to Redis", error=str(e))
                    await self._release()
                    raise RedisConnectionError(f"Failed to connect to Redis: {e}") from e

            return self.client

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        async with self._connection_lock:
            await self._release()
            logger.info("Disconnected from Redis")

    async def get_client(self) -> Redis:
        """Get Redis client instance, connecting if necessary"""
        if self.client is None:
            await self.connect()
        return self.client

    async def _release(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
        if self.pool is not None:
            await self.pool.disconnect()
            self.pool = None


# Global connection manager instance
_connection_manager: Optional[RedisConnectionManager] = None


async def get_redis(settings: Optional[Settings] = None) -> Redis:
    """
    Get the shared Redis client, connecting on first use

    Args:
        settings: Settings used when the connection is first created

    Returns:
        Redis client instance
    """
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = RedisConnectionManager(settings)

    return await _connection_manager.get_client()


async def close_redis() -> None:
    """Close the shared Redis connection"""
    global _connection_manager

    if _connection_manager:
        await _connection_manager.disconnect()
        _connection_manager = None
