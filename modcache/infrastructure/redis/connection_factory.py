"""
Redis Connection Factory

Builds the shared connection pool from settings and hands out clients.
Timeouts and retries are left to redis-py defaults unless configured.
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    AuthenticationError as RedisAuthError,
    RedisError,
)

from opentelemetry import trace
from opentelemetry.instrumentation.redis import RedisInstrumentor

from ...core.config import Settings, settings as default_settings
from .exceptions import (
    RedisConnectionException,
    RedisConfigurationException,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RedisConnectionFactory:
    """
    Factory for the Redis connection pool shared by every module cache.

    Must be initialized before clients are requested and closed on shutdown.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or default_settings
        self._pool: Optional[ConnectionPool] = None
        self._initialized = False
        self._lock = asyncio.Lock()

        # Initialize OpenTelemetry instrumentation
        try:
            instrumentor = RedisInstrumentor()
            if not instrumentor.is_instrumented_by_opentelemetry:
                instrumentor.instrument()
                logger.info("Redis OpenTelemetry instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to enable Redis OpenTelemetry instrumentation: {e}")

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _connection_kwargs(self) -> Dict[str, Any]:
        """Pool options derived from settings."""
        connection_kwargs = {
            "encoding": "utf-8",
            "decode_responses": True,
            "health_check_interval": self._settings.REDIS_HEALTH_CHECK_INTERVAL,
            "max_connections": self._settings.REDIS_MAX_CONNECTIONS,
        }
        if self._settings.REDIS_CONNECTION_TIMEOUT is not None:
            connection_kwargs["socket_connect_timeout"] = (
                self._settings.REDIS_CONNECTION_TIMEOUT
            )
        if self._settings.REDIS_OPERATION_TIMEOUT is not None:
            connection_kwargs["socket_timeout"] = self._settings.REDIS_OPERATION_TIMEOUT
        return connection_kwargs

    async def initialize(self) -> None:
        """Create the connection pool and verify the server answers."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            redis_url = self._settings.REDIS_URL
            parsed_url = urlparse(redis_url)
            connection_kwargs = self._connection_kwargs()

            try:
                pool = ConnectionPool.from_url(redis_url, **connection_kwargs)
            except ValueError as e:
                raise RedisConfigurationException(
                    message=f"Invalid Redis URL: {e}",
                    config_key="REDIS_URL",
                    original_error=e,
                )

            await self._test_connection(pool, parsed_url.hostname, parsed_url.port)

            self._pool = pool
            self._initialized = True
            logger.info(
                "Redis connection factory initialized",
                extra={
                    "host": parsed_url.hostname or "localhost",
                    "port": parsed_url.port or 6379,
                    "max_connections": connection_kwargs["max_connections"],
                },
            )

    async def _test_connection(
        self, pool: ConnectionPool, host: Optional[str], port: Optional[int]
    ) -> None:
        """Ping through the new pool, disconnecting it on failure."""
        with tracer.start_as_current_span("redis.connection_test"):
            try:
                await Redis(connection_pool=pool).ping()
                logger.debug("Redis connection test successful")
            except (RedisError, OSError) as e:
                await pool.disconnect()
                logger.error(f"Redis connection test failed: {e}")
                message = (
                    "Redis authentication failed during initialization"
                    if isinstance(e, RedisAuthError)
                    else "Redis connection test failed"
                )
                raise RedisConnectionException(
                    message=message, host=host, port=port, original_error=e
                )

    def get_client(self) -> Redis:
        """
        Get a Redis client bound to the shared pool.

        Raises:
            RedisConnectionException: If the factory is not initialized
        """
        if not self._initialized or self._pool is None:
            raise RedisConnectionException(
                message="Redis connection factory not initialized"
            )
        return Redis(connection_pool=self._pool)

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._pool is not None:
                try:
                    await self._pool.disconnect()
                except (RedisError, OSError) as e:
                    logger.warning(f"Error closing Redis pool: {e}")
                self._pool = None

            self._initialized = False
            logger.info("Redis connection factory closed")

    def get_metrics(self) -> Dict[str, Any]:
        """Get connection factory metrics."""
        metrics: Dict[str, Any] = {"initialized": self._initialized}
        if self._pool is not None:
            metrics["pool"] = {
                "max_connections": self._pool.max_connections,
                "created_connections": getattr(self._pool, "_created_connections", 0),
                "in_use_connections": len(getattr(self._pool, "_in_use_connections", ())),
            }
        return metrics
