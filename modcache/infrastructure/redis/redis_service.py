"""
Redis Service - Connection Lifecycle

Owns the single Redis connection pool of the process. Construct one at
startup, initialize it, inject it into every cache, close it on shutdown.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...core.config import Settings, settings as default_settings
from .connection_factory import RedisConnectionFactory
from .exceptions import RedisConnectionException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RedisService:
    """
    Process-wide Redis connection with explicit initialization and teardown.

    Usage:
        async with RedisService() as redis_service:
            cache = ModuleCache("model.test", 10, repository=...)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connection_factory: Optional[RedisConnectionFactory] = None,
    ):
        self.settings = settings or default_settings
        self._factory = connection_factory or RedisConnectionFactory(self.settings)
        self._client: Optional[Redis] = None
        self._last_health_check: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Initialize the connection pool. Safe to call more than once."""
        if self._client is not None:
            return

        async with self._lock:
            if self._client is not None:
                return

            try:
                await self._factory.initialize()
                self._client = self._factory.get_client()
                logger.info("Redis service initialized successfully")

            except Exception as e:
                logger.error(f"Failed to initialize Redis service: {e}")
                raise

    @property
    def client(self) -> Redis:
        """
        Shared Redis client.

        Raises:
            RedisConnectionException: If the service is not initialized
        """
        if self._client is None:
            raise RedisConnectionException(
                message="Redis service not initialized - call initialize() first"
            )
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """
        Ping Redis and report server statistics.

        Returns:
            Health status dict; never raises
        """
        with tracer.start_as_current_span("redis.health_check") as span:
            if self._client is None:
                return {
                    "status": "unhealthy",
                    "timestamp": time.time(),
                    "service": "redis",
                    "error": "Redis service not initialized",
                }

            try:
                start_time = time.time()
                await self._client.ping()
                ping_time = (time.time() - start_time) * 1000

                redis_info = await self._client.info()

                health_status = {
                    "status": "healthy",
                    "timestamp": time.time(),
                    "service": "redis",
                    "response_time_ms": round(ping_time, 2),
                    "redis_info": {
                        "version": redis_info.get("redis_version"),
                        "uptime_seconds": redis_info.get("uptime_in_seconds"),
                        "connected_clients": redis_info.get("connected_clients"),
                        "used_memory": redis_info.get("used_memory"),
                    },
                }

                if self._last_health_check and self._last_health_check.get(
                    "status"
                ) != health_status["status"]:
                    logger.info(
                        f"Redis health status changed: "
                        f"{self._last_health_check.get('status')} -> healthy"
                    )

                self._last_health_check = health_status
                span.set_status(Status(StatusCode.OK))
                return health_status

            except (RedisError, OSError) as e:
                logger.error(f"Redis health check failed: {e}")
                span.set_status(Status(StatusCode.ERROR, str(e)))

                health_status = {
                    "status": "unhealthy",
                    "timestamp": time.time(),
                    "service": "redis",
                    "error": str(e),
                }
                self._last_health_check = health_status
                return health_status

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            self._client = None
            await self._factory.close()
            logger.info("Redis service closed")

    def get_metrics(self) -> Dict[str, Any]:
        """Get Redis service metrics."""
        return {
            "initialized": self.initialized,
            "config": {
                "max_connections": self.settings.REDIS_MAX_CONNECTIONS,
                "connection_timeout": self.settings.REDIS_CONNECTION_TIMEOUT,
                "operation_timeout": self.settings.REDIS_OPERATION_TIMEOUT,
            },
            "last_health_check": self._last_health_check,
            "connection_factory": self._factory.get_metrics(),
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
