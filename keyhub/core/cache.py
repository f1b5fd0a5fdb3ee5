"""
Redis cache and dashboard event publishing.
"""
from typing import Optional, Any
import json
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from keyhub.core.config import settings
from keyhub.core.logger import get_logger

logger = get_logger(__name__)


# Events consumed by live dashboards
PROVIDERS_UPDATE = "providers:update"
API_KEYS_UPDATE = "apikeys:update"
UNIFIED_KEYS_UPDATE = "unified-keys:update"
LOGS_INSERT = "logs:insert"


class RedisCache:
    """
    Redis cache manager with connection pooling.
    
    Doubles as the fire-and-forget event sink: every failure is logged and
    swallowed so a Redis outage never reaches an in-flight request.
    """
    
    def __init__(self, enabled: Optional[bool] = None):
        self.redis: Optional[aioredis.Redis] = None
        self.enabled = settings.redis_enabled if enabled is None else enabled
        
    async def connect(self) -> None:
        """Establish Redis connection."""
        if not self.enabled:
            logger.info("Redis cache is disabled")
            return
            
        try:
            self.redis = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10
            )
            await self.redis.ping()
            logger.info("Redis cache connected successfully", url=settings.redis_url)
        except RedisError as e:
            logger.error("Failed to connect to Redis", error=str(e))
            self.enabled = False
            self.redis = None
    
    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis cache disconnected")
    
    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.
        
        Args:
            key: Cache key
            
        Returns:
            Cached value or None if not found
        """
        if not self.enabled or not self.redis:
            return None
            
        try:
            value = await self.redis.get(key)
            if value:
                return json.loads(value)
            return None
        except RedisError as e:
            logger.warning("Redis get failed", key=key, error=str(e))
            return None
    
    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> bool:
        """
        Set value in cache.
        
        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (default from settings)
            
        Returns:
            True if successful, False otherwise
        """
        if not self.enabled or not self.redis:
            return False
            
        try:
            ttl = ttl or settings.redis_cache_ttl
            await self.redis.setex(key, ttl, json.dumps(value))
            return True
        except RedisError as e:
            logger.warning("Redis set failed", key=key, error=str(e))
            return False
    
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        if not self.enabled or not self.redis:
            return False
            
        try:
            await self.redis.delete(key)
            return True
        except RedisError as e:
            logger.warning("Redis delete failed", key=key, error=str(e))
            return False
    
    async def publish(self, event: str, data: dict[str, Any]) -> None:
        """
        Publish a change notification for live dashboards.
        
        Args:
            event: Event channel name (e.g. ``logs:insert``)
            data: JSON-serializable payload
        """
        if not self.enabled or not self.redis:
            return
        
        try:
            await self.redis.publish(event, json.dumps(data, default=str))
        except (RedisError, TypeError) as e:
            logger.warning("Event publish failed", event_name=event, error=str(e))


# Global cache instance
cache = RedisCache()


def rotation_settings_cache_key() -> str:
    """Generate cache key for the rotation settings singleton."""
    return "settings:rotation"
