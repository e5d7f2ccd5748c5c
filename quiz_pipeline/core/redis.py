import redis
from redis.connection import ConnectionPool
from typing import Optional
import logging
from quiz_pipeline.core.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client for key rotation counters and small caches"""

    _client: Optional[redis.Redis] = None
    _pool: Optional[ConnectionPool] = None

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """Get or create Redis client instance with connection pooling"""
        if not settings.REDIS_HOST:
            return None

        if cls._client is None:
            try:
                cls._pool = ConnectionPool(
                    host=settings.REDIS_HOST,
                    port=settings.REDIS_PORT,
                    password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                    db=settings.REDIS_DB,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                    retry_on_timeout=True,
                    max_connections=20,
                    health_check_interval=15,
                )

                cls._client = redis.Redis(connection_pool=cls._pool)

                # Test connection
                cls._client.ping()
                print("✅ Redis connected successfully")
            except Exception as e:
                print(f"❌ Redis connection failed: {e}")
                cls._client = None
                cls._pool = None
                raise

        return cls._client

    @classmethod
    def close(cls):
        """Close Redis connection"""
        if cls._client:
            cls._client.close()
            cls._client = None
        if cls._pool:
            cls._pool.disconnect()
            cls._pool = None
        print("🔌 Redis connection closed")


def get_redis() -> Optional[redis.Redis]:
    """Redis client, or None when Redis is unconfigured or down"""
    try:
        return RedisClient.get_client()
    except Exception:
        return None


class CacheKeys:
    """Redis cache key patterns"""

    @staticmethod
    def ai_key_usage(key_index: int) -> str:
        """Per-minute request counter for one AI provider key"""
        return f"ai:rate_limit:key_{key_index}"

    @staticmethod
    def ai_round_robin() -> str:
        return "ai:round_robin_counter"

    @staticmethod
    def uploads_playlist(account_id: str) -> str:
        """Uploads playlist id of an account's channel"""
        return f"youtube:uploads_playlist:{account_id}"


class RedisOps:
    """Common Redis operations"""

    @staticmethod
    def set_with_expiry(key: str, value: str, expire_seconds: int) -> bool:
        client = get_redis()
        if not client:
            return False
        try:
            return bool(client.setex(key, expire_seconds, value))
        except redis.RedisError as e:
            logger.warning("Redis set failed for %s: %s", key, e)
            return False

    @staticmethod
    def get(key: str) -> Optional[str]:
        client = get_redis()
        if not client:
            return None
        try:
            return client.get(key)
        except redis.RedisError as e:
            logger.warning("Redis get failed for %s: %s", key, e)
            return None


class Cache:
    """Caching helpers"""

    @staticmethod
    def get_uploads_playlist(account_id: str) -> Optional[str]:
        return RedisOps.get(CacheKeys.uploads_playlist(account_id))

    @staticmethod
    def set_uploads_playlist(account_id: str, playlist_id: str, ttl: int = 86400) -> bool:
        """Cache the uploads playlist id (default 1 day, it never changes for a channel)"""
        return RedisOps.set_with_expiry(
            CacheKeys.uploads_playlist(account_id),
            playlist_id,
            ttl
        )


class AIKeyManager:
    """
    Spreads AI provider calls across several API keys.

    Round-robin over the configured keys with a per-key requests-per-minute
    budget. Without Redis every call gets the first key.
    """

    WINDOW_SECONDS = 60

    @classmethod
    def get_available_key(cls) -> Optional[tuple[str, int]]:
        """
        Get an available API key using round-robin with failover.

        Returns:
            (api_key, key_index) if available, None if all keys exhausted
        """
        keys = settings.ai_api_keys_list
        if not keys:
            return None

        num_keys = len(keys)
        client = get_redis()

        if not client:
            return keys[0], 0

        limit = settings.AI_RPM_LIMIT_PER_KEY
        try:
            counter = client.incr(CacheKeys.ai_round_robin())
            client.expire(CacheKeys.ai_round_robin(), 3600)

            for i in range(num_keys):
                key_index = (counter + i - 1) % num_keys
                rate_key = CacheKeys.ai_key_usage(key_index)

                current = client.get(rate_key)
                current_count = int(current) if current else 0

                if current_count < limit:
                    pipe = client.pipeline()
                    pipe.incr(rate_key)
                    pipe.expire(rate_key, cls.WINDOW_SECONDS)
                    pipe.execute()

                    logger.info("Using AI key #%s (%s/%s)", key_index + 1, current_count + 1, limit)
                    return keys[key_index], key_index

            logger.warning("All AI API keys at rate limit")
            return None

        except redis.RedisError as e:
            logger.warning("AIKeyManager error: %s", e)
            return keys[0], 0
