import redis
import os

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

_client = None


def get_redis() -> redis.Redis:
    """Shared client, created on first use so importing never opens a connection."""
    global _client
    if _client is None:
        _client = redis.Redis.from_url(REDIS_URL, decode_responses=True, socket_timeout=5)
    return _client
