import json
import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class Cache:
    """
    Small JSON cache over Redis for hot lookups (e.g. the customer's open
    session behind the unread badge). Every key gets a TTL so a missed
    eviction heals itself.
    """

    def __init__(self, redis_url: str = None, client: Redis = None, default_ttl: int = 30) -> None:
        self._client = client or Redis.from_url(redis_url, decode_responses=True)
        self._default_ttl = default_ttl

    async def ping(self) -> bool:
        try:
            await self._client.ping()
            return True
        except Exception as err:
            logger.error("Redis ping failed: %s", err)
            return False

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._client.get(key)
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        if not isinstance(value, dict):
            raise TypeError("Cache.set espera um dict")
        await self._client.set(key, json.dumps(value, default=str), ex=ttl or self._default_ttl)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()
