import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import WebSocket

from core.websocket import ConnectionManager

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = "session:*"


class RedisRelay:
    """
    Fan-out across worker processes.

    ``publish`` pushes the event to Redis; every process runs ``run`` in the
    background and forwards what it hears to its own local sockets. Events
    travel wrapped as ``{"origin", "exclude", "payload"}`` so the process that
    owns an excluded socket can skip it.
    """

    def __init__(self,
                 redis_url: str,
                 manager: ConnectionManager,
                 client=None,
                 retry_delay: float = 1.0,
                 max_retry_delay: float = 30.0):
        self._client = client or redis.from_url(redis_url, decode_responses=True)
        self._manager = manager
        self._origin = uuid.uuid4().hex
        self._retry_delay = retry_delay
        self._max_retry_delay = max_retry_delay

    async def publish(self,
                      channel: str,
                      payload: Dict[str, Any],
                      exclude: Optional[WebSocket] = None) -> None:
        envelope = {
            "origin": self._origin,
            "exclude": id(exclude) if exclude is not None else None,
            "payload": payload,
        }
        await self._client.publish(channel, json.dumps(envelope, default=str))

    async def _listen(self) -> AsyncIterator[Tuple[str, str]]:
        pubsub = self._client.pubsub()
        try:
            await pubsub.psubscribe(CHANNEL_PATTERN)
            logger.info("Realtime relay listening on %s", CHANNEL_PATTERN)
            async for item in pubsub.listen():
                if item.get("type") == "pmessage":
                    yield item["channel"], item["data"]
        finally:
            try:
                await pubsub.punsubscribe(CHANNEL_PATTERN)
                await pubsub.aclose()
            except Exception as e:
                logger.debug("Relay pubsub cleanup failed: %s", e)

    async def run(self) -> None:
        """Listen until cancelled, resubscribing with backoff when Redis drops."""
        delay = self._retry_delay
        while True:
            try:
                async with aclosing(self._listen()) as messages:
                    async for channel, data in messages:
                        delay = self._retry_delay
                        await self.forward(channel, data)
                logger.warning("Realtime relay subscription ended; resubscribing in %.1fs", delay)
            except Exception as e:
                logger.error("Realtime relay lost its subscription: %s; retrying in %.1fs", e, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_retry_delay)

    async def forward(self, channel: str, raw: str) -> None:
        try:
            envelope = json.loads(raw)
            payload = envelope["payload"]
            if not isinstance(payload, dict):
                raise ValueError("payload is not an object")
        except (TypeError, ValueError, KeyError):
            logger.warning("Ignoring malformed relay payload on %s", channel)
            return

        exclude = None
        if envelope.get("origin") == self._origin and envelope.get("exclude") is not None:
            exclude = self._manager.find(channel, envelope["exclude"])
        await self._manager.broadcast(channel, payload, exclude=exclude)

    async def close(self) -> None:
        await self._client.aclose()
