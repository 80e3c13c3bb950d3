"""Permission cache invalidation, optionally broadcast over Redis pub/sub.

Each process owns its own ``PermissionCache``. Role and user mutations go
through ``PermissionInvalidator`` which clears the local entries first and,
when broadcasting is enabled, publishes the invalidation so every other
instance subscribed to the channel clears its copy too. Without Redis,
remote instances only converge after the cache TTL.
"""

import asyncio
import json
import logging
import uuid
from typing import Optional, Union

import redis
import redis.asyncio as aioredis

from tukin.services.permission_cache import PermissionCache

logger = logging.getLogger("tukin.rbac")

ALL_USERS = "*"
RECONNECT_DELAY_SECONDS = 5


class PermissionInvalidator:
    """Applies cache invalidations locally and fans them out to peers."""

    def __init__(
        self,
        cache: PermissionCache,
        redis_url: Optional[str] = None,
        channel: str = "tukin:permissions:invalidate",
        client: Optional[aioredis.Redis] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ):
        self.cache = cache
        self.channel = channel
        self.instance_id = uuid.uuid4().hex
        self._redis_url = redis_url
        self._client = client
        self.reconnect_delay = reconnect_delay
        self._listener: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self._redis_url)

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def invalidate(self, user_id: str) -> None:
        """Invalidate one user here and on every subscribed instance."""
        self.cache.invalidate(user_id)
        await self._publish(str(user_id))

    async def invalidate_all(self) -> None:
        """Invalidate every user here and on every subscribed instance."""
        self.cache.invalidate_all()
        await self._publish(ALL_USERS)

    async def _publish(self, target: str) -> None:
        if not self.enabled:
            return
        message = json.dumps({"origin": self.instance_id, "target": target})
        try:
            await self.client.publish(self.channel, message)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("Permission invalidation broadcast failed: %s", e)

    def apply(self, raw: Union[str, bytes]) -> None:
        """Apply an invalidation received from another instance."""
        try:
            message = json.loads(raw)
            origin, target = message["origin"], message["target"]
        except (ValueError, TypeError, KeyError):
            logger.warning("Ignoring malformed invalidation message: %r", raw)
            return

        if origin == self.instance_id:
            return
        if target == ALL_USERS:
            self.cache.invalidate_all()
        else:
            self.cache.invalidate(str(target))

    async def listen(self) -> None:
        """Consume the channel until cancelled or the connection drops."""
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    self.apply(message["data"])
        finally:
            await pubsub.aclose()

    async def _listen_forever(self) -> None:
        while True:
            try:
                await self.listen()
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning(
                    "Invalidation listener lost Redis (%s); retrying in %ss",
                    e, self.reconnect_delay,
                )
            except Exception:
                logger.exception(
                    "Invalidation listener failed; retrying in %ss", self.reconnect_delay,
                )
            await asyncio.sleep(self.reconnect_delay)

    def start(self) -> None:
        if self.enabled and self._listener is None:
            self._listener = asyncio.create_task(self._listen_forever())
            logger.info("Permission invalidation listener started on %s", self.channel)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Invalidation listener ended with an error")
            self._listener = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> Optional[bool]:
        """Ping Redis; None when broadcasting is disabled."""
        if not self.enabled:
            return None
        try:
            return bool(await self.client.ping())
        except (redis.ConnectionError, redis.TimeoutError):
            return False
