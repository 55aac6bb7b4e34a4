"""Redis session storage implementation.

This storage backend is suitable for distributed deployments where sessions
need to be shared across multiple processes or servers.

Requires: pip install latch-session[redis]
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from latch.core.exceptions import SessionConflictError, StorageUnavailableError
from latch.core.serialization import SessionRecord, decode_record, encode_record
from latch.session.identifier import short_key
from latch.storage.base import SessionStore

logger = logging.getLogger(__name__)

# Optimistic transaction attempts for a key rotation
WATCH_RETRIES = 3


class RedisSessionStore(SessionStore):
    """Redis-backed session storage.

    Each session is one string key holding the encoded record. Expiring
    sessions carry a matching Redis TTL, so Redis sweeps them itself.
    Key rotation runs as a WATCH/MULTI/EXEC transaction.

    Example:
        store = RedisSessionStore("redis://localhost:6379")
        async with store:
            identifier = await store.save(session)
            session = await store.load_identifier(identifier)
    """

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "latch:session:",
        *,
        client=None,
        **kwargs,
    ) -> None:
        """Initialize Redis session store.

        Args:
            redis_url: Redis connection URL.
            key_prefix: Prefix for Redis keys.
            client: An existing ``redis.asyncio.Redis`` client to use instead
                of connecting to ``redis_url``.
            **kwargs: Common store settings, see SessionStore.
        """
        super().__init__(**kwargs)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client = client

    def _get_key(self, hashed_key: str) -> str:
        """Generate Redis key for a hashed session key."""
        return f"{self.key_prefix}{hashed_key}"

    async def _get_client(self):
        """Get or create Redis client."""
        if self._client is None:
            try:
                import redis.asyncio as aioredis
            except ImportError:
                raise ImportError(
                    "Redis support requires the 'redis' package. "
                    "Install with: pip install latch-session[redis]"
                )

            client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            with self._translate_errors():
                await client.ping()
            self._client = client

        return self._client

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        from redis.exceptions import ConnectionError as RedisConnectionError
        from redis.exceptions import TimeoutError as RedisTimeoutError

        try:
            yield
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            raise StorageUnavailableError(self.backend_name, str(e)) from e

    def _ttl_ms(self, expiry: Optional[datetime]) -> Optional[int]:
        """Milliseconds until ``expiry``, at least 1, or None."""
        if expiry is None:
            return None
        remaining = (expiry - self.clock.now()).total_seconds()
        return max(int(remaining * 1000), 1)

    async def _read(self, hashed_key: str) -> Optional[SessionRecord]:
        client = await self._get_client()
        with self._translate_errors():
            data = await client.get(self._get_key(hashed_key))
        if data is None:
            return None
        return decode_record(data)

    async def _insert(self, hashed_key: str, record: SessionRecord) -> bool:
        client = await self._get_client()
        with self._translate_errors():
            created = await client.set(
                self._get_key(hashed_key),
                encode_record(record),
                px=self._ttl_ms(record.expiry),
                nx=True,
            )
        return bool(created)

    async def _update(self, hashed_key: str, record: SessionRecord) -> None:
        client = await self._get_client()
        with self._translate_errors():
            replaced = await client.set(
                self._get_key(hashed_key),
                encode_record(record),
                px=self._ttl_ms(record.expiry),
                xx=True,
            )
        if not replaced:
            raise SessionConflictError(hashed_key)

    async def _rotate(
        self,
        old_key: str,
        new_key: str,
        record: SessionRecord,
    ) -> bool:
        from redis.exceptions import WatchError

        client = await self._get_client()
        old_redis_key = self._get_key(old_key)
        new_redis_key = self._get_key(new_key)
        data = encode_record(record)

        with self._translate_errors():
            async with client.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRIES):
                    try:
                        await pipe.watch(old_redis_key, new_redis_key)
                        if not await pipe.exists(old_redis_key):
                            raise SessionConflictError(old_key)
                        if await pipe.exists(new_redis_key):
                            return False
                        pipe.multi()
                        pipe.delete(old_redis_key)
                        pipe.set(new_redis_key, data, px=self._ttl_ms(record.expiry))
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug(
                            "Session %s changed during rotation, retrying",
                            short_key(old_key),
                        )

        raise SessionConflictError(old_key)

    async def destroy(self, hashed_key: str) -> None:
        """Delete a session from Redis.

        Args:
            hashed_key: The hashed key to delete.
        """
        client = await self._get_client()
        with self._translate_errors():
            await client.delete(self._get_key(hashed_key))
        logger.debug("Deleted session from Redis: %s", short_key(hashed_key))

    async def clear(self) -> None:
        """Delete every key under this store's prefix."""
        client = await self._get_client()
        with self._translate_errors():
            keys = [key async for key in client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await client.delete(*keys)
        logger.debug("Cleared %d sessions from Redis", len(keys))

    async def cleanup_expired(self) -> int:
        """Redis expires session keys on its own; nothing to sweep.

        Returns:
            Always 0.
        """
        return 0

    async def get_ttl(self, hashed_key: str) -> Optional[int]:
        """Get remaining TTL for a session.

        Args:
            hashed_key: The hashed session key.

        Returns:
            Remaining TTL in seconds, or None if no TTL set.
        """
        client = await self._get_client()
        with self._translate_errors():
            ttl = await client.ttl(self._get_key(hashed_key))
        return ttl if ttl > 0 else None

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed Redis connection")

    async def count(self) -> int:
        """Get approximate number of sessions.

        Note: Uses SCAN which may not be exact count.

        Returns:
            Approximate number of sessions.
        """
        client = await self._get_client()
        pattern = f"{self.key_prefix}*"
        count = 0
        with self._translate_errors():
            async for _ in client.scan_iter(match=pattern):
                count += 1
        return count
