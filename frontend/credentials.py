import logging
from typing import Dict, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from config.settings import settings

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    async def get(self) -> Optional[str]: ...

    async def set(self, value: str) -> None: ...


class RedisCredentialStore:
    """
    BFL API key persisted under a fixed Redis key.
    An unreachable Redis only loses persistence: get() returns None and
    set() is skipped, the controller keeps the key in memory.
    """

    def __init__(self, url: str = settings.REDIS_URL, key: str = settings.CREDENTIAL_KEY):
        self.url = url
        self.key = key

    async def _client(self) -> redis.Redis:
        return redis.from_url(self.url, decode_responses=True)

    async def get(self) -> Optional[str]:
        rds = await self._client()
        try:
            return await rds.get(self.key)
        except RedisError as e:
            logger.warning("Could not load saved API key from %s: %s", self.url, e)
            return None
        finally:
            await rds.aclose()

    async def set(self, value: str) -> None:
        rds = await self._client()
        try:
            await rds.set(self.key, value)
        except RedisError as e:
            logger.warning("Could not save API key to %s: %s", self.url, e)
        finally:
            await rds.aclose()


class MemoryCredentialStore:
    def __init__(self, initial: Optional[str] = None, key: str = settings.CREDENTIAL_KEY):
        self.key = key
        self._data: Dict[str, str] = {}
        if initial is not None:
            self._data[key] = initial

    async def get(self) -> Optional[str]:
        return self._data.get(self.key)

    async def set(self, value: str) -> None:
        self._data[self.key] = value
