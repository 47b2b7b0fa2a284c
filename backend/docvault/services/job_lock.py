"""Redis lock so that only one worker runs a scheduled job at a time."""

import logging
import uuid

import redis.asyncio as redis

from docvault.config import settings

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class JobLock:
    def __init__(self) -> None:
        self._client: redis.Redis | None = None

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(settings.redis_url, decode_responses=True)
        return self._client

    def _key(self, job: str) -> str:
        return f"docvault:job_lock:{job}"

    async def acquire(self, job: str, ttl: int) -> str | None:
        client = await self._get_client()
        token = uuid.uuid4().hex
        acquired = await client.set(self._key(job), token, nx=True, ex=ttl)
        if not acquired:
            logger.debug("Job lock held elsewhere", extra={"job": job})
            return None
        return token

    async def release(self, job: str, token: str) -> None:
        client = await self._get_client()
        await client.eval(_RELEASE_SCRIPT, 1, self._key(job), token)
        logger.debug("Released job lock", extra={"job": job})


job_lock = JobLock()
