"""Redis-backed pending-upload ledger.

Layout under ``<prefix>``:

    <prefix>:intent:<id>    hash of UploadIntent fields
    <prefix>:expiry         sorted set of unsettled intent ids scored by expires_at
    <prefix>:sweep-lease    reconciler lease token

Intent hashes carry no TTL while they are indexed: an unsettled entry is the
only record of its object key, so it lives until the reconciler reclaims it
or ``settle`` marks its FileRecord as written. Settled entries expire after
the grace period and replays fall back to PostgreSQL.

Status transitions run server-side in Lua so concurrent confirms and sweeps
across API instances see a single winner.
"""

import functools
import logging
from datetime import datetime, timedelta

from redis.exceptions import RedisError

from sigp_storage.errors import StoreUnavailable
from sigp_storage.models.enums import IntentStatus
from sigp_storage.storage.intents import UploadIntent

logger = logging.getLogger(__name__)

# KEYS: intent hash. ARGV: expected, new, then field/value pairs to set.
_CAS_STATUS_SCRIPT = """
if redis.call('HGET', KEYS[1], 'status') ~= ARGV[1] then
  return 0
end
redis.call('HSET', KEYS[1], 'status', ARGV[2])
for i = 3, #ARGV, 2 do
  redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
return 1
"""

# KEYS: lease key. ARGV: token.
_RELEASE_LEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""


def _redis_errors(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except RedisError as e:
            logger.error("Ledger operation %s failed: %s", func.__name__, e)
            raise StoreUnavailable("Upload ledger unavailable") from e
    return wrapper


class RedisIntentLedger:
    def __init__(self, redis, key_prefix: str = "sigp:upload", grace: timedelta = timedelta(hours=1)):
        self._redis = redis
        self._prefix = key_prefix
        self._grace = grace
        self._index_key = f"{key_prefix}:expiry"
        self._lease_key = f"{key_prefix}:sweep-lease"
        self._cas_status = redis.register_script(_CAS_STATUS_SCRIPT)
        self._release_lease = redis.register_script(_RELEASE_LEASE_SCRIPT)

    def _intent_key(self, intent_id: str) -> str:
        return f"{self._prefix}:intent:{intent_id}"

    @_redis_errors
    async def create(self, intent: UploadIntent) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(self._intent_key(intent.intent_id), mapping=intent.to_hash())
        pipe.zadd(self._index_key, {intent.intent_id: intent.expires_at.timestamp()})
        await pipe.execute()

    @_redis_errors
    async def get(self, intent_id: str) -> UploadIntent | None:
        data = await self._redis.hgetall(self._intent_key(intent_id))
        if not data:
            return None
        return UploadIntent.from_hash(data)

    @_redis_errors
    async def compare_and_set_status(
        self,
        intent_id: str,
        expected: IntentStatus,
        new: IntentStatus,
        fields: dict[str, str] | None = None,
    ) -> bool:
        args = [expected.value, new.value]
        for name, value in (fields or {}).items():
            args.extend((name, value))
        result = await self._cas_status(keys=[self._intent_key(intent_id)], args=args)
        return bool(result)

    @_redis_errors
    async def settle(self, intent_id: str) -> None:
        """Drop a confirmed entry from the expiry index and let it age out."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.zrem(self._index_key, intent_id)
        pipe.expire(self._intent_key(intent_id), self._grace)
        await pipe.execute()

    @_redis_errors
    async def delete(self, intent_id: str) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(self._intent_key(intent_id))
        pipe.zrem(self._index_key, intent_id)
        await pipe.execute()

    @_redis_errors
    async def list_expired(self, now: datetime, limit: int) -> list[UploadIntent]:
        intent_ids = await self._redis.zrangebyscore(
            self._index_key, "-inf", f"({now.timestamp()}", start=0, num=limit,
        )
        if not intent_ids:
            return []

        pipe = self._redis.pipeline(transaction=False)
        for intent_id in intent_ids:
            pipe.hgetall(self._intent_key(intent_id))
        rows = await pipe.execute()

        intents: list[UploadIntent] = []
        missing: list[str] = []
        for intent_id, data in zip(intent_ids, rows):
            if not data:
                logger.warning("Ledger entry %s vanished while still indexed", intent_id)
                missing.append(intent_id)
                continue
            intents.append(UploadIntent.from_hash(data))

        if missing:
            await self._redis.zrem(self._index_key, *missing)
        return intents

    @_redis_errors
    async def acquire_sweep_lease(self, token: str, ttl: timedelta) -> bool:
        acquired = await self._redis.set(
            self._lease_key, token, nx=True, px=int(ttl.total_seconds() * 1000),
        )
        return bool(acquired)

    @_redis_errors
    async def release_sweep_lease(self, token: str) -> None:
        await self._release_lease(keys=[self._lease_key], args=[token])
