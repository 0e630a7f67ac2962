import json
from datetime import date, datetime

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import WatchError

from app.clock import to_utc
from app.settings import REDIS_URL, SLOTS_TTL

# Version keys only need to outlive a read/write race
VERSION_TTL = 24 * 60 * 60

_redis: Redis | None = None


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _slots_key(slot_date: date) -> str:
    return f"slots:{slot_date.isoformat()}"


def _version_key(slot_date: date) -> str:
    return f"slots:ver:{slot_date.isoformat()}"


def slots_ttl(now: datetime, next_expiry: datetime | None) -> int:
    """
    Seconds a ledger snapshot may be served from cache: never past the
    moment the next pending hold on that date expires.
    """
    if next_expiry is None:
        return SLOTS_TTL
    remaining = int((to_utc(next_expiry) - to_utc(now)).total_seconds())
    return max(0, min(SLOTS_TTL, remaining))


async def get_slots_cache(slot_date: date) -> dict[int, str] | None:
    try:
        data = await get_redis().get(_slots_key(slot_date))
        if not data:
            return None
        return {int(hour): status for hour, status in json.loads(data).items()}
    except Exception:
        logger.opt(exception=True).warning("Redis get failed, skipping slots cache")
        return None


async def slots_version(slot_date: date) -> str | None:
    """
    Invalidation counter for a date. Read it BEFORE taking the ledger
    snapshot and hand it to `set_slots_cache`. None means "do not cache".
    """
    try:
        return await get_redis().get(_version_key(slot_date)) or "0"
    except Exception:
        logger.opt(exception=True).warning("Redis version read failed, skipping slots cache")
        return None


async def set_slots_cache(
    slot_date: date, cells: dict[int, str], ttl: int, version: str | None
) -> None:
    """Store the snapshot unless the date was invalidated since `version` was read."""
    if ttl <= 0 or version is None:
        return
    version_key = _version_key(slot_date)
    try:
        async with get_redis().pipeline(transaction=True) as pipe:
            await pipe.watch(version_key)
            if (await pipe.get(version_key) or "0") != version:
                logger.debug("Slots for {} changed during read, not caching", slot_date)
                await pipe.unwatch()
                return
            pipe.multi()
            pipe.setex(_slots_key(slot_date), ttl, json.dumps(cells))
            await pipe.execute()
    except WatchError:
        logger.debug("Slots for {} invalidated while caching, dropped", slot_date)
    except Exception:
        logger.opt(exception=True).warning("Redis set failed, skipping slots cache")


async def invalidate_slots_cache(*slot_dates: date) -> None:
    if not slot_dates:
        return
    try:
        async with get_redis().pipeline(transaction=True) as pipe:
            for slot_date in slot_dates:
                pipe.incr(_version_key(slot_date))
                pipe.expire(_version_key(slot_date), VERSION_TTL)
                pipe.delete(_slots_key(slot_date))
            await pipe.execute()
    except Exception:
        logger.opt(exception=True).warning("Redis invalidate failed for slots cache")
