"""Tests for app/cache.py: TTL rule, version-guarded writes and Redis failure tolerance."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import WatchError

from app import cache

from .factories import NOW, TOMORROW


def _redis(**methods) -> MagicMock:
    mock = MagicMock()
    for name, value in methods.items():
        setattr(mock, name, value)
    return mock


def _pipelined(current_version: str | None = None) -> tuple[MagicMock, MagicMock]:
    """Redis mock whose transactional pipeline sees `current_version` on GET."""
    pipe = MagicMock()
    for name in ("watch", "unwatch", "execute"):
        setattr(pipe, name, AsyncMock())
    pipe.get = AsyncMock(return_value=current_version)
    redis = MagicMock()
    redis.pipeline.return_value.__aenter__.return_value = pipe
    return redis, pipe


class TestSlotsTtl:
    def test_no_pending_hold_uses_default(self):
        assert cache.slots_ttl(NOW, None) == 60

    def test_capped_by_next_expiry(self):
        assert cache.slots_ttl(NOW, NOW + timedelta(seconds=15)) == 15

    def test_far_expiry_uses_default(self):
        assert cache.slots_ttl(NOW, NOW + timedelta(minutes=25)) == 60

    def test_overdue_expiry_is_zero(self):
        assert cache.slots_ttl(NOW, NOW - timedelta(seconds=5)) == 0

    def test_naive_expiry_treated_as_utc(self):
        naive = (NOW + timedelta(seconds=30)).replace(tzinfo=None)
        assert cache.slots_ttl(NOW, naive) == 30


class TestSlotsCache:
    async def test_round_trip_keys_hours_as_ints(self):
        redis = _redis(get=AsyncMock(return_value='{"9": "booked", "10": "available"}'))
        with patch("app.cache.get_redis", return_value=redis):
            cells = await cache.get_slots_cache(TOMORROW)

        redis.get.assert_awaited_once_with("slots:2026-02-05")
        assert cells == {9: "booked", 10: "available"}

    async def test_miss_returns_none(self):
        redis = _redis(get=AsyncMock(return_value=None))
        with patch("app.cache.get_redis", return_value=redis):
            assert await cache.get_slots_cache(TOMORROW) is None

    async def test_get_failure_is_a_miss(self):
        redis = _redis(get=AsyncMock(side_effect=ConnectionError("redis down")))
        with patch("app.cache.get_redis", return_value=redis):
            assert await cache.get_slots_cache(TOMORROW) is None


class TestSlotsVersion:
    async def test_unset_version_is_zero(self):
        redis = _redis(get=AsyncMock(return_value=None))
        with patch("app.cache.get_redis", return_value=redis):
            assert await cache.slots_version(TOMORROW) == "0"
        redis.get.assert_awaited_once_with("slots:ver:2026-02-05")

    async def test_redis_down_means_do_not_cache(self):
        redis = _redis(get=AsyncMock(side_effect=ConnectionError("redis down")))
        with patch("app.cache.get_redis", return_value=redis):
            assert await cache.slots_version(TOMORROW) is None


class TestSetSlotsCache:
    async def test_unchanged_version_writes_with_ttl(self):
        redis, pipe = _pipelined(current_version="3")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "booked"}, 15, "3")

        pipe.watch.assert_awaited_once_with("slots:ver:2026-02-05")
        pipe.multi.assert_called_once()
        pipe.setex.assert_called_once_with("slots:2026-02-05", 15, '{"9": "booked"}')
        pipe.execute.assert_awaited_once()

    async def test_missing_version_key_matches_zero(self):
        redis, pipe = _pipelined(current_version=None)
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "booked"}, 15, "0")
        pipe.setex.assert_called_once()

    async def test_invalidated_since_read_skips_write(self):
        redis, pipe = _pipelined(current_version="4")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "pending"}, 15, "3")

        pipe.setex.assert_not_called()
        pipe.execute.assert_not_awaited()
        pipe.unwatch.assert_awaited_once()

    async def test_invalidated_during_write_is_dropped(self):
        redis, pipe = _pipelined(current_version="3")
        pipe.execute.side_effect = WatchError("slots:ver:2026-02-05 changed")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "pending"}, 15, "3")
        pipe.setex.assert_called_once()

    async def test_zero_ttl_skips_write(self):
        redis, pipe = _pipelined(current_version="0")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "booked"}, 0, "0")
        redis.pipeline.assert_not_called()

    async def test_unknown_version_skips_write(self):
        redis, pipe = _pipelined(current_version="0")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "booked"}, 30, None)
        redis.pipeline.assert_not_called()

    async def test_set_failure_is_swallowed(self):
        redis, pipe = _pipelined(current_version="0")
        pipe.watch.side_effect = ConnectionError("redis down")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.set_slots_cache(TOMORROW, {9: "booked"}, 30, "0")
        pipe.setex.assert_not_called()


class TestInvalidateSlotsCache:
    async def test_bumps_version_and_deletes_every_date(self):
        redis, pipe = _pipelined()
        later = TOMORROW + timedelta(days=1)
        with patch("app.cache.get_redis", return_value=redis):
            await cache.invalidate_slots_cache(TOMORROW, later)

        redis.pipeline.assert_called_once_with(transaction=True)
        assert [c.args[0] for c in pipe.incr.call_args_list] == [
            "slots:ver:2026-02-05",
            "slots:ver:2026-02-06",
        ]
        pipe.expire.assert_any_call("slots:ver:2026-02-06", cache.VERSION_TTL)
        assert [c.args[0] for c in pipe.delete.call_args_list] == [
            "slots:2026-02-05",
            "slots:2026-02-06",
        ]
        pipe.execute.assert_awaited_once()

    async def test_no_dates_is_a_noop(self):
        redis, _ = _pipelined()
        with patch("app.cache.get_redis", return_value=redis):
            await cache.invalidate_slots_cache()
        redis.pipeline.assert_not_called()

    async def test_invalidate_failure_is_swallowed(self):
        redis, pipe = _pipelined()
        pipe.execute.side_effect = ConnectionError("redis down")
        with patch("app.cache.get_redis", return_value=redis):
            await cache.invalidate_slots_cache(TOMORROW)
