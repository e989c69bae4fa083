"""Redis pub/sub level broadcasts."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from levelcore.broadcast import LEVEL_DOWN_CHANNEL, LEVEL_UP_CHANNEL, RedisLevelBroadcaster
from levelcore.service import LevelService


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


class TestRedisLevelBroadcaster:
    @pytest.mark.asyncio
    async def test_publishes_level_up(self, linear_service, player_id, redis_client):
        RedisLevelBroadcaster(redis_client).attach(linear_service)

        await linear_service.add_xp(player_id, 250)

        redis_client.publish.assert_awaited_once()
        channel, payload = redis_client.publish.call_args.args
        assert channel == LEVEL_UP_CHANNEL == "pubsub:level_up"
        assert json.loads(payload) == {"identity": str(player_id), "old_level": 1, "new_level": 3}

    @pytest.mark.asyncio
    async def test_publishes_level_down(self, linear_service, player_id, redis_client):
        await linear_service.set_xp(player_id, 500)
        RedisLevelBroadcaster(redis_client).attach(linear_service)

        await linear_service.remove_xp(player_id, 300)

        channel, payload = redis_client.publish.call_args.args
        assert channel == LEVEL_DOWN_CHANNEL
        assert json.loads(payload)["new_level"] == 3

    @pytest.mark.asyncio
    async def test_no_publish_without_level_change(self, linear_service, player_id, redis_client):
        RedisLevelBroadcaster(redis_client).attach(linear_service)
        await linear_service.add_xp(player_id, 10)
        redis_client.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, linear_service, player_id, redis_client):
        redis_client.publish.side_effect = ConnectionError("redis down")
        RedisLevelBroadcaster(redis_client).attach(linear_service)

        assert await linear_service.add_xp(player_id, 100) == 100
        assert await linear_service.get_level(player_id) == 2

    @pytest.mark.asyncio
    async def test_detach(self, linear_service: LevelService, player_id, redis_client):
        broadcaster = RedisLevelBroadcaster(redis_client)
        broadcaster.attach(linear_service)
        broadcaster.detach(linear_service)

        await linear_service.add_xp(player_id, 1_000)

        redis_client.publish.assert_not_awaited()
        assert len(linear_service.level_up) == 0
