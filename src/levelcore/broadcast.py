"""Publish level transitions to Redis pub/sub for activity feeds and overlays."""

from __future__ import annotations

import json

import redis.asyncio as redis
import structlog

from levelcore.listeners import LevelChange
from levelcore.service import LevelService

logger = structlog.get_logger()

LEVEL_UP_CHANNEL = "pubsub:level_up"
LEVEL_DOWN_CHANNEL = "pubsub:level_down"


class RedisLevelBroadcaster:
    """Listener pair that mirrors level-up/down notifications onto Redis channels."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def attach(self, service: LevelService) -> None:
        service.register_level_up_listener(self.on_level_up)
        service.register_level_down_listener(self.on_level_down)

    def detach(self, service: LevelService) -> None:
        service.unregister_level_up_listener(self.on_level_up)
        service.unregister_level_down_listener(self.on_level_down)

    async def on_level_up(self, change: LevelChange) -> None:
        await self._publish(LEVEL_UP_CHANNEL, change)

    async def on_level_down(self, change: LevelChange) -> None:
        await self._publish(LEVEL_DOWN_CHANNEL, change)

    async def _publish(self, channel: str, change: LevelChange) -> None:
        try:
            await self._client.publish(
                channel,
                json.dumps({
                    "identity": str(change.identity),
                    "old_level": change.old_level,
                    "new_level": change.new_level,
                }),
            )
        except Exception:
            logger.warning("level_broadcast_failed", channel=channel, identity=str(change.identity), exc_info=True)
